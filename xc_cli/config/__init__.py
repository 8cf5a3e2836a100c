"""
Configuration loading for accounts and pricing overrides.
"""
