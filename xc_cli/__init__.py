"""
xc - command-line client for the X API with cost tracking and budgets.
"""

__version__ = "0.1.0"
