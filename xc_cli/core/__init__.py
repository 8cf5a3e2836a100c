"""
Core modules for xc.

This package contains cost estimation, spend aggregation, budget
enforcement and media upload orchestration.
"""
