"""
Storage layer: usage ledger and budget policy persistence.
"""
