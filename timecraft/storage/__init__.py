"""
Ledger persistence.
"""
