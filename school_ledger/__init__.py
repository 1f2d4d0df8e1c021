"""
School Ledger - General Ledger & Period Closing Service

Double-entry bookkeeping core for the school ERP: chart of accounts,
journal entries, balance aggregation, trial balance and period closing.
"""

__version__ = "0.1.0"
