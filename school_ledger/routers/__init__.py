"""
School Ledger - Routers Package

FastAPI route handlers.

Routers:
- accounts: Chart of accounts and stored balances
- journal_entries: Posting and browsing journal entries
- trial_balance: Trial balance report, summary and CSV export
- periods: Accounting period calendar
- period_closing: Closing preview, close, reopen and history
"""
