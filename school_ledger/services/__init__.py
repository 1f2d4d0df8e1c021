"""
School Ledger - Services Package

Business logic layer; each service wraps an AsyncSession.
"""
