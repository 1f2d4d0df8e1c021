"""
School Ledger - Utilities Package
"""
