"""
School Ledger - Pydantic Schemas Package
"""
