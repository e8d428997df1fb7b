"""Store functions for the reminder tables.

Functions flush but never commit; the calling service owns the transaction.
"""
