"""Database access layer (DAL).

This sub-package wraps the aiosqlite driver: connection pooling, sessions,
explicit transactions, the statement verbs and soft delete rewriting.
"""
