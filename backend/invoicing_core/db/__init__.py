"""Database Infrastructure — SQLAlchemy declarative Base shared by every model.

Invariants:
    - Single async engine per process (owned by infrastructure/database.py)

Design Decisions:
    - asyncpg driver for PostgreSQL, aiosqlite for local runs and tests
"""
