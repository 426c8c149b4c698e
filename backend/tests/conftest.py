"""Root conftest — shared test configuration."""

import os

# Ensure tests never reach a real auth service or database
os.environ.setdefault("AUTH_URL", "http://auth.test")
os.environ.setdefault("AUTH_API_KEY", "test-anon-key")
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///:memory:",
)
