"""Test environment: in-memory SQLite and cheap password hashing, set before app modules load."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("APP_ENV", "dev")
os.environ.setdefault("RATE_LIMIT_STORAGE_URI", "memory://")
