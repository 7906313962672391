"""
Test environment.

Settings are read once at import time, so the in-memory database and the
disabled Redis cache are configured before any project module is collected.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REDIS_URL", "")
