"""Root conftest — shared test configuration."""

import os

# Ensure tests never reach the real payment processor
os.environ.setdefault("PAYPAL_CLIENT_ID", "paypal-test-client")
os.environ.setdefault("PAYPAL_CLIENT_SECRET", "paypal-test-secret")
os.environ.setdefault("PAYPAL_BASE_URL", "https://paypal.test")
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///test.db",
)
