# tests/conftest.py
"""
Pytest configuration with PRODUCTION DATABASE PROTECTION.

Sets testing mode before any placesearch import so settings resolve the
test database URL, and refuses to run against a hosted database.
"""

import os

# CRITICAL: Set testing mode BEFORE any placesearch imports!
os.environ["is_testing"] = "true"

from placesearch.core.config import settings

settings.is_testing = True


def _validate_test_database_url(database_url: str) -> None:
    """
    Validate that we're not using a production database for tests.

    Raises:
        RuntimeError: If the URL matches a hosted provider
    """
    if database_url and settings.is_production_database(database_url):
        raise RuntimeError(
            "Refusing to run tests against what looks like a production database: "
            f"{database_url.split('@')[-1]}"
        )


_validate_test_database_url(settings.test_database_url)
