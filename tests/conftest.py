"""Test configuration."""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv
from pytest import Config

# Must be set before app modules read their settings
os.environ.setdefault("TESTING", "true")

# Load .env.test file for tests if present
env_test_file = Path(__file__).parent.parent / ".env.test"
if env_test_file.exists():
    load_dotenv(env_test_file, override=True)

from app.core.logging import configure_logging  # noqa: E402

pytest_plugins: List[str] = [
    "tests.fixtures.db",
    "tests.fixtures.providers",
    "tests.fixtures.api",
]


def pytest_configure(config: Config) -> None:
    """Configure pytest.

    Args:
        config: Pytest configuration object
    """
    # Configure logging for test environment
    configure_logging(testing=True)
    config.addinivalue_line(
        "markers", "serial: mark test as requiring serial execution"
    )
