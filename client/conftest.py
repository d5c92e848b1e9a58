"""Root conftest: load test environment variables and configure structlog for tests."""

from pathlib import Path

import pytest
import structlog
from dotenv import load_dotenv

from shared.logging import configure_structlog

load_dotenv(Path(__file__).resolve().parent.parent / ".env.tests")

# Through stdlib logging so caplog sees client log lines.
configure_structlog()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Prevent bound player context leaking between tests."""
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()
