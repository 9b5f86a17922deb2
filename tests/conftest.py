"""Test configuration and fixtures."""

import pytest

from rag_memory.telemetry import configure_logging


@pytest.fixture(scope="session", autouse=True)
def _quiet_logging():
    """Console logs at WARNING so test output stays readable."""
    configure_logging("WARNING", json_logs=False, force=True)
    yield
