"""Shared fixtures."""

import pytest

from autoconnect.core import LogBus


@pytest.fixture
def log_bus():
    return LogBus(capacity=200)
