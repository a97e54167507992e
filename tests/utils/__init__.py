"""Shared test utilities for unit and integration tests."""

from tests.utils.clock import FakeClock
from tests.utils.messages import drain, wait_until


__all__ = ["FakeClock", "drain", "wait_until"]
