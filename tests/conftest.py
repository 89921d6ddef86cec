"""
Shared fixtures built on the doubles in fakes.py.
"""

import pytest

from fakes import FakeClock, FakeTransport


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def published() -> list:
    return []
