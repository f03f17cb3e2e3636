# -*- coding: utf-8 -*-
"""
Shared test fixtures for the IDLE watcher tests.
"""

import sys
from pathlib import Path

# Ensure project root is importable without pip install
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

import pytest

from fakes import FakeTransport
from fakes import make_test_config


@pytest.fixture
def fake_transport():
    """Factory fixture for creating scripted transports."""
    def _make_transport(*chunks, **kwargs):
        return FakeTransport(chunks, **kwargs)
    return _make_transport


@pytest.fixture
def test_config():
    """Minimal config object for testing."""
    return make_test_config()
