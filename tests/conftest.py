"""
Shared test configuration.

Makes src/ and the fakes module importable without an install.
"""

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent
sys.path.insert(0, str(ROOT.parent / "src"))
sys.path.insert(0, str(ROOT))

from fakes import make_client  # noqa: E402  pylint: disable=wrong-import-position


@pytest.fixture
def fake_client():
    """An open PSClient backed by a fresh fake remote."""
    client, factory = make_client()
    yield client, factory
    client.close()
