from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


import pytest

from semver_checks import query
from tests.project_helpers import FakeRegistry


@pytest.fixture(autouse=True)
def _fresh_catalog():
    query.load_catalog.cache_clear()
    yield
    query.load_catalog.cache_clear()


@pytest.fixture
def registry() -> FakeRegistry:
    return FakeRegistry()
