"""Pytest configuration and test helpers."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest

# ``app`` sits at the project root and the shared fakes live next to the tests;
# both must import without an editable install.
TESTS = Path(__file__).resolve().parent
ROOT = TESTS.parent
for path in (ROOT, TESTS):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))


@pytest.fixture(autouse=True)
def _quiet_http_logs(caplog: pytest.LogCaptureFixture) -> None:
    """Keep httpx request logging out of failure reports."""

    caplog.set_level(logging.WARNING, logger="httpx")
