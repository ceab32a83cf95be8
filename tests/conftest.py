from __future__ import annotations

"""
Global Pytest Configuration and Fixtures.

This module sets up the testing environment, including:
1. Path manipulation to ensure the 'src' directory is importable.
2. Shared fixtures for configuration dictionaries, work items and an
   instant sleep replacement used by the batch engine tests.
"""

import os
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List
from unittest.mock import patch

import pytest

# -----------------------------------------------------------------------------
# Path Configuration
# -----------------------------------------------------------------------------
_SRC_PATH = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src"))
if _SRC_PATH not in sys.path:
    sys.path.insert(0, _SRC_PATH)

from pcli2.domain.models import KIND_ASSET, WorkItem  # noqa: E402


# -----------------------------------------------------------------------------
# Shared Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def mock_config_dict() -> Dict[str, Any]:
    """
    Return a valid, complete configuration dictionary for testing.

    Reflects the structure defined in 'pcli2.domain.config'.

    Returns:
        Dict[str, Any]: A sample configuration dictionary.
    """
    return {
        # Remote service
        "api_base_url": "https://api.example.test/v3",
        "auth_url": "https://auth.example.test/oauth2/token",
        "tenant": "acme",
        "client_id": "client-id",
        "client_secret": "client-secret",
        "timeout": 30,

        # Batch defaults
        "concurrent": 1,
        "delay": 0.0,
        "threshold": 80.0,
        "format": "json",

        # Diagnostics
        "log_file": "",
    }


class SleepRecorder:
    """Callable stand-in for time.sleep that records every requested wait."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def no_sleep() -> SleepRecorder:
    """Instant sleep whose calls can be asserted."""
    return SleepRecorder()


@pytest.fixture
def make_items() -> Callable[[int], List[WorkItem]]:
    """Factory for n distinct asset work items."""

    def _make(n: int) -> List[WorkItem]:
        return [
            WorkItem(kind=KIND_ASSET, path=f"/parts/part-{i:02d}.stl", uuid=f"uuid-{i:02d}")
            for i in range(n)
        ]

    return _make


@pytest.fixture
def user_data_dir(tmp_path: Path):
    """Redirect the persistent configuration file into tmp_path."""
    data_dir = tmp_path / "userdata"
    data_dir.mkdir()
    with patch("pcli2.domain.config.get_user_data_dir", return_value=str(data_dir)):
        yield data_dir
