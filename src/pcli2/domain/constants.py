from __future__ import annotations

"""
Domain Constants.

Single source of truth for the numeric policies of the batch engine and the
defaults shared by the CLI, the configuration layer and the API client.
"""

from typing import FrozenSet

# -----------------------------------------------------------------------------
# BATCH ENGINE POLICY
# -----------------------------------------------------------------------------

MIN_CONCURRENCY: int = 1
MAX_CONCURRENCY: int = 10
DEFAULT_CONCURRENCY: int = 1

MAX_ATTEMPTS: int = 3
RETRY_DELAY_SECONDS: float = 0.5
RETRYABLE_STATUS_CODES: FrozenSet[int] = frozenset({409, 429})

MIN_DELAY_SECONDS: float = 0.0
MAX_DELAY_SECONDS: float = 180.0
DEFAULT_DELAY_SECONDS: float = 0.0

# -----------------------------------------------------------------------------
# REMOTE SERVICE
# -----------------------------------------------------------------------------

DEFAULT_MATCH_THRESHOLD: float = 80.0
MIN_MATCH_THRESHOLD: float = 0.0
MAX_MATCH_THRESHOLD: float = 100.0

FOLDER_PAGE_SIZE: int = 200
DEPENDENCY_PAGE_SIZE: int = 100
SEARCH_PAGE_SIZE: int = 100

ASSET_STATE_FINISHED: str = "finished"
ASSET_STATE_MISSING: str = "missing"
NIL_UUID: str = "00000000-0000-0000-0000-000000000000"

ASSEMBLY_ARCHIVE_SUFFIX: str = ".zip"

# -----------------------------------------------------------------------------
# OUTPUT
# -----------------------------------------------------------------------------

OUTPUT_FORMATS = ("json", "csv", "tree")
DEFAULT_OUTPUT_FORMAT: str = "json"
