from __future__ import annotations

import uuid

USER_AGENT = "PCLI2/0.1.0"
DEFAULT_TIMEOUT = 1800
AUTH_TIMEOUT = 30
CHUNK_SIZE = 8192


def looks_like_uuid(value: str) -> bool:
    """Whether a reference is a UUID rather than a path."""
    try:
        uuid.UUID(str(value))
        return True
    except ValueError:
        return False
