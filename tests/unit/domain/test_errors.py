from __future__ import annotations

"""
Unit tests for the Error Taxonomy.

Verifies:
1. Status-based construction of remote errors.
2. Exit codes carried by each error class.
"""

import pytest

from pcli2.domain.errors import (
    AuthenticationError,
    ConfigurationError,
    ExitCode,
    LocalIOError,
    NetworkError,
    PermanentRemoteError,
    TransientRemoteError,
    remote_error_from_status,
)


@pytest.mark.parametrize("status,cls", [
    (409, TransientRemoteError),
    (429, TransientRemoteError),
    (400, PermanentRemoteError),
    (404, PermanentRemoteError),
    (500, PermanentRemoteError),
])
def test_remote_error_from_status(status: int, cls: type) -> None:
    error = remote_error_from_status(status, "detail")

    assert type(error) is cls
    assert error.status_code == status
    assert str(error) == f"HTTP {status}: detail"


def test_exit_codes() -> None:
    assert ConfigurationError("x").exit_code == ExitCode.CONFIG
    assert ConfigurationError("x", exit_code=ExitCode.NOT_FOUND).exit_code == ExitCode.NOT_FOUND
    assert TransientRemoteError(429, "x").exit_code == ExitCode.TEMPFAIL
    assert PermanentRemoteError(404, "x").exit_code == ExitCode.NOT_FOUND
    assert PermanentRemoteError(403, "x").exit_code == ExitCode.API
    assert AuthenticationError("x").exit_code == ExitCode.AUTH
    assert AuthenticationError("x").status_code == 401
    assert NetworkError("x").exit_code == ExitCode.NETWORK
    assert LocalIOError("x").exit_code == ExitCode.OS
