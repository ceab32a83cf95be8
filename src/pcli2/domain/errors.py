from __future__ import annotations

"""
Error Taxonomy.

Defines the exception hierarchy shared by the API client, the batch engine
and the CLI. Every error carries the process exit code the CLI reports when
the error escapes a command, following the BSD sysexits conventions with a
few application-specific codes above 100.
"""

from enum import IntEnum
from typing import Optional

from pcli2.domain.constants import RETRYABLE_STATUS_CODES


class ExitCode(IntEnum):
    """Process exit codes (sysexits.h range plus custom 100+ codes)."""
    SUCCESS = 0
    USAGE = 64
    DATA = 65
    NO_INPUT = 66
    NOT_FOUND = 67
    UNAVAILABLE = 68
    TEMPFAIL = 69
    SOFTWARE = 70
    OS = 71
    CONFIG = 78
    AUTH = 100
    NETWORK = 101
    API = 102
    INTERRUPTED = 130


# -----------------------------------------------------------------------------
# BASE
# -----------------------------------------------------------------------------

class PcliError(Exception):
    """Root of every error raised deliberately by the application."""
    exit_code: ExitCode = ExitCode.SOFTWARE

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(PcliError):
    """
    Invalid settings or target references; fatal for the whole command.

    When raised for a failed enumeration, the exit code of the underlying
    error (e.g. NOT_FOUND for an unknown folder) is kept.
    """
    exit_code = ExitCode.CONFIG

    def __init__(self, message: str, exit_code: Optional[ExitCode] = None) -> None:
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class LocalIOError(PcliError):
    """Filesystem failure while checking or writing a local artifact."""
    exit_code = ExitCode.OS


class NetworkError(PcliError):
    """Connection failure or timeout before any HTTP status was received."""
    exit_code = ExitCode.NETWORK


# -----------------------------------------------------------------------------
# REMOTE ERRORS
# -----------------------------------------------------------------------------

class RemoteError(PcliError):
    """
    An HTTP error response from the remote service.

    Attributes:
        status_code: HTTP status of the failed response.
        message: Server-provided detail (or the reason phrase).
    """
    exit_code = ExitCode.API

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"HTTP {status_code}: {message}")
        self.status_code = status_code
        self.message = message


class TransientRemoteError(RemoteError):
    """Rate-limit or conflict response; the request may succeed later."""
    exit_code = ExitCode.TEMPFAIL


class PermanentRemoteError(RemoteError):
    """Not-found, forbidden, validation and every other non-retryable status."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(status_code, message)
        if status_code == 404:
            self.exit_code = ExitCode.NOT_FOUND


class AuthenticationError(PermanentRemoteError):
    """Token acquisition failed or the refreshed token was still rejected."""
    exit_code = ExitCode.AUTH

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(status_code or 401, message)


def remote_error_from_status(status_code: int, message: str) -> RemoteError:
    """Build the taxonomy class matching an HTTP error status."""
    if status_code in RETRYABLE_STATUS_CODES:
        return TransientRemoteError(status_code, message)
    return PermanentRemoteError(status_code, message)
