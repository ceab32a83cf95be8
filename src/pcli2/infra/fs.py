from __future__ import annotations

"""
FileSystem Infrastructure Layer.

Provides cross-platform resolution of the application data directory, path
normalization, and the local file helpers used by the download and upload
commands. Filesystem failures inside batch operations surface as
LocalIOError so the executor can record them against a single work item.
"""

import os
from typing import Iterator, List, Optional, Tuple

from pcli2.domain.errors import LocalIOError

# -----------------------------------------------------------------------------
# GLOBAL CONSTANTS
# -----------------------------------------------------------------------------

APP_DIR_NAME = "PCLI2"
UNIX_APP_DIR_NAME = ".pcli2"
PARTIAL_SUFFIX = ".part"

# -----------------------------------------------------------------------------
# PATH RESOLUTION API
# -----------------------------------------------------------------------------

def get_user_data_dir() -> str:
    """
    Resolve the standard OS-specific directory for persistent application data.

    Automatically creates the hierarchy if it does not exist.
    Standards:
    - Windows: %LOCALAPPDATA%/PCLI2
    - Linux/Mac: ~/.pcli2

    Returns:
        str: Absolute path to the application data directory.
    """
    path: str = ""

    if os.name == "nt":
        base = os.environ.get("LOCALAPPDATA") or os.environ.get("APPDATA")
        if base:
            path = os.path.join(base, APP_DIR_NAME)

    if not path:
        path = os.path.join(os.path.expanduser("~"), UNIX_APP_DIR_NAME)

    try:
        os.makedirs(path, exist_ok=True)
    except OSError:
        pass

    return os.path.abspath(path)


def normalize_path(path: Optional[str], fallback: str) -> str:
    """
    Normalize a directory path string into an absolute filesystem path.

    Handles environment variable expansion ($VAR/%VAR%) and user home
    shortcuts (~/). Reverts to fallback if the input is empty.

    Args:
        path: Raw input path string.
        fallback: Default path to use if the input is empty.

    Returns:
        str: Normalized absolute path.
    """
    p = (path or "").strip() or fallback
    return os.path.abspath(os.path.expandvars(os.path.expanduser(p)))


def join_remote_path(*parts: str) -> str:
    """Join remote path segments with '/' and drop empty segments."""
    segments: List[str] = []
    for part in parts:
        segments.extend(s for s in part.replace("\\", "/").split("/") if s)
    return "/".join(segments)


# -----------------------------------------------------------------------------
# LOCAL ARTIFACT API
# -----------------------------------------------------------------------------

def iter_local_files(root_dir: str) -> Iterator[Tuple[str, str]]:
    """
    Yield (absolute_path, relative_path) for every regular file under root_dir.

    Hidden files and directories are excluded. Traversal order is sorted so
    the resulting work item sequence is stable between runs.

    Args:
        root_dir: Local directory to walk.

    Yields:
        Tuple[str, str]: Absolute path and '/'-separated relative path.
    """
    for current, dirs, files in os.walk(root_dir):
        dirs[:] = sorted(d for d in dirs if not d.startswith("."))
        for name in sorted(files):
            if name.startswith("."):
                continue
            full = os.path.join(current, name)
            if os.path.isfile(full):
                rel = os.path.relpath(full, root_dir).replace(os.sep, "/")
                yield full, rel


def artifact_exists(path: str) -> bool:
    """Check whether a completed local artifact is present at path."""
    return os.path.isfile(path)


def safe_mkdir(path: str) -> Tuple[bool, Optional[str]]:
    """
    Attempt to recursively create a directory structure safely.

    Args:
        path: Target directory path.

    Returns:
        Tuple[bool, Optional[str]]: (Success flag, Error message if applicable).
    """
    try:
        os.makedirs(path, exist_ok=True)
        return True, None
    except OSError as e:
        return False, str(e)


def partial_path(destination: str) -> str:
    """Return the temporary path used while a download is in progress."""
    return destination + PARTIAL_SUFFIX


def prepare_destination(destination: str) -> str:
    """
    Ensure the parent directory of a download destination exists.

    Args:
        destination: Final file path.

    Returns:
        str: The temporary path the caller should stream into.

    Raises:
        LocalIOError: If the parent directory cannot be created.
    """
    parent = os.path.dirname(os.path.abspath(destination))
    ok, err = safe_mkdir(parent)
    if not ok:
        raise LocalIOError(f"Cannot create directory '{parent}': {err}")
    return partial_path(destination)


def commit_download(temp_path: str, destination: str) -> None:
    """
    Atomically move a finished temporary download into its final place.

    Raises:
        LocalIOError: If the rename fails.
    """
    try:
        os.replace(temp_path, destination)
    except OSError as e:
        raise LocalIOError(f"Cannot finalize '{destination}': {e}") from e


def discard_partial(temp_path: str) -> None:
    """Remove an abandoned temporary download if it exists."""
    try:
        if os.path.exists(temp_path):
            os.remove(temp_path)
    except OSError:
        pass
