from __future__ import annotations

"""
Integration tests for FileSystem Infrastructure.

Verifies:
1. Remote path joining and local path normalization.
2. Stable, hidden-file-free enumeration of local directories.
3. The temporary-file download lifecycle (prepare, commit, discard).
"""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from pcli2.domain.errors import LocalIOError
from pcli2.infra.fs import (
    artifact_exists,
    commit_download,
    discard_partial,
    get_user_data_dir,
    iter_local_files,
    join_remote_path,
    normalize_path,
    partial_path,
    prepare_destination,
)


def test_join_remote_path() -> None:
    """TC-01: Verify separators are normalized and empty segments dropped."""
    assert join_remote_path("/Parts/", "sub", "a.stl") == "Parts/sub/a.stl"
    assert join_remote_path("", "a.stl") == "a.stl"
    assert join_remote_path("Parts\\win", "b.stl") == "Parts/win/b.stl"


def test_normalize_path_fallback(tmp_path: Path) -> None:
    """TC-02: Verify empty input falls back and results are absolute."""
    assert normalize_path("", str(tmp_path)) == str(tmp_path)
    assert os.path.isabs(normalize_path("relative/dir", "."))


def test_iter_local_files_sorted_and_filtered(tmp_path: Path) -> None:
    """TC-03: Verify recursive enumeration skips hidden entries and is sorted."""
    (tmp_path / "b.stl").write_bytes(b"b")
    (tmp_path / "a.stl").write_bytes(b"a")
    (tmp_path / ".hidden").write_bytes(b"h")
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "c.step").write_bytes(b"c")
    (tmp_path / ".git").mkdir()
    (tmp_path / ".git" / "config").write_bytes(b"x")

    rels = [rel for _, rel in iter_local_files(str(tmp_path))]

    assert rels == ["a.stl", "b.stl", "sub/c.step"]


def test_download_lifecycle_commit(tmp_path: Path) -> None:
    """TC-04: Verify the final file only appears after commit."""
    destination = str(tmp_path / "out" / "nested" / "part.stl")

    temp = prepare_destination(destination)
    assert temp == partial_path(destination)
    assert os.path.isdir(tmp_path / "out" / "nested")

    Path(temp).write_bytes(b"data")
    assert not artifact_exists(destination)

    commit_download(temp, destination)
    assert artifact_exists(destination)
    assert not os.path.exists(temp)


def test_download_lifecycle_discard(tmp_path: Path) -> None:
    """TC-05: Verify abandoned partial files are removed and never count as artifacts."""
    destination = str(tmp_path / "part.stl")
    temp = prepare_destination(destination)
    Path(temp).write_bytes(b"half")

    discard_partial(temp)
    discard_partial(temp)

    assert not os.path.exists(temp)
    assert not artifact_exists(destination)


def test_prepare_destination_failure(tmp_path: Path) -> None:
    """TC-06: Verify a blocked parent directory raises LocalIOError."""
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")

    with pytest.raises(LocalIOError):
        prepare_destination(str(blocker / "sub" / "part.stl"))


def test_commit_missing_temp_file(tmp_path: Path) -> None:
    """TC-07: Verify a failed rename raises LocalIOError."""
    with pytest.raises(LocalIOError):
        commit_download(str(tmp_path / "missing.part"), str(tmp_path / "final.stl"))


def test_get_user_data_dir_unix(tmp_path: Path) -> None:
    """TC-08: Verify the hidden home directory is created on POSIX systems."""
    with patch("pcli2.infra.fs.os.name", "posix"), \
            patch("pcli2.infra.fs.os.path.expanduser", return_value=str(tmp_path)):
        path = get_user_data_dir()

    assert path == str(tmp_path / ".pcli2")
    assert os.path.isdir(path)
