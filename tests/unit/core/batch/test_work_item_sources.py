from __future__ import annotations

"""
Unit tests for the Work Item Sources.

Verifies:
1. Breadth-first folder enumeration with relative paths.
2. Filters and target mapping.
3. Enumeration failures are fatal and keep the cause's exit code.
4. Local directory enumeration for uploads.
"""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from pcli2.core.batch.sources import (
    explicit_asset_items,
    folder_asset_items,
    list_folder_assets,
    local_file_items,
    resolve_asset,
)
from pcli2.domain.errors import ConfigurationError, ExitCode, PermanentRemoteError
from pcli2.domain.models import KIND_FILE, Asset, Folder


def _client() -> MagicMock:
    """Folder 'root' holds a.stl and subfolder 'sub' (holding b.stl)."""
    client = MagicMock()
    client.resolve_folder.return_value = Folder(uuid="f-root", name="Parts", path="Parts")
    client.list_folder_assets.side_effect = lambda uuid: {
        "f-root": [Asset(uuid="a", path="Parts/a.stl", state="finished")],
        "f-sub": [Asset(uuid="b", path="Parts/sub/b.stl", state="processing")],
    }[uuid]
    client.list_subfolders.side_effect = lambda uuid, parent="": {
        "f-root": [Folder(uuid="f-sub", name="sub", path="Parts/sub")],
        "f-sub": [],
    }[uuid]
    return client


def test_recursive_listing_keeps_relative_folders() -> None:
    listed = list_folder_assets(_client(), ["Parts"], recursive=True)

    assert [(a.uuid, rel) for a, rel in listed] == [("a", ""), ("b", "sub")]


def test_non_recursive_listing_skips_subfolders() -> None:
    client = _client()
    listed = list_folder_assets(client, ["Parts"], recursive=False)

    assert [a.uuid for a, _ in listed] == ["a"]
    client.list_subfolders.assert_not_called()


def test_filter_and_target_mapping() -> None:
    items = folder_asset_items(
        _client(),
        ["Parts"],
        recursive=True,
        include=lambda asset: asset.state == "finished",
        target_for=lambda asset, rel: f"{rel}|{asset.name}",
    )

    assert len(items) == 1
    assert items[0].uuid == "a"
    assert items[0].target == "|a.stl"


def test_empty_folder_yields_no_items() -> None:
    client = MagicMock()
    client.resolve_folder.return_value = Folder(uuid="f", name="Empty")
    client.list_folder_assets.return_value = []

    assert folder_asset_items(client, ["Empty"]) == []


def test_unknown_folder_is_fatal_with_not_found_code() -> None:
    client = MagicMock()
    client.resolve_folder.side_effect = PermanentRemoteError(404, "Folder not found: /Nope")

    with pytest.raises(ConfigurationError) as exc:
        folder_asset_items(client, ["Nope"])

    assert exc.value.exit_code == ExitCode.NOT_FOUND
    assert "Nope" in str(exc.value)


def test_forbidden_listing_is_fatal() -> None:
    client = MagicMock()
    client.resolve_folder.return_value = Folder(uuid="f", name="Secret")
    client.list_folder_assets.side_effect = PermanentRemoteError(403, "forbidden")

    with pytest.raises(ConfigurationError) as exc:
        folder_asset_items(client, ["Secret"])

    assert exc.value.exit_code == ExitCode.API


def test_resolve_asset_by_uuid_and_path() -> None:
    client = MagicMock()
    uuid = "123e4567-e89b-12d3-a456-426614174000"
    client.get_asset.return_value = Asset(uuid=uuid, path="P/a.stl")
    client.get_asset_by_path.return_value = Asset(uuid="x", path="P/b.stl")

    assert resolve_asset(client, uuid).path == "P/a.stl"
    assert resolve_asset(client, "P/b.stl").uuid == "x"
    assert [i.path for i in explicit_asset_items(client, [uuid, "P/b.stl"])] == ["P/a.stl", "P/b.stl"]


def test_missing_asset_path_is_not_found() -> None:
    client = MagicMock()
    client.get_asset_by_path.return_value = None

    with pytest.raises(ConfigurationError) as exc:
        resolve_asset(client, "P/missing.stl")

    assert exc.value.exit_code == ExitCode.NOT_FOUND


def test_local_files_map_to_remote_targets(tmp_path: Path) -> None:
    (tmp_path / "nested").mkdir()
    (tmp_path / "a.stl").write_bytes(b"a")
    (tmp_path / "nested" / "b.step").write_bytes(b"b")
    (tmp_path / ".hidden").write_bytes(b"h")

    items = local_file_items(str(tmp_path), "Remote/Dest")

    assert [i.target for i in items] == ["Remote/Dest/a.stl", "Remote/Dest/nested/b.step"]
    assert all(i.kind == KIND_FILE for i in items)


def test_missing_local_directory_is_fatal(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError) as exc:
        local_file_items(str(tmp_path / "absent"), "Remote")

    assert exc.value.exit_code == ExitCode.NO_INPUT
