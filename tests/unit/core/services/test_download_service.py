from __future__ import annotations

"""
Unit tests for the Download Commands.

Verifies:
1. Only finished assets are downloaded, assemblies as '<stem>.zip'.
2. The remote subfolder structure is mirrored locally.
3. --resume skips existing files without calling the service.
4. Invalid bounds are rejected before the folder is listed.
5. Flat-layout name collisions fail the later asset instead of overwriting.
"""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from pcli2.core.services.common import BatchOptions
from pcli2.core.services.downloads import download_assets, download_folder, download_target
from pcli2.domain.errors import ConfigurationError, LocalIOError
from pcli2.domain.models import Asset, Folder, Skipped, Succeeded


def _client() -> MagicMock:
    client = MagicMock()
    client.resolve_folder.return_value = Folder(uuid="root", name="Parts", path="Parts")
    client.list_folder_assets.side_effect = lambda uuid: {
        "root": [
            Asset(uuid="a", path="Parts/a.stl", state="finished"),
            Asset(uuid="asm", path="Parts/motor.asm", state="finished", is_assembly=True),
            Asset(uuid="p", path="Parts/pending.stl", state="processing"),
        ],
        "sub": [Asset(uuid="b", path="Parts/sub/b.stl", state="Finished")],
    }[uuid]
    client.list_subfolders.side_effect = lambda uuid, parent="": {
        "root": [Folder(uuid="sub", name="sub", path="Parts/sub")],
        "sub": [],
    }[uuid]
    client.download_asset.side_effect = lambda uuid, dest: 42
    return client


def test_download_target_names() -> None:
    assert download_target(Asset(uuid="1", path="F/a.stl"), "") == "a.stl"
    assert download_target(Asset(uuid="2", path="F/motor.asm", is_assembly=True), "x/y") == "x/y/motor.zip"


def test_folder_download_mirrors_structure(tmp_path: Path, no_sleep) -> None:
    client = _client()
    outcome = download_folder(client, ["Parts"], str(tmp_path), BatchOptions(concurrent=2), sleep=no_sleep)

    destinations = sorted(call.args[1] for call in client.download_asset.call_args_list)
    assert destinations == sorted([
        str(tmp_path / "a.stl"),
        str(tmp_path / "motor.zip"),
        str(tmp_path / "sub" / "b.stl"),
    ])
    assert outcome.report.succeeded == 3
    assert outcome.report.total == 3
    assert all(p["bytes"] == 42 for p in outcome.payloads)


def test_resume_skips_existing_files(tmp_path: Path, no_sleep) -> None:
    (tmp_path / "a.stl").write_bytes(b"already here")
    client = _client()

    outcome = download_folder(
        client, ["Parts"], str(tmp_path), BatchOptions(resume=True, delay=1.0), sleep=no_sleep
    )

    skipped = [r for r in outcome.results if isinstance(r, Skipped)]
    assert [r.item.uuid for r in skipped] == ["a"]
    assert "a" not in [call.args[0] for call in client.download_asset.call_args_list]
    assert outcome.report.skipped == 1
    assert no_sleep.calls == [1.0, 1.0]


def test_write_failure_fails_only_that_item(tmp_path: Path, no_sleep) -> None:
    client = _client()

    def download(uuid: str, dest: str) -> int:
        if uuid == "asm":
            raise LocalIOError("disk full")
        return 1

    client.download_asset.side_effect = download
    outcome = download_folder(client, ["Parts"], str(tmp_path), BatchOptions(), sleep=no_sleep)

    assert outcome.report.failed == 1
    assert outcome.report.succeeded == 2
    assert outcome.report.failures[0].path == "Parts/motor.asm"


def test_invalid_concurrency_rejected_before_listing(tmp_path: Path) -> None:
    client = _client()

    with pytest.raises(ConfigurationError):
        download_folder(client, ["Parts"], str(tmp_path), BatchOptions(concurrent=11))

    client.resolve_folder.assert_not_called()


def test_explicit_assets_download(tmp_path: Path, no_sleep) -> None:
    client = MagicMock()
    client.get_asset_by_path.return_value = Asset(uuid="a", path="F/a.stl", state="finished")
    client.download_asset.return_value = 3

    outcome = download_assets(client, ["F/a.stl"], str(tmp_path), BatchOptions(), sleep=no_sleep)

    assert isinstance(outcome.results[0], Succeeded)
    client.download_asset.assert_called_once_with("a", str(tmp_path / "a.stl"))


def test_flat_layout_name_collision_fails_later_asset(tmp_path: Path, no_sleep) -> None:
    """Two assets named part.stl: the first is downloaded, the second is a failed item."""
    assets = {
        "A/part.stl": Asset(uuid="a", path="A/part.stl", state="finished"),
        "B/part.stl": Asset(uuid="b", path="B/part.stl", state="finished"),
    }
    client = MagicMock()
    client.get_asset_by_path.side_effect = lambda path: assets[path]
    client.download_asset.return_value = 3

    outcome = download_assets(
        client, ["A/part.stl", "B/part.stl", "A/part.stl"], str(tmp_path), BatchOptions(), sleep=no_sleep
    )

    client.download_asset.assert_called_once_with("a", str(tmp_path / "part.stl"))
    assert outcome.report.succeeded == 1
    assert outcome.report.failed == 1
    assert outcome.report.total == outcome.report.planned == 2
    failure = outcome.report.failures[0]
    assert failure.path == "B/part.stl"
    assert "collision" in failure.error and "A/part.stl" in failure.error
