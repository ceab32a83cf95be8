from __future__ import annotations

"""
Unit tests for the Dependency Commands.

Verifies:
1. Folder-level resolution runs one root per assembly.
2. Root fetch errors are retried by the executor, then recorded per item.
3. --recursive toggles full expansion and only expands assemblies.
"""

from typing import List
from unittest.mock import MagicMock

from pcli2.core.services.common import BatchOptions
from pcli2.core.services.dependencies import asset_dependencies, folder_dependencies
from pcli2.domain.errors import TransientRemoteError
from pcli2.domain.models import Asset, Dependency, DependencyNode, Folder


def _dep(uuid: str, path: str) -> Dependency:
    return Dependency(path=path, asset=Asset(uuid=uuid, path=path, state="finished", is_assembly=path.endswith(".asm")))


def _client() -> MagicMock:
    client = MagicMock()
    client.resolve_folder.return_value = Folder(uuid="f", name="F", path="F")
    client.list_folder_assets.return_value = [
        Asset(uuid="asm1", path="F/one.asm", is_assembly=True, state="finished"),
        Asset(uuid="asm2", path="F/two.asm", is_assembly=True, state="finished"),
        Asset(uuid="prt", path="F/bolt.prt", state="finished"),
    ]
    graph = {
        "asm1": [_dep("sub", "F/sub.asm")],
        "asm2": [_dep("prt", "F/bolt.prt")],
        "sub": [_dep("prt", "F/bolt.prt")],
    }
    client.list_dependencies.side_effect = lambda uuid: graph.get(uuid, [])
    return client


def test_folder_dependencies_one_tree_per_assembly(no_sleep) -> None:
    outcome = folder_dependencies(_client(), ["F"], BatchOptions(recursive=True, concurrent=2), sleep=no_sleep)

    trees = sorted(outcome.payloads, key=lambda t: t.asset_path)
    assert [t.asset_path for t in trees] == ["F/one.asm", "F/two.asm"]
    assert all(isinstance(t, DependencyNode) for t in trees)
    assert trees[0].children[0].children[0].asset_path == "F/bolt.prt"
    assert outcome.report.total == 2


def test_non_recursive_direct_dependencies(no_sleep) -> None:
    client = _client()
    outcome = folder_dependencies(client, ["F"], BatchOptions(), sleep=no_sleep)

    one = next(t for t in outcome.payloads if t.asset_path == "F/one.asm")
    assert one.children[0].children == ()
    assert "sub" not in [c.args[0] for c in client.list_dependencies.call_args_list]


def test_root_transient_error_retried_by_executor(no_sleep) -> None:
    client = MagicMock()
    client.get_asset_by_path.return_value = Asset(uuid="asm", path="F/a.asm", is_assembly=True)
    calls: List[str] = []

    def fetch(uuid: str) -> List[Dependency]:
        calls.append(uuid)
        if len(calls) < 3:
            raise TransientRemoteError(429, "slow down")
        return []

    client.list_dependencies.side_effect = fetch
    outcome = asset_dependencies(client, ["F/a.asm"], BatchOptions(), sleep=no_sleep)

    assert outcome.report.succeeded == 1
    assert outcome.results[0].attempts == 3


def test_root_error_after_ceiling_is_failed_item(no_sleep) -> None:
    client = MagicMock()
    client.get_asset_by_path.return_value = Asset(uuid="asm", path="F/a.asm", is_assembly=True)
    client.list_dependencies.side_effect = TransientRemoteError(409, "locked")

    outcome = asset_dependencies(client, ["F/a.asm"], BatchOptions(), sleep=no_sleep)

    assert outcome.report.failed == 1
    assert outcome.report.failures[0].attempts == 3


def test_recursive_expansion_fetches_assemblies_only(no_sleep) -> None:
    """The shared bolt is a plain part, so only assemblies reach the service."""
    client = _client()
    folder_dependencies(client, ["F"], BatchOptions(recursive=True), sleep=no_sleep)

    assert sorted(c.args[0] for c in client.list_dependencies.call_args_list) == ["asm1", "asm2", "sub"]
