from __future__ import annotations

"""
Unit tests for the Geometric Match Commands.

Verifies:
1. Self matches are dropped and unordered pairs de-duplicated.
2. --exclusive keeps only matches inside the requested folders.
3. The threshold is validated before any remote call.
"""

from unittest.mock import MagicMock

import pytest

from pcli2.core.services.common import BatchOptions
from pcli2.core.services.matching import asset_geometric_match, dedupe_pairs, folder_geometric_match
from pcli2.domain.errors import ConfigurationError, PermanentRemoteError
from pcli2.domain.models import Asset, Folder, GeometricMatch, MatchPair

A = Asset(uuid="a", path="F/a.stl")
B = Asset(uuid="b", path="F/b.stl")
X = Asset(uuid="x", path="Other/x.stl")


def _client() -> MagicMock:
    client = MagicMock()
    client.resolve_folder.return_value = Folder(uuid="f", name="F", path="F")
    client.list_folder_assets.return_value = [A, B]
    client.geometric_search.side_effect = lambda uuid, threshold: {
        "a": [GeometricMatch(A, 100.0), GeometricMatch(B, 91.0), GeometricMatch(X, 85.0)],
        "b": [GeometricMatch(B, 100.0), GeometricMatch(A, 93.0)],
    }[uuid]
    return client


def test_pairs_deduplicated_with_highest_score(no_sleep) -> None:
    result = folder_geometric_match(_client(), ["F"], 80, BatchOptions(), sleep=no_sleep)

    keys = [(p.reference_uuid, p.candidate_uuid, p.match_percentage) for p in result.pairs]
    assert ("b", "a", 93.0) in keys
    assert ("a", "x", 85.0) in keys
    assert len(keys) == 2
    assert result.outcome.report.succeeded == 2


def test_exclusive_keeps_folder_members_only(no_sleep) -> None:
    result = folder_geometric_match(_client(), ["F"], 80, BatchOptions(), exclusive=True, sleep=no_sleep)

    assert [(p.reference_uuid, p.candidate_uuid) for p in result.pairs] == [("b", "a")]


def test_threshold_forwarded_and_validated(no_sleep) -> None:
    client = _client()
    folder_geometric_match(client, ["F"], "75.5", BatchOptions(), sleep=no_sleep)
    assert client.geometric_search.call_args.args[1] == 75.5

    with pytest.raises(ConfigurationError):
        folder_geometric_match(client, ["F"], 120, BatchOptions())


def test_search_failure_recorded_per_asset(no_sleep) -> None:
    client = _client()
    def search(uuid: str, threshold: float):
        if uuid == "b":
            raise PermanentRemoteError(500, "search unavailable")
        return [GeometricMatch(B, 90.0)]

    client.geometric_search.side_effect = search
    result = folder_geometric_match(client, ["F"], 80, BatchOptions(), sleep=no_sleep)

    assert result.outcome.report.failed == 1
    assert result.outcome.report.failures[0].item_id == "b"
    assert len(result.pairs) == 1


def test_dedupe_pairs_is_order_insensitive() -> None:
    forward = MatchPair("1", "p1", "2", "p2", 90.0)
    backward = MatchPair("2", "p2", "1", "p1", 95.0)

    assert dedupe_pairs([forward, backward]) == (backward,)
    assert dedupe_pairs([backward, forward]) == (backward,)


def test_explicit_asset_match(no_sleep) -> None:
    client = _client()
    client.get_asset_by_path.return_value = A

    result = asset_geometric_match(client, ["F/a.stl"], 80, BatchOptions(), sleep=no_sleep)

    assert {p.candidate_uuid for p in result.pairs} == {"b", "x"}
