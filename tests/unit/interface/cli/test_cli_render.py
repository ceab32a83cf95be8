from __future__ import annotations

"""
Unit tests for the Report Renderers.

Verifies:
1. JSON reports carry the summary and every result.
2. Dependency trees flatten to the CSV columns with assembly paths.
3. Failed items are listed in every format.
"""

import csv
import io
import json

import pytest

from pcli2.core.services.matching import MatchOutcome
from pcli2.core.services.metadata import MetadataOutcome
from pcli2.domain.models import (
    BatchOutcome,
    DependencyNode,
    Failed,
    FailureRecord,
    MatchPair,
    Skipped,
    StatisticsReport,
    Succeeded,
    WorkItem,
)
from pcli2.interface.cli import render

OK = WorkItem(kind="asset", path="F/a.stl", uuid="a")
SKIP = WorkItem(kind="asset", path="F/b.stl", uuid="b")
BAD = WorkItem(kind="asset", path="F/c.stl", uuid="c")


def _batch() -> BatchOutcome:
    report = StatisticsReport(
        succeeded=1, skipped=1, failed=1, total=3, planned=3,
        failures=(FailureRecord("c", "F/c.stl", "HTTP 404: gone", 1),),
    )
    return BatchOutcome(report=report, results=(
        Succeeded(item=OK, payload={"file": "/out/a.stl", "bytes": 3}),
        Skipped(item=SKIP, reason="destination file already exists"),
        Failed(item=BAD, error="HTTP 404: gone", attempts=1),
    ))


def _tree_outcome() -> BatchOutcome:
    cycle = DependencyNode("F/top.asm", "t", "finished", "F/sub.asm", cycle=True)
    broken = DependencyNode("F/broken.asm", "x", "finished", "F/top.asm", error="HTTP 403: forbidden")
    sub = DependencyNode("F/sub.asm", "s", "finished", "F/top.asm", children=(cycle,))
    root = DependencyNode("F/top.asm", "t", "finished", None, children=(sub, broken))
    report = StatisticsReport(1, 0, 1, 2, 2, failures=(FailureRecord("r", "F/root2.asm", "HTTP 500: x", 3),))
    return BatchOutcome(report=report, results=(
        Succeeded(item=WorkItem(kind="asset", path="F/top.asm", uuid="t"), payload=root),
        Failed(item=WorkItem(kind="asset", path="F/root2.asm", uuid="r"), error="HTTP 500: x", attempts=3),
    ))


@pytest.mark.parametrize("fmt", ["json", "csv", "tree"])
def test_failures_listed_in_every_format(fmt: str) -> None:
    for text in (render.render_batch(_batch(), fmt), render.render_dependencies(_tree_outcome(), fmt)):
        assert "HTTP 404: gone" in text or "HTTP 500: x" in text


def test_batch_json_shape() -> None:
    data = json.loads(render.render_batch(_batch(), "json"))

    assert data["summary"]["total"] == 3
    assert [r["status"] for r in data["results"]] == ["succeeded", "skipped", "failed"]
    assert data["results"][1]["reason"] == "destination file already exists"
    assert data["results"][2]["error"] == "HTTP 404: gone"


def test_dependency_csv_columns_and_assembly_paths() -> None:
    rows = list(csv.reader(io.StringIO(render.render_dependencies(_tree_outcome(), "csv"))))

    assert rows[0] == ["ASSET_PATH", "ASSET_UUID", "STATE", "PARENT_PATH", "ASSEMBLY_PATH", "NOTE"]
    by_assembly = {r[4]: r for r in rows[1:]}
    assert by_assembly["top.asm"][3] == ""
    assert by_assembly["top.asm/sub.asm"][3] == "F/top.asm"
    assert by_assembly["top.asm/sub.asm/top.asm"][5] == render.CYCLE_NOTE
    assert by_assembly["top.asm/broken.asm"][5] == "HTTP 403: forbidden"
    assert by_assembly["root2.asm"][2] == "failed"


def test_dependency_tree_text_markers() -> None:
    text = render.render_dependencies(_tree_outcome(), "tree")

    assert text.splitlines()[0] == "F/top.asm [finished]"
    assert "├── sub.asm [finished]" in text
    assert "(cycle)" in text
    assert "(error: HTTP 403: forbidden)" in text
    assert "Failures:" in text


def test_dependency_json_nested() -> None:
    data = json.loads(render.render_dependencies(_tree_outcome(), "json"))

    assert data["trees"][0]["children"][0]["children"][0]["cycle"] is True
    assert data["failures"][0]["path"] == "F/root2.asm"


def test_match_csv_rows() -> None:
    pair = MatchPair("a", "F/a.stl", "b", "F/b.stl", 93.456)
    match = MatchOutcome(outcome=_batch(), pairs=(pair,))

    rows = list(csv.reader(io.StringIO(render.render_matches(match, "csv"))))
    assert rows[0][:3] == ["REFERENCE_ASSET_PATH", "CANDIDATE_ASSET_PATH", "MATCH_PERCENTAGE"]
    assert rows[1][:3] == ["F/a.stl", "F/b.stl", "93.46"]
    assert rows[2][0] == "F/c.stl" and rows[2][5] == "HTTP 404: gone"


def test_metadata_tree_lists_fields() -> None:
    result = MetadataOutcome(outcome=_batch(), reference_path="F/ref.stl", metadata={"material": "steel"}, levels=1)

    text = render.render_metadata(result, "tree")
    assert text.startswith("F/ref.stl: material=steel")
    assert "[fail] F/c.stl" in text


def test_metadata_reports_failed_match_searches() -> None:
    """An updated asset whose own search failed is listed apart from the update results."""
    failure = FailureRecord(item_id="a", path="F/a.stl", error="HTTP 500: boom", attempts=1)
    result = MetadataOutcome(
        outcome=_batch(), reference_path="F/ref.stl", metadata={"material": "steel"},
        levels=1, search_failures=(failure,),
    )

    data = json.loads(render.render_metadata(result, "json"))
    assert data["searchFailures"] == [{"id": "a", "path": "F/a.stl", "error": "HTTP 500: boom", "attempts": 1}]
    assert data["summary"]["failed"] == 1
    assert "[search failed] F/a.stl: HTTP 500: boom" in render.render_metadata(result, "tree")
