from __future__ import annotations

"""
Report Renderers.

Turn batch outcomes into JSON, CSV or tree text for stdout. Every renderer
lists each failed item with its identity and error detail; a failure is
never folded into the succeeded rows.
"""

import csv
import io
import json
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from pcli2.core.services.matching import MatchOutcome
from pcli2.core.services.metadata import MetadataOutcome
from pcli2.domain.models import (
    BatchOutcome,
    DependencyNode,
    Failed,
    MatchPair,
    OperationResult,
    Skipped,
    StatisticsReport,
    Succeeded,
)

DEPENDENCY_CSV_HEADER = ["ASSET_PATH", "ASSET_UUID", "STATE", "PARENT_PATH", "ASSEMBLY_PATH", "NOTE"]
MATCH_CSV_HEADER = [
    "REFERENCE_ASSET_PATH", "CANDIDATE_ASSET_PATH", "MATCH_PERCENTAGE",
    "REFERENCE_ASSET_UUID", "CANDIDATE_ASSET_UUID", "ERROR",
]
RESULT_CSV_HEADER = ["PATH", "ID", "STATUS", "ATTEMPTS", "DETAIL"]

CYCLE_NOTE = "cycle (not expanded)"

# -----------------------------------------------------------------------------
# SHARED CONVERSIONS
# -----------------------------------------------------------------------------

def report_to_dict(report: StatisticsReport) -> Dict[str, Any]:
    return {
        "succeeded": report.succeeded,
        "skipped": report.skipped,
        "failed": report.failed,
        "total": report.total,
        "planned": report.planned,
        "cancelled": report.cancelled,
        "failures": [
            {"id": f.item_id, "path": f.path, "error": f.error, "attempts": f.attempts}
            for f in report.failures
        ],
    }


def result_to_dict(result: OperationResult) -> Dict[str, Any]:
    """Convert one OperationResult into a JSON-friendly mapping."""
    out: Dict[str, Any] = {
        "id": result.item.item_id,
        "path": result.item.path,
        "status": result.status,
        "attempts": result.attempts,
    }
    if isinstance(result, Succeeded) and result.payload is not None:
        out["payload"] = _jsonable(result.payload)
    elif isinstance(result, Skipped):
        out["reason"] = result.reason
    elif isinstance(result, Failed):
        out["error"] = result.error
    return out


def summary_line(report: StatisticsReport) -> str:
    line = (
        f"Succeeded: {report.succeeded}  Skipped: {report.skipped}  "
        f"Failed: {report.failed}  Total: {report.total}/{report.planned}"
    )
    if report.cancelled:
        line += "  (cancelled)"
    return line


def _jsonable(value: Any) -> Any:
    if isinstance(value, DependencyNode):
        return value.to_dict()
    if isinstance(value, MatchPair):
        return _pair_to_dict(value)
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _dump_json(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, indent=2)


def _write_csv(header: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(header)
    writer.writerows(rows)
    return buffer.getvalue()


def _failed(results: Iterable[OperationResult]) -> List[Failed]:
    return sorted((r for r in results if isinstance(r, Failed)), key=lambda r: r.item.path)


def _failure_lines(results: Iterable[OperationResult]) -> List[str]:
    failures = _failed(results)
    if not failures:
        return []
    lines = ["", "Failures:"]
    lines.extend(f"  {f.item.path} [{f.item.item_id}] after {f.attempts} attempt(s): {f.error}" for f in failures)
    return lines

# -----------------------------------------------------------------------------
# GENERIC BATCH (DOWNLOAD / UPLOAD)
# -----------------------------------------------------------------------------

def render_batch(outcome: BatchOutcome, fmt: str) -> str:
    """Render a per-item batch such as a download or an upload."""
    if fmt == "json":
        return _dump_json({
            "summary": report_to_dict(outcome.report),
            "results": [result_to_dict(r) for r in _ordered(outcome.results)],
        })

    if fmt == "csv":
        return _write_csv(RESULT_CSV_HEADER, (_result_row(r) for r in _ordered(outcome.results)))

    lines = [f"{_status_mark(r)} {r.item.path}{_status_suffix(r)}" for r in _ordered(outcome.results)]
    lines.extend(["", summary_line(outcome.report)])
    return "\n".join(lines) + "\n"


def _ordered(results: Iterable[OperationResult]) -> List[OperationResult]:
    return sorted(results, key=lambda r: r.item.path)


def _result_row(result: OperationResult) -> List[Any]:
    detail = ""
    if isinstance(result, Skipped):
        detail = result.reason
    elif isinstance(result, Failed):
        detail = result.error
    elif isinstance(result.payload, dict):
        detail = result.payload.get("file") or result.payload.get("assetPath") or ""
    return [result.item.path, result.item.item_id, result.status, result.attempts, detail]


def _status_mark(result: OperationResult) -> str:
    return {"succeeded": "[ok]  ", "skipped": "[skip]", "failed": "[fail]"}[result.status]


def _status_suffix(result: OperationResult) -> str:
    if isinstance(result, Skipped):
        return f" ({result.reason})"
    if isinstance(result, Failed):
        return f": {result.error} (attempts: {result.attempts})"
    return ""

# -----------------------------------------------------------------------------
# DEPENDENCY TREES
# -----------------------------------------------------------------------------

def render_dependencies(outcome: BatchOutcome, fmt: str) -> str:
    """
    Render resolved dependency trees.

    CSV flattens every tree to one row per node; ASSEMBLY_PATH is the chain
    of asset names from the root down to the node. Failed roots appear as
    rows with state 'failed' and the error in the NOTE column.
    """
    trees = [r.payload for r in _ordered(outcome.results) if isinstance(r, Succeeded)]

    if fmt == "json":
        return _dump_json({
            "summary": report_to_dict(outcome.report),
            "trees": [t.to_dict() for t in trees],
            "failures": [result_to_dict(f) for f in _failed(outcome.results)],
        })

    if fmt == "csv":
        rows: List[List[Any]] = []
        for tree in trees:
            rows.extend(flatten_tree(tree))
        for f in _failed(outcome.results):
            rows.append([f.item.path, f.item.uuid or "", "failed", "", f.item.path.rsplit("/", 1)[-1], f.error])
        return _write_csv(DEPENDENCY_CSV_HEADER, rows)

    lines: List[str] = []
    for tree in trees:
        lines.extend(tree_lines(tree))
        lines.append("")
    lines.append(summary_line(outcome.report))
    lines.extend(_failure_lines(outcome.results))
    return "\n".join(lines) + "\n"


def flatten_tree(root: DependencyNode) -> List[List[Any]]:
    """One CSV row per node, depth-first pre-order."""
    return [
        [node.asset_path, node.asset_uuid, node.state, node.parent_path or "", assembly_path, _node_note(node)]
        for node, assembly_path in _with_assembly_paths(root, "")
    ]


def _with_assembly_paths(node: DependencyNode, prefix: str) -> Iterator[Tuple[DependencyNode, str]]:
    path = f"{prefix}/{node.name}" if prefix else node.name
    yield node, path
    for child in node.children:
        yield from _with_assembly_paths(child, path)


def _node_note(node: DependencyNode) -> str:
    if node.cycle:
        return CYCLE_NOTE
    return node.error or ""


def tree_lines(root: DependencyNode) -> List[str]:
    """Render one tree with box-drawing connectors."""
    lines = [f"{root.asset_path} [{root.state or '-'}]{_tree_marker(root)}"]
    _render_children(root.children, lines, "")
    return lines


def _render_children(children: Sequence[DependencyNode], lines: List[str], prefix: str) -> None:
    total = len(children)
    for i, node in enumerate(children):
        is_last = (i == total - 1)
        connector = "└── " if is_last else "├── "
        lines.append(f"{prefix}{connector}{node.name} [{node.state or '-'}]{_tree_marker(node)}")
        _render_children(node.children, lines, prefix + ("    " if is_last else "│   "))


def _tree_marker(node: DependencyNode) -> str:
    if node.cycle:
        return " (cycle)"
    if node.error:
        return f" (error: {node.error})"
    return ""

# -----------------------------------------------------------------------------
# GEOMETRIC MATCHES
# -----------------------------------------------------------------------------

def render_matches(match: MatchOutcome, fmt: str) -> str:
    outcome = match.outcome

    if fmt == "json":
        return _dump_json({
            "summary": report_to_dict(outcome.report),
            "matches": [_pair_to_dict(p) for p in match.pairs],
            "failures": [result_to_dict(f) for f in _failed(outcome.results)],
        })

    if fmt == "csv":
        rows: List[List[Any]] = [
            [p.reference_path, p.candidate_path, f"{p.match_percentage:.2f}", p.reference_uuid, p.candidate_uuid, ""]
            for p in match.pairs
        ]
        rows.extend([f.item.path, "", "", f.item.uuid or "", "", f.error] for f in _failed(outcome.results))
        return _write_csv(MATCH_CSV_HEADER, rows)

    lines: List[str] = []
    current: Optional[str] = None
    for pair in sorted(match.pairs, key=lambda p: (p.reference_path, -p.match_percentage)):
        if pair.reference_path != current:
            current = pair.reference_path
            lines.append(current)
        lines.append(f"  -> {pair.candidate_path} ({pair.match_percentage:.2f}%)")
    lines.extend(["", summary_line(outcome.report)])
    lines.extend(_failure_lines(outcome.results))
    return "\n".join(lines) + "\n"


def _pair_to_dict(pair: MatchPair) -> Dict[str, Any]:
    return {
        "referenceAssetPath": pair.reference_path,
        "referenceAssetUuid": pair.reference_uuid,
        "candidateAssetPath": pair.candidate_path,
        "candidateAssetUuid": pair.candidate_uuid,
        "matchPercentage": pair.match_percentage,
    }

# -----------------------------------------------------------------------------
# METADATA INFERENCE
# -----------------------------------------------------------------------------

def render_metadata(result: MetadataOutcome, fmt: str) -> str:
    outcome = result.outcome

    if fmt == "json":
        return _dump_json({
            "reference": result.reference_path,
            "metadata": result.metadata,
            "levels": result.levels,
            "summary": report_to_dict(outcome.report),
            "results": [result_to_dict(r) for r in _ordered(outcome.results)],
            "searchFailures": [
                {"id": f.item_id, "path": f.path, "error": f.error, "attempts": f.attempts}
                for f in result.search_failures
            ],
        })

    if fmt == "csv":
        return _write_csv(RESULT_CSV_HEADER, (_result_row(r) for r in _ordered(outcome.results)))

    fields = ", ".join(f"{k}={v}" for k, v in result.metadata.items())
    lines = [f"{result.reference_path}: {fields}"]
    lines.extend(f"  {_status_mark(r)} {r.item.path}{_status_suffix(r)}" for r in _ordered(outcome.results))
    lines.extend(f"  [search failed] {f.path}: {f.error}" for f in result.search_failures)
    lines.extend(["", summary_line(outcome.report)])
    return "\n".join(lines) + "\n"
