from __future__ import annotations

"""
Batch Domain Data Models.

Defines the immutable data structures exchanged between the work item
sources, the bounded executor, the dependency resolver and the interface
layer, together with the records parsed from the remote service's JSON.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from pcli2.domain.constants import ASSET_STATE_MISSING, NIL_UUID

# -----------------------------------------------------------------------------
# WORK ITEMS
# -----------------------------------------------------------------------------

KIND_ASSET = "asset"
KIND_FOLDER = "folder"
KIND_FILE = "file"


@dataclass(frozen=True)
class WorkItem:
    """
    One unit of batch work.

    Attributes:
        kind: 'asset', 'folder' or 'file' (local file awaiting upload).
        path: Display path (remote asset/folder path, or local file path).
        uuid: Remote identity, when the item refers to a remote object.
        target: Operation-specific destination (local relative path for
            downloads, remote asset path for uploads).
        is_assembly: Whether the remote asset is an assembly.
        state: Processing state of the remote asset, when known.
    """
    kind: str
    path: str
    uuid: Optional[str] = None
    target: str = ""
    is_assembly: bool = False
    state: str = ""

    @property
    def item_id(self) -> str:
        return self.uuid or self.path

    @classmethod
    def for_asset(cls, asset: "Asset", target: str = "") -> "WorkItem":
        return cls(
            kind=KIND_ASSET,
            path=asset.path,
            uuid=asset.uuid,
            target=target,
            is_assembly=asset.is_assembly,
            state=asset.state,
        )


# -----------------------------------------------------------------------------
# OPERATION RESULTS
# -----------------------------------------------------------------------------

STATUS_SUCCEEDED = "succeeded"
STATUS_SKIPPED = "skipped"
STATUS_FAILED = "failed"


@dataclass(frozen=True)
class Succeeded:
    item: WorkItem
    payload: Any = None
    attempts: int = 1
    status: str = field(default=STATUS_SUCCEEDED, init=False)


@dataclass(frozen=True)
class Skipped:
    item: WorkItem
    reason: str
    attempts: int = field(default=0, init=False)
    status: str = field(default=STATUS_SKIPPED, init=False)


@dataclass(frozen=True)
class Failed:
    """
    Terminal failure of one work item.

    Attributes:
        item: The work item that failed.
        error: Detail of the last error observed.
        attempts: Remote calls made before giving up.
        error_type: Class name of the last error.
    """
    item: WorkItem
    error: str
    attempts: int
    error_type: str = ""
    status: str = field(default=STATUS_FAILED, init=False)


OperationResult = Union[Succeeded, Skipped, Failed]


# -----------------------------------------------------------------------------
# RETRY DECISIONS
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class Fatal:
    """Do not re-attempt."""


@dataclass(frozen=True)
class RetryAfter:
    delay: float


RetryDecision = Union[Fatal, RetryAfter]


# -----------------------------------------------------------------------------
# PROGRESS & STATISTICS
# -----------------------------------------------------------------------------

PHASE_STARTED = "started"
PHASE_RETRYING = "retrying"
PHASE_SUCCEEDED = "succeeded"
PHASE_SKIPPED = "skipped"
PHASE_FAILED = "failed"

TERMINAL_PHASES = frozenset({PHASE_SUCCEEDED, PHASE_SKIPPED, PHASE_FAILED})


@dataclass(frozen=True)
class ProgressEvent:
    item_id: str
    attempt: int
    phase: str
    slot: Optional[int] = None
    path: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES


@dataclass(frozen=True)
class FailureRecord:
    item_id: str
    path: str
    error: str
    attempts: int


@dataclass(frozen=True)
class StatisticsReport:
    """
    Snapshot of a batch's counters.

    Attributes:
        succeeded: Items whose operation completed.
        skipped: Items bypassed by the skip predicate.
        failed: Items whose operation failed terminally.
        total: Results collected (always succeeded + skipped + failed).
        planned: Items enumerated before the batch started.
        cancelled: Whether the batch stopped before starting every item.
        failures: One record per failed item.
    """
    succeeded: int
    skipped: int
    failed: int
    total: int
    planned: int
    cancelled: bool = False
    failures: Tuple[FailureRecord, ...] = ()

    @property
    def ok(self) -> bool:
        return self.failed == 0 and not self.cancelled


@dataclass(frozen=True)
class BatchOutcome:
    """Report plus the per-item results of one batch command."""
    report: StatisticsReport
    results: Tuple[OperationResult, ...] = ()

    @property
    def payloads(self) -> List[Any]:
        return [r.payload for r in self.results if isinstance(r, Succeeded)]


# -----------------------------------------------------------------------------
# DEPENDENCY TREES
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class DependencyNode:
    """
    One node of a resolved assembly tree.

    Attributes:
        asset_path: Remote path of the asset.
        asset_uuid: Remote identity (nil UUID for missing assets).
        state: Processing state reported by the service.
        parent_path: Path of the parent node; None for the root.
        children: Ordered child nodes.
        cycle: True when the asset repeats one of its ancestors and was
            not expanded.
        error: Detail of a failed dependency fetch for this node.
    """
    asset_path: str
    asset_uuid: str
    state: str
    parent_path: Optional[str] = None
    children: Tuple["DependencyNode", ...] = ()
    cycle: bool = False
    error: Optional[str] = None

    @property
    def name(self) -> str:
        return self.asset_path.rstrip("/").rsplit("/", 1)[-1]

    def walk(self, depth: int = 0):
        """Yield (depth, node) pairs in depth-first pre-order."""
        yield depth, self
        for child in self.children:
            yield from child.walk(depth + 1)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "assetPath": self.asset_path,
            "assetUuid": self.asset_uuid,
            "state": self.state,
            "parentPath": self.parent_path,
            "children": [c.to_dict() for c in self.children],
        }
        if self.cycle:
            out["cycle"] = True
        if self.error:
            out["error"] = self.error
        return out


# -----------------------------------------------------------------------------
# REMOTE RECORDS
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class Asset:
    uuid: str
    path: str
    state: str = ""
    is_assembly: bool = False
    folder_uuid: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def name(self) -> str:
        return self.path.rstrip("/").rsplit("/", 1)[-1]

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Asset":
        return cls(
            uuid=str(data.get("id", "")),
            path=str(data.get("path", "")),
            state=str(data.get("state", "")),
            is_assembly=bool(data.get("isAssembly", False)),
            folder_uuid=data.get("folderId"),
            metadata=_parse_metadata(data.get("metadata")),
        )


@dataclass(frozen=True)
class Folder:
    uuid: str
    name: str
    path: str = ""
    parent_uuid: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any], parent_path: str = "") -> "Folder":
        name = str(data.get("name", ""))
        path = f"{parent_path.rstrip('/')}/{name}" if parent_path else name
        return cls(
            uuid=str(data.get("id", "")),
            name=name,
            path=path,
            parent_uuid=data.get("parentFolderId"),
        )


@dataclass(frozen=True)
class Dependency:
    """A direct dependency entry; `asset` is None when the part is missing."""
    path: str
    asset: Optional[Asset] = None
    occurrences: int = 1
    has_dependencies: bool = False

    @property
    def uuid(self) -> str:
        return self.asset.uuid if self.asset else NIL_UUID

    @property
    def state(self) -> str:
        return self.asset.state if self.asset else ASSET_STATE_MISSING

    @property
    def may_have_dependencies(self) -> bool:
        """Assemblies and entries flagged by the service; plain parts are leaves."""
        return self.has_dependencies or (self.asset is not None and self.asset.is_assembly)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Dependency":
        raw_asset = data.get("asset")
        asset = Asset.from_api(raw_asset) if raw_asset else None
        path = data.get("path") or (asset.path if asset else "")
        return cls(
            path=str(path),
            asset=asset,
            occurrences=int(data.get("occurrences", 1) or 1),
            has_dependencies=bool(data.get("hasDependencies", False)),
        )


@dataclass(frozen=True)
class GeometricMatch:
    asset: Asset
    match_percentage: float

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "GeometricMatch":
        return cls(
            asset=Asset.from_api(data.get("asset") or {}),
            match_percentage=float(data.get("matchPercentage", 0.0)),
        )


@dataclass(frozen=True)
class MatchPair:
    reference_uuid: str
    reference_path: str
    candidate_uuid: str
    candidate_path: str
    match_percentage: float

    @property
    def key(self) -> Tuple[str, str]:
        """Order-insensitive identity of the pair."""
        a, b = sorted((self.reference_uuid, self.candidate_uuid))
        return a, b


def _parse_metadata(raw: Any) -> Dict[str, Any]:
    """Accept both the mapping and the [{name, value}] list shapes."""
    if isinstance(raw, dict):
        return dict(raw)
    out: Dict[str, Any] = {}
    if isinstance(raw, list):
        for entry in raw:
            if isinstance(entry, dict):
                key = entry.get("name") or entry.get("key")
                if key:
                    out[str(key)] = entry.get("value")
    return out
