from __future__ import annotations

"""
Metadata Inference.

Copies selected metadata fields from a reference asset to every asset the
service reports as geometrically similar. Each match update is one work
item of the bounded executor. With --recursive, the matches of each
updated asset are searched in turn and processed level by level; a
processed set guarantees that no asset is updated twice and that the
propagation terminates.

Searches for the next level run as their own quiet batch after the level's
updates. A failed search is logged and recorded in search_failures; it
never turns an applied update into a failure or repeats it.
"""

import logging
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from pcli2.core.batch.executor import BoundedExecutor
from pcli2.core.batch.sources import resolve_asset
from pcli2.core.batch.statistics import StatisticsAggregator
from pcli2.core.services.common import BatchOptions, build_executor
from pcli2.core.validator import validate_threshold
from pcli2.domain.errors import ConfigurationError, ExitCode, PcliError
from pcli2.domain.models import (
    Asset,
    BatchOutcome,
    Failed,
    FailureRecord,
    OperationResult,
    Succeeded,
    WorkItem,
)
from pcli2.infra.network.api_client import PhysnaApiClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetadataOutcome:
    """
    Result of a metadata inference run.

    Attributes:
        outcome: Combined report and results across every level.
        reference_path: Path of the reference asset.
        metadata: Field values copied to the matches.
        levels: Number of propagation levels processed.
        search_failures: Updated assets whose own match search failed, so
                         their matches were not propagated to.
    """
    outcome: BatchOutcome
    reference_path: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    levels: int = 0
    search_failures: Tuple[FailureRecord, ...] = ()


def infer_metadata(
        client: PhysnaApiClient,
        reference_ref: str,
        field_names: Iterable[str],
        threshold: float,
        options: BatchOptions,
        *,
        exclusive: bool = False,
        cancel_event: Optional[threading.Event] = None,
        sleep: Callable[[float], None] = time.sleep,
) -> MetadataOutcome:
    """
    Propagate metadata fields from a reference asset to its geometric matches.

    Args:
        client: API client.
        reference_ref: UUID or path of the reference asset.
        field_names: Metadata fields to copy.
        threshold: Minimum match percentage (0 to 100).
        options: Batch options; --recursive propagates transitively.
        exclusive: Only update matches located in the reference's folder.
        cancel_event: Cooperative cancellation flag.
        sleep: Sleep used for retry and throttle waits.

    Returns:
        MetadataOutcome: Combined report of every update.

    Raises:
        ConfigurationError: Invalid threshold, unknown reference, reference
            without any of the requested fields, or failed initial search.
    """
    threshold = validate_threshold(threshold)
    cancel_event = cancel_event or threading.Event()
    executor = build_executor(options, description="Updating metadata", cancel_event=cancel_event, sleep=sleep)

    reference = resolve_asset(client, reference_ref)
    values = _select_fields(reference, field_names)
    folder = _parent_path(reference.path)

    def in_scope(asset: Asset) -> bool:
        return not exclusive or _parent_path(asset.path) == folder

    def _update(item: WorkItem) -> Dict[str, Any]:
        client.update_asset_metadata(item.uuid or "", values)
        logger.info(f"Updated metadata of {item.path}")
        return {"assetPath": item.path, "assetUuid": item.uuid, "metadata": dict(values)}

    searcher = build_executor(
        replace(options, progress=False, fail_fast=False),
        description="Searching matches",
        cancel_event=cancel_event,
        sleep=sleep,
    )

    processed: Set[str] = {reference.uuid}
    candidates = _initial_candidates(client, reference, threshold)
    stats = StatisticsAggregator()
    results: List[OperationResult] = []
    search_failures: List[FailureRecord] = []
    levels = 0

    while True:
        items = _next_level(candidates, processed, in_scope)
        if not items or cancel_event.is_set():
            break

        levels += 1
        logger.info(f"Metadata level {levels}: {len(items)} asset(s)")
        stats.expand_plan(len(items))
        level_results = executor.run(items, _update, stats)
        results.extend(level_results)

        if not options.recursive or len(level_results) < len(items):
            break
        if options.fail_fast and stats.report().failed:
            break

        updated = [r.item for r in level_results if isinstance(r, Succeeded)]
        candidates, failures = _search_matches(searcher, client, updated, threshold)
        search_failures.extend(failures)

    outcome = BatchOutcome(report=stats.report(), results=tuple(results))
    return MetadataOutcome(
        outcome=outcome,
        reference_path=reference.path,
        metadata=values,
        levels=levels,
        search_failures=tuple(search_failures),
    )


# -----------------------------------------------------------------------------
# PRIVATE HELPERS
# -----------------------------------------------------------------------------

def _select_fields(reference: Asset, field_names: Iterable[str]) -> Dict[str, Any]:
    wanted = [name for name in field_names if name]
    values = {name: reference.metadata[name] for name in wanted if name in reference.metadata}
    if not values:
        raise ConfigurationError(
            f"Reference asset {reference.path} has none of the metadata fields: {', '.join(wanted)}",
            exit_code=ExitCode.DATA,
        )
    missing = [name for name in wanted if name not in values]
    if missing:
        logger.warning(f"Reference asset lacks field(s) {', '.join(missing)}; they are not propagated.")
    return values


def _initial_candidates(client: PhysnaApiClient, reference: Asset, threshold: float) -> List[Asset]:
    """The first search defines the work set, so its failure is fatal."""
    try:
        return [m.asset for m in client.geometric_search(reference.uuid, threshold)]
    except PcliError as e:
        raise ConfigurationError(
            f"Geometric search failed for {reference.path}: {e}", exit_code=e.exit_code
        ) from e


def _search_matches(
        searcher: BoundedExecutor,
        client: PhysnaApiClient,
        items: List[WorkItem],
        threshold: float,
) -> Tuple[List[Asset], List[FailureRecord]]:
    """Collect the matches of every updated asset; failed searches are logged, not raised."""
    if not items:
        return [], []

    def _search(item: WorkItem) -> List[Asset]:
        return [m.asset for m in client.geometric_search(item.uuid or "", threshold)]

    found: List[Asset] = []
    failures: List[FailureRecord] = []
    for result in searcher.run(items, _search):
        if isinstance(result, Succeeded):
            found.extend(result.payload)
        elif isinstance(result, Failed):
            logger.warning(f"Match search failed for {result.item.path}; its matches are not updated: {result.error}")
            failures.append(FailureRecord(
                item_id=result.item.item_id,
                path=result.item.path,
                error=result.error,
                attempts=result.attempts,
            ))
    return found, failures


def _next_level(
        candidates: Iterable[Asset],
        processed: Set[str],
        in_scope: Callable[[Asset], bool],
) -> Tuple[WorkItem, ...]:
    items: List[WorkItem] = []
    for asset in candidates:
        if not asset.uuid or asset.uuid in processed or not in_scope(asset):
            continue
        processed.add(asset.uuid)
        items.append(WorkItem.for_asset(asset))
    return tuple(items)


def _parent_path(path: str) -> str:
    return path.strip("/").rpartition("/")[0]
