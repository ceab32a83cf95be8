from __future__ import annotations

"""
Geometric Match Commands.

Delegate a geometric search to the service for every asset in one or more
folders and collect the matching pairs. Self matches are dropped and each
unordered pair is reported once, with the higher of its two scores.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from pcli2.core.batch.sources import explicit_asset_items, folder_asset_items
from pcli2.core.services.common import BatchOptions, build_executor
from pcli2.core.validator import validate_threshold
from pcli2.domain.models import BatchOutcome, MatchPair, WorkItem
from pcli2.infra.network.api_client import PhysnaApiClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchOutcome:
    """Batch outcome plus the de-duplicated match pairs."""
    outcome: BatchOutcome
    pairs: Tuple[MatchPair, ...] = ()


def folder_geometric_match(
        client: PhysnaApiClient,
        folder_refs: Iterable[str],
        threshold: float,
        options: BatchOptions,
        *,
        exclusive: bool = False,
        cancel_event: Optional[threading.Event] = None,
        sleep: Callable[[float], None] = time.sleep,
) -> MatchOutcome:
    """
    Search geometric matches for every asset of the given folders.

    Args:
        client: API client.
        folder_refs: Folder UUIDs or paths.
        threshold: Minimum match percentage (0 to 100).
        options: Batch options; --recursive walks subfolders.
        exclusive: Keep only matches that are themselves in the folders.
        cancel_event: Cooperative cancellation flag.
        sleep: Sleep used for retry and throttle waits.

    Returns:
        MatchOutcome: Report, per-asset results and unique pairs.

    Raises:
        ConfigurationError: Invalid threshold or inaccessible folder.
    """
    threshold = validate_threshold(threshold)
    executor = build_executor(options, description="Matching", cancel_event=cancel_event, sleep=sleep)

    items = folder_asset_items(client, folder_refs, recursive=options.recursive)
    scope = {item.uuid for item in items if item.uuid} if exclusive else None

    outcome = executor.execute(items, _match_operation(client, threshold, scope))
    return MatchOutcome(outcome=outcome, pairs=dedupe_pairs(_collect(outcome)))


def asset_geometric_match(
        client: PhysnaApiClient,
        asset_refs: Iterable[str],
        threshold: float,
        options: BatchOptions,
        *,
        cancel_event: Optional[threading.Event] = None,
        sleep: Callable[[float], None] = time.sleep,
) -> MatchOutcome:
    """Search geometric matches for explicitly named assets."""
    threshold = validate_threshold(threshold)
    executor = build_executor(options, description="Matching", cancel_event=cancel_event, sleep=sleep)

    items = explicit_asset_items(client, asset_refs)
    outcome = executor.execute(items, _match_operation(client, threshold, None))
    return MatchOutcome(outcome=outcome, pairs=dedupe_pairs(_collect(outcome)))


# -----------------------------------------------------------------------------
# PAIR HANDLING
# -----------------------------------------------------------------------------

def dedupe_pairs(pairs: Iterable[MatchPair]) -> Tuple[MatchPair, ...]:
    """
    Keep one pair per unordered (reference, candidate) combination.

    A->B and B->A are the same pair; the one with the higher score wins.
    Output is sorted by descending score, then by paths.
    """
    best: Dict[Tuple[str, str], MatchPair] = {}
    for pair in pairs:
        current = best.get(pair.key)
        if current is None or pair.match_percentage > current.match_percentage:
            best[pair.key] = pair
    return tuple(sorted(
        best.values(),
        key=lambda p: (-p.match_percentage, p.reference_path, p.candidate_path),
    ))


def _collect(outcome: BatchOutcome) -> List[MatchPair]:
    pairs: List[MatchPair] = []
    for payload in outcome.payloads:
        pairs.extend(payload or ())
    return pairs


def _match_operation(
        client: PhysnaApiClient,
        threshold: float,
        scope: Optional[Set[str]],
) -> Callable[[WorkItem], List[MatchPair]]:
    def _match(item: WorkItem) -> List[MatchPair]:
        pairs = []
        for match in client.geometric_search(item.uuid or "", threshold):
            if match.asset.uuid == item.uuid:
                continue
            if scope is not None and match.asset.uuid not in scope:
                continue
            pairs.append(MatchPair(
                reference_uuid=item.uuid or "",
                reference_path=item.path,
                candidate_uuid=match.asset.uuid,
                candidate_path=match.asset.path,
                match_percentage=match.match_percentage,
            ))
        logger.debug(f"{item.path}: {len(pairs)} match(es) at {threshold:g}%")
        return pairs

    return _match
