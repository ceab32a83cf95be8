from __future__ import annotations

"""
Skip Predicates.

Decide, before any remote call, whether a work item's end state already
exists. Downloads check the local destination; uploads ask the service
whether an asset with the same remote path is present. A failed existence
check never fails the item: it only means the item is not skippable.
"""

import logging
from dataclasses import dataclass
from typing import Callable

from pcli2.domain.models import WorkItem
from pcli2.infra.fs import artifact_exists

logger = logging.getLogger(__name__)

REASON_EXISTS_LOCALLY = "destination file already exists"
REASON_EXISTS_REMOTELY = "remote asset already exists"


@dataclass(frozen=True)
class SkipPredicate:
    """
    Existence check bound to a destination resolver.

    Attributes:
        destination_for: Maps a work item to the path whose existence is checked.
        exists: Existence check for a destination.
        reason: Reason recorded on the Skipped result.
        enabled: Whether the user opted in (--resume / --skip-existing).
    """
    destination_for: Callable[[WorkItem], str]
    exists: Callable[[str], bool]
    reason: str
    enabled: bool = True

    def should_skip(self, item: WorkItem, destination: str) -> bool:
        """
        Evaluate the predicate for one destination.

        Args:
            item: Work item under evaluation.
            destination: Resolved destination of the item.

        Returns:
            bool: True only when enabled and the destination is known to exist.
        """
        if not self.enabled:
            return False
        try:
            return bool(self.exists(destination))
        except Exception as e:
            logger.warning(f"Existence check failed for {item.path}: {e}. Processing normally.")
            return False

    def evaluate(self, item: WorkItem) -> bool:
        """Resolve the destination of an item and evaluate the predicate."""
        if not self.enabled:
            return False
        return self.should_skip(item, self.destination_for(item))


def download_skip_predicate(resume: bool, destination_for: Callable[[WorkItem], str]) -> SkipPredicate:
    """Skip downloads whose destination file is already on disk."""
    return SkipPredicate(
        destination_for=destination_for,
        exists=artifact_exists,
        reason=REASON_EXISTS_LOCALLY,
        enabled=resume,
    )


def upload_skip_predicate(
        skip_existing: bool,
        remote_exists: Callable[[str], bool],
) -> SkipPredicate:
    """Skip uploads whose remote path already holds an asset."""
    return SkipPredicate(
        destination_for=lambda item: item.target,
        exists=remote_exists,
        reason=REASON_EXISTS_REMOTELY,
        enabled=skip_existing,
    )
