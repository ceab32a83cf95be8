from __future__ import annotations

"""
Statistics Aggregator.

Reduces the OperationResults delivered by concurrent workers into the
final counters. All updates go through one lock, so delivery order and
concurrency level never change the outcome.
"""

import threading
from typing import List

from pcli2.domain.models import (
    Failed,
    FailureRecord,
    OperationResult,
    Skipped,
    StatisticsReport,
    Succeeded,
)


class StatisticsAggregator:
    """
    Thread-safe counters for one batch.

    Args:
        planned: Number of work items enumerated for the batch.
    """

    def __init__(self, planned: int = 0) -> None:
        self._lock = threading.Lock()
        self._planned = planned
        self._succeeded = 0
        self._skipped = 0
        self._failed = 0
        self._failures: List[FailureRecord] = []
        self._cancelled = False

    def add(self, result: OperationResult) -> None:
        """Record one result. Commutative: the order of calls is irrelevant."""
        with self._lock:
            if isinstance(result, Succeeded):
                self._succeeded += 1
            elif isinstance(result, Skipped):
                self._skipped += 1
            elif isinstance(result, Failed):
                self._failed += 1
                self._failures.append(FailureRecord(
                    item_id=result.item.item_id,
                    path=result.item.path,
                    error=result.error,
                    attempts=result.attempts,
                ))
            else:
                raise TypeError(f"Unknown operation result: {type(result).__name__}")

    def expand_plan(self, count: int) -> None:
        """Add items discovered by a later stage of a multi-stage batch."""
        with self._lock:
            self._planned += count

    def mark_cancelled(self) -> None:
        with self._lock:
            self._cancelled = True

    def report(self) -> StatisticsReport:
        """
        Take an immutable snapshot of the counters.

        Failures are sorted by path so the report is stable regardless of
        the order in which workers finished.
        """
        with self._lock:
            total = self._succeeded + self._skipped + self._failed
            return StatisticsReport(
                succeeded=self._succeeded,
                skipped=self._skipped,
                failed=self._failed,
                total=total,
                planned=max(self._planned, total),
                cancelled=self._cancelled,
                failures=tuple(sorted(self._failures, key=lambda f: (f.path, f.item_id))),
            )
