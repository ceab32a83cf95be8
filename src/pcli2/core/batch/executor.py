from __future__ import annotations

"""
Bounded Executor.

Runs a per-item operation over a fully enumerated list of work items with
at most N operations in flight. Every item goes through the same lifecycle:
skip check, attempt, retry on transient errors up to the policy ceiling,
optional throttle, exactly one OperationResult. Per-item errors and
progress display errors never escape run(); only invalid bounds (raised
before any work starts) do.

Cancellation is cooperative: once the cancel event is set, items that have
not started are never started, in-flight items finish their current
attempt without retrying, and the results collected so far are returned.
"""

import logging
import queue
import signal
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from typing import Any, Callable, Iterable, Iterator, List, Optional

from pcli2.core.batch.progress import ProgressReporter
from pcli2.core.batch.retry import DEFAULT_RETRY_POLICY, RetryPolicy
from pcli2.core.batch.skip import SkipPredicate
from pcli2.core.batch.statistics import StatisticsAggregator
from pcli2.core.validator import validate_batch_options
from pcli2.domain.constants import DEFAULT_CONCURRENCY
from pcli2.domain.models import (
    PHASE_FAILED,
    PHASE_RETRYING,
    PHASE_SKIPPED,
    PHASE_STARTED,
    PHASE_SUCCEEDED,
    BatchOutcome,
    Failed,
    OperationResult,
    ProgressEvent,
    RetryAfter,
    Skipped,
    Succeeded,
    WorkItem,
)

logger = logging.getLogger(__name__)

Operation = Callable[[WorkItem], Any]


class BoundedExecutor:
    """
    Generic bounded-concurrency scheduler for batch commands.

    Args:
        concurrency: Maximum operations in flight (validated, never clamped).
        retry_policy: Classifier deciding which errors are re-attempted.
        skip: Optional predicate bypassing items whose end state exists.
        progress: Observer of per-attempt events.
        delay: Throttle in seconds applied after every non-skipped item.
        abort_on_failure: Stop starting new items after the first failure.
        cancel_event: Shared event signalling cooperative cancellation.
        sleep: Injectable sleep function for retry and throttle waits.

    Raises:
        ConfigurationError: If concurrency or delay is out of range.
    """

    def __init__(
            self,
            concurrency: int = DEFAULT_CONCURRENCY,
            *,
            retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
            skip: Optional[SkipPredicate] = None,
            progress: Optional[ProgressReporter] = None,
            delay: float = 0.0,
            abort_on_failure: bool = False,
            cancel_event: Optional[threading.Event] = None,
            sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.concurrency, self.delay = validate_batch_options(concurrency, delay)
        self.retry_policy = retry_policy
        self.skip = skip
        self.progress = progress or ProgressReporter()
        self.abort_on_failure = abort_on_failure
        self.cancel_event = cancel_event or threading.Event()
        self._sleep = sleep
        self._stop_starting = threading.Event()
        self._slots: "queue.Queue[int]" = queue.Queue()

    # -------------------------------------------------------------------------
    # PUBLIC API
    # -------------------------------------------------------------------------

    def run(
            self,
            items: Iterable[WorkItem],
            operation: Operation,
            statistics: Optional[StatisticsAggregator] = None,
    ) -> List[OperationResult]:
        """
        Execute operation for every item.

        Args:
            items: The enumerated work items.
            operation: Remote call for one item; its return value becomes the
                Succeeded payload, any exception is classified by the policy.
            statistics: Aggregator receiving each result as it is produced.

        Returns:
            List[OperationResult]: One result per started item, in completion
                                   order. Unstarted items only occur after
                                   cancellation or an abort-on-failure stop.
        """
        work = list(items)
        stats = statistics or StatisticsAggregator(planned=len(work))
        results: List[OperationResult] = []

        self._stop_starting.clear()
        self._slots = queue.Queue()
        for slot in range(self.concurrency):
            self._slots.put(slot)

        logger.info(f"Batch started: {len(work)} item(s), concurrency {self.concurrency}")

        self._observe(self.progress.start, len(work), self.concurrency)
        try:
            with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="BatchWorker") as pool:
                futures = [pool.submit(self._process, item, operation, stats) for item in work]
                for future in as_completed(futures):
                    result = future.result()
                    if result is not None:
                        results.append(result)
        finally:
            self._observe(self.progress.stop)

        if len(results) < len(work):
            stats.mark_cancelled()
            logger.warning(f"Batch stopped early: {len(work) - len(results)} item(s) not started.")

        logger.info(f"Batch finished: {len(results)}/{len(work)} item(s) processed")
        return results

    def execute(self, items: Iterable[WorkItem], operation: Operation) -> BatchOutcome:
        """Run the batch and bundle the statistics snapshot with the results."""
        work = list(items)
        stats = StatisticsAggregator(planned=len(work))
        results = self.run(work, operation, stats)
        return BatchOutcome(report=stats.report(), results=tuple(results))

    # -------------------------------------------------------------------------
    # PER-ITEM LIFECYCLE
    # -------------------------------------------------------------------------

    def _should_start(self) -> bool:
        return not (self.cancel_event.is_set() or self._stop_starting.is_set())

    def _process(
            self,
            item: WorkItem,
            operation: Operation,
            stats: StatisticsAggregator,
    ) -> Optional[OperationResult]:
        """Run the full lifecycle of one item; None when it was never started."""
        if not self._should_start():
            return None

        slot = self._slots.get()
        try:
            self._emit(item, 0, PHASE_STARTED, slot)

            if self.skip is not None and self.skip.evaluate(item):
                result: OperationResult = Skipped(item=item, reason=self.skip.reason)
                logger.debug(f"Skipped {item.path}: {self.skip.reason}")
                stats.add(result)
                self._emit(item, 0, PHASE_SKIPPED, slot)
                return result

            result = self._attempt_loop(item, operation, slot)
            stats.add(result)

            if isinstance(result, Failed) and self.abort_on_failure:
                self._stop_starting.set()

            if self.delay > 0 and not self.cancel_event.is_set():
                self._sleep(self.delay)
            return result
        finally:
            self._slots.put(slot)

    def _attempt_loop(self, item: WorkItem, operation: Operation, slot: int) -> OperationResult:
        attempt = 0
        while True:
            attempt += 1
            try:
                payload = operation(item)
            except Exception as e:
                decision = self.retry_policy.classify(e)
                can_retry = self.retry_policy.should_retry(decision, attempt)

                if can_retry and not self.cancel_event.is_set():
                    logger.info(f"Retrying {item.path} after attempt {attempt}: {e}")
                    self._emit(item, attempt, PHASE_RETRYING, slot)
                    if isinstance(decision, RetryAfter):
                        self._sleep(decision.delay)
                    continue

                logger.error(f"Failed {item.path} after {attempt} attempt(s): {e}")
                logger.debug("Failure detail", exc_info=True)
                self._emit(item, attempt, PHASE_FAILED, slot)
                return Failed(item=item, error=str(e), attempts=attempt, error_type=type(e).__name__)

            logger.debug(f"Completed {item.path} in {attempt} attempt(s)")
            self._emit(item, attempt, PHASE_SUCCEEDED, slot)
            return Succeeded(item=item, payload=payload, attempts=attempt)

    def _emit(self, item: WorkItem, attempt: int, phase: str, slot: Optional[int]) -> None:
        self._observe(self.progress.on_event, ProgressEvent(
            item_id=item.item_id,
            attempt=attempt,
            phase=phase,
            slot=slot,
            path=item.path,
        ))

    @staticmethod
    def _observe(hook: Callable[..., None], *args: Any) -> None:
        """Call a progress hook; display errors never change an item's outcome."""
        try:
            hook(*args)
        except Exception as e:
            logger.warning(f"Progress display error ignored: {e}")
            logger.debug("Progress display error detail", exc_info=True)


# -----------------------------------------------------------------------------
# SIGNAL HANDLING
# -----------------------------------------------------------------------------

@contextmanager
def cancel_on_signals(cancel_event: threading.Event) -> Iterator[threading.Event]:
    """
    Translate SIGINT/SIGTERM into cooperative cancellation.

    The first signal sets the event; a second SIGINT raises KeyboardInterrupt
    to force an exit. Previous handlers are restored on exit. Outside the
    main thread no handler can be installed and the event is yielded as-is.

    Args:
        cancel_event: Event shared with the executor.

    Yields:
        threading.Event: The same event.
    """
    if threading.current_thread() is not threading.main_thread():
        yield cancel_event
        return

    def _handler(signum: int, frame: Any) -> None:
        if cancel_event.is_set() and signum == signal.SIGINT:
            raise KeyboardInterrupt
        logger.warning(
            f"Received {signal.Signals(signum).name}: finishing in-flight items, no new items will start."
        )
        cancel_event.set()

    watched = [signal.SIGINT]
    if hasattr(signal, "SIGTERM"):
        watched.append(signal.SIGTERM)

    previous = {sig: signal.signal(sig, _handler) for sig in watched}
    try:
        yield cancel_event
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
