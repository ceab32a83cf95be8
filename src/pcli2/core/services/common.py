from __future__ import annotations

"""
Batch Command Wiring.

Shared options of every batch command and the factory that assembles a
BoundedExecutor (progress display, throttle, failure mode) from them.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from pcli2.core.batch.executor import BoundedExecutor
from pcli2.core.batch.progress import ProgressReporter, RichProgressReporter
from pcli2.core.batch.skip import SkipPredicate
from pcli2.domain.constants import DEFAULT_CONCURRENCY, DEFAULT_DELAY_SECONDS


@dataclass(frozen=True)
class BatchOptions:
    """
    User-selected behaviour of a batch command.

    Attributes:
        concurrent: Maximum operations in flight.
        delay: Throttle after each non-skipped item, in seconds.
        progress: Render progress bars on stderr.
        resume: Skip downloads whose destination file exists.
        skip_existing: Skip uploads whose remote asset exists.
        continue_on_error: Report success even when some items failed.
        fail_fast: Stop starting new items after the first failure.
        recursive: Expand dependency trees / propagate metadata transitively.
    """
    concurrent: int = DEFAULT_CONCURRENCY
    delay: float = DEFAULT_DELAY_SECONDS
    progress: bool = False
    resume: bool = False
    skip_existing: bool = False
    continue_on_error: bool = False
    fail_fast: bool = False
    recursive: bool = False


def build_executor(
        options: BatchOptions,
        *,
        description: str,
        skip: Optional[SkipPredicate] = None,
        cancel_event: Optional[threading.Event] = None,
        sleep: Callable[[float], None] = time.sleep,
) -> BoundedExecutor:
    """
    Assemble the executor for one command.

    Raises:
        ConfigurationError: If the concurrency or delay bounds are invalid.
    """
    if options.progress:
        progress: ProgressReporter = RichProgressReporter(description, show_workers=options.concurrent > 1)
    else:
        progress = ProgressReporter()

    return BoundedExecutor(
        options.concurrent,
        skip=skip,
        progress=progress,
        delay=options.delay,
        abort_on_failure=options.fail_fast,
        cancel_event=cancel_event,
        sleep=sleep,
    )
