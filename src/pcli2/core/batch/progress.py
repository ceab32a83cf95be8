from __future__ import annotations

"""
Progress Reporters.

Observers of the executor's ProgressEvent stream. The base reporter does
nothing; the rich-based reporter renders an aggregate bar plus, optionally,
one bar per worker slot showing the item that slot is working on. Neither
influences the outcome of a batch.
"""

import threading
from typing import Dict, Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from pcli2.domain.constants import MAX_ATTEMPTS
from pcli2.domain.models import (
    PHASE_RETRYING,
    PHASE_STARTED,
    ProgressEvent,
)


class ProgressReporter:
    """No-op reporter; also the interface every reporter implements."""

    def start(self, total: int, slots: int) -> None:
        pass

    def on_event(self, event: ProgressEvent) -> None:
        pass

    def stop(self) -> None:
        pass

    def __enter__(self) -> "ProgressReporter":
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()


class RichProgressReporter(ProgressReporter):
    """
    Terminal progress display built on rich.progress.

    Args:
        description: Label of the aggregate bar.
        show_workers: Add one bar per concurrent slot.
        console: Target console; defaults to stderr so stdout stays clean
            for the rendered report.
    """

    def __init__(
            self,
            description: str = "Processing",
            show_workers: bool = False,
            console: Optional[Console] = None,
    ) -> None:
        self._description = description
        self._show_workers = show_workers
        self._lock = threading.Lock()
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=console or Console(stderr=True),
            transient=False,
        )
        self._overall: Optional[TaskID] = None
        self._slot_tasks: Dict[int, TaskID] = {}
        self._started = False

    def start(self, total: int, slots: int) -> None:
        with self._lock:
            self._progress.start()
            self._started = True
            self._overall = self._progress.add_task(self._description, total=total)
            if self._show_workers:
                for slot in range(slots):
                    self._slot_tasks[slot] = self._progress.add_task(
                        f"  worker {slot + 1}: idle", total=MAX_ATTEMPTS
                    )

    def on_event(self, event: ProgressEvent) -> None:
        with self._lock:
            if not self._started or self._overall is None:
                return

            slot_task = self._slot_tasks.get(event.slot) if event.slot is not None else None
            if slot_task is not None:
                if event.phase == PHASE_STARTED:
                    self._progress.reset(slot_task, total=MAX_ATTEMPTS)
                    self._progress.update(slot_task, description=f"  worker {event.slot + 1}: {event.path}")
                elif event.phase == PHASE_RETRYING:
                    self._progress.update(
                        slot_task,
                        completed=event.attempt,
                        description=f"  worker {event.slot + 1}: {event.path} (attempt {event.attempt})",
                    )
                elif event.is_terminal:
                    self._progress.update(
                        slot_task,
                        completed=MAX_ATTEMPTS,
                        description=f"  worker {event.slot + 1}: idle",
                    )

            if event.is_terminal:
                self._progress.advance(self._overall)

    def stop(self) -> None:
        with self._lock:
            if self._started:
                self._progress.stop()
                self._started = False
