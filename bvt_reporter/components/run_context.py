"""
Run Context - Per-run correlation state shared by aggregator, pipeline and recovery
"""
import asyncio
from collections import deque
from typing import Deque, Iterable, Optional, Set

from ..config import Settings


class RunContext:
    """
    Everything one run needs to correlate its work.

    Holds the remote run identity, the artifact storage root, the set of
    deliveries still in flight, the queue of step indices attempted by
    earlier processes, and the fatal error (if any) that aborted the run.
    One context exists per run, so a single process can host several runs.
    """

    def __init__(
        self,
        run_name: Optional[str] = None,
        run_id: Optional[str] = None,
        project_id: Optional[str] = None,
        artifact_root: Optional[str] = None,
        previous_attempts: Iterable[int] = (),
    ):
        self.run_name = run_name
        self.run_id = run_id
        self.project_id = project_id
        self.artifact_root = artifact_root
        self.previous_attempts: Deque[int] = deque(previous_attempts)
        self.fatal_error: Optional[BaseException] = None
        self.local_report_counter = 0

        self.in_flight: Set[asyncio.Task] = set()
        self._drained = asyncio.Event()
        self._drained.set()
        self._finished = asyncio.Event()

    @classmethod
    def from_settings(cls, config: Settings, run_name: Optional[str] = None) -> "RunContext":
        return cls(
            run_name=run_name,
            run_id=config.RUN_ID,
            project_id=config.PROJECT_ID,
            previous_attempts=config.previous_failed_steps(),
        )

    @property
    def has_run(self) -> bool:
        return bool(self.run_id and self.project_id)

    # In-flight tracking

    def begin_delivery(self, task: asyncio.Task):
        self.in_flight.add(task)
        self._drained.clear()
        task.add_done_callback(self.end_delivery)

    def end_delivery(self, task: asyncio.Task):
        self.in_flight.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.abort(task.exception())
        if not self.in_flight:
            self._drained.set()

    async def wait_drained(self):
        """Block until no delivery is in flight."""
        await self._drained.wait()

    # Completion

    def abort(self, error: BaseException):
        """Record a fatal error; the first one wins."""
        if self.fatal_error is None:
            self.fatal_error = error
        self._finished.set()

    def mark_finished(self):
        self._finished.set()

    @property
    def finished(self) -> bool:
        return self._finished.is_set()

    def raise_if_aborted(self):
        if self.fatal_error is not None:
            raise self.fatal_error

    async def wait_until_complete(self):
        """
        Wait for the finish signal and for in-flight deliveries to drain.

        Raises:
            The fatal error recorded through abort(), if any
        """
        await self._finished.wait()
        await self._drained.wait()
        self.raise_if_aborted()
