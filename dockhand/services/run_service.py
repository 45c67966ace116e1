"""
Background runs.

Pipelines are blocking calls; RunService runs them on a thread pool so a
caller can return immediately, poll the status, tail the deployment log,
or cancel. Each run gets its own CancellationToken, which the execution
backends watch to kill the in-flight process group.
"""

import logging
import threading
import uuid
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from dockhand.exceptions import NotFoundError, RunCancelled
from dockhand.services.execution import CancellationToken

logger = logging.getLogger(__name__)


class RunState(Enum):
    """Lifecycle of a background run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class Run:
    """A background run and its outcome."""

    run_id: str
    name: str
    token: CancellationToken
    state: RunState = RunState.PENDING
    error: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None
    future: Optional[Future] = None

    @property
    def is_finished(self) -> bool:
        return self.state in (RunState.SUCCEEDED, RunState.FAILED, RunState.CANCELLED)


class RunService:
    """
    Runs pipeline invocations in the background.

    Only the newest keep_finished finished runs stay queryable; older ones
    are dropped as new runs finish. Pending and running runs are never
    dropped.
    """

    def __init__(self, max_workers: int = 4, keep_finished: int = 100):
        self.keep_finished = keep_finished
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="dockhand-run"
        )
        self._runs: Dict[str, Run] = {}
        self._lock = threading.Lock()

    def submit(self, name: str, fn: Callable[[CancellationToken], Any]) -> str:
        """
        Start a run.

        Args:
            name: Human readable name, e.g. "deploy web"
            fn: Work to do; receives the run's cancellation token

        Returns:
            Run id
        """
        run = Run(run_id=uuid.uuid4().hex, name=name, token=CancellationToken())
        with self._lock:
            self._runs[run.run_id] = run
        run.future = self._executor.submit(self._execute, run, fn)
        logger.info("Submitted run %s (%s)", run.run_id, name)
        return run.run_id

    def get(self, run_id: str) -> Run:
        """
        Get a run.

        Raises:
            NotFoundError: If the id is unknown
        """
        with self._lock:
            run = self._runs.get(run_id)
        if run is None:
            raise NotFoundError("Run", run_id)
        return run

    def status(self, run_id: str) -> RunState:
        return self.get(run_id).state

    def list_runs(self) -> List[Run]:
        with self._lock:
            return list(self._runs.values())

    def cancel(self, run_id: str) -> bool:
        """
        Cancel a run.

        A pending run never starts; a running one has its current command
        killed and stops at that point.

        Returns:
            False if the run had already finished
        """
        run = self.get(run_id)
        if run.is_finished:
            return False

        run.token.cancel()
        if run.future is not None and run.future.cancel():
            self._mark(run, RunState.CANCELLED)
        logger.info("Cancelled run %s (%s)", run_id, run.name)
        return True

    def wait(self, run_id: str, timeout: Optional[float] = None) -> Any:
        """
        Block until a run finishes.

        Returns:
            Whatever the run's function returned

        Raises:
            The run's exception, RunCancelled if it was cancelled before starting
        """
        run = self.get(run_id)
        try:
            return run.future.result(timeout=timeout)
        except CancelledError:
            raise RunCancelled(f"Run {run_id} was cancelled before it started")

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting runs and optionally wait for the active ones."""
        self._executor.shutdown(wait=wait)

    def _execute(self, run: Run, fn: Callable[[CancellationToken], Any]) -> Any:
        self._mark(run, RunState.RUNNING)
        try:
            result = fn(run.token)
        except RunCancelled:
            self._mark(run, RunState.CANCELLED)
            raise
        except Exception as e:
            run.error = str(e)
            self._mark(run, RunState.CANCELLED if run.token.cancelled else RunState.FAILED)
            logger.error("Run %s (%s) failed: %s", run.run_id, run.name, e)
            raise
        self._mark(run, RunState.SUCCEEDED)
        return result

    def _mark(self, run: Run, state: RunState) -> None:
        with self._lock:
            run.state = state
            if run.is_finished:
                run.finished_at = datetime.now()
                self._evict_finished()

    def _evict_finished(self) -> None:
        finished = sorted(
            (r for r in self._runs.values() if r.is_finished), key=lambda r: r.finished_at
        )
        for old in finished[: max(len(finished) - self.keep_finished, 0)]:
            del self._runs[old.run_id]
            logger.debug("Dropped finished run %s (%s)", old.run_id, old.name)
