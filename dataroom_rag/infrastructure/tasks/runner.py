"""In-process background task execution.

Tasks are defined once with an id and a wall-clock limit, then triggered
with a payload. Each trigger schedules a run on the event loop and returns a
handle immediately; callers never wait for the run to finish.
"""

import asyncio
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from ..logging import get_logger

logger = get_logger(__name__)

TaskFunction = Callable[[Dict[str, Any]], Awaitable[Any]]

DEFAULT_MAX_FINISHED_RUNS = 100


class RunStatus(str, Enum):
    """Lifecycle of a task run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELED = "canceled"


@dataclass(frozen=True)
class TaskDefinition:
    """A named unit of background work."""

    id: str
    run: TaskFunction
    max_duration: Optional[float] = None


@dataclass(frozen=True)
class TaskHandle:
    """Returned by ``TaskRunner.trigger``."""

    id: str
    task_id: str


@dataclass
class TaskRun:
    """State of one triggered run."""

    id: str
    task_id: str
    payload: Dict[str, Any]
    tags: Tuple[str, ...] = ()
    idempotency_key: Optional[str] = None
    status: RunStatus = RunStatus.RUNNING
    result: Any = None
    error: Optional[str] = None
    task: Optional["asyncio.Task[None]"] = field(default=None, repr=False)


class UnknownTaskError(KeyError):
    """Raised when triggering a task id that was never defined."""


class TaskRunner:
    """Schedules task runs as asyncio tasks.

    A trigger carrying the idempotency key of a run that is still running
    returns that run's handle instead of starting a second run. Finished
    runs are kept for ``max_finished_runs`` later lookups, oldest evicted
    first.
    """

    def __init__(self, max_finished_runs: int = DEFAULT_MAX_FINISHED_RUNS) -> None:
        self.max_finished_runs = max_finished_runs
        self._definitions: Dict[str, TaskDefinition] = {}
        self._runs: Dict[str, TaskRun] = {}
        self._finished: "OrderedDict[str, TaskRun]" = OrderedDict()
        self._active_keys: Dict[str, str] = {}

    def define(self, task_id: str, run: TaskFunction, max_duration: Optional[float] = None) -> TaskDefinition:
        """Register ``run`` under ``task_id``, replacing any previous definition."""
        definition = TaskDefinition(id=task_id, run=run, max_duration=max_duration)
        self._definitions[task_id] = definition
        return definition

    async def trigger(
        self,
        task_id: str,
        payload: Dict[str, Any],
        idempotency_key: Optional[str] = None,
        tags: Iterable[str] = (),
    ) -> TaskHandle:
        """Start a run of ``task_id`` in the background.

        Raises:
            UnknownTaskError: If no task is defined under ``task_id``
        """
        definition = self._definitions.get(task_id)
        if definition is None:
            raise UnknownTaskError(task_id)

        if idempotency_key and idempotency_key in self._active_keys:
            existing = self._runs[self._active_keys[idempotency_key]]
            logger.info(
                "Idempotency key matches a running task, returning existing run",
                extra={"task_id": task_id, "run_id": existing.id, "idempotency_key": idempotency_key},
            )
            return TaskHandle(id=existing.id, task_id=task_id)

        run = TaskRun(
            id=f"run_{uuid.uuid4().hex}",
            task_id=task_id,
            payload=dict(payload),
            tags=tuple(tags),
            idempotency_key=idempotency_key,
        )
        self._runs[run.id] = run
        if idempotency_key:
            self._active_keys[idempotency_key] = run.id

        run.task = asyncio.create_task(self._execute(run, definition), name=f"{task_id}:{run.id}")
        logger.info("Task triggered", extra={"task_id": task_id, "run_id": run.id, "tags": ",".join(run.tags)})
        return TaskHandle(id=run.id, task_id=task_id)

    def get_run(self, run_id: str) -> Optional[TaskRun]:
        return self._runs.get(run_id) or self._finished.get(run_id)

    @property
    def active_runs(self) -> List[TaskRun]:
        return [run for run in self._runs.values() if run.status == RunStatus.RUNNING]

    async def wait(self, run_id: str) -> TaskRun:
        """Wait for a run to finish and return its final state."""
        run = self.get_run(run_id)
        if run is None:
            raise KeyError(run_id)
        if run.task is not None:
            await asyncio.wait({run.task})
        return run

    async def wait_all(self) -> None:
        """Wait for every run, including runs triggered while waiting."""
        while True:
            pending = {run.task for run in self._runs.values() if run.task is not None and not run.task.done()}
            if not pending:
                return
            await asyncio.wait(pending)

    async def shutdown(self) -> None:
        """Cancel active runs and wait for their cleanup to complete."""
        tasks = [run.task for run in self.active_runs if run.task is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Task runner stopped", extra={"canceled_runs": len(tasks)})

    async def _execute(self, run: TaskRun, definition: TaskDefinition) -> None:
        try:
            if definition.max_duration is not None:
                run.result = await asyncio.wait_for(definition.run(run.payload), timeout=definition.max_duration)
            else:
                run.result = await definition.run(run.payload)
            run.status = RunStatus.COMPLETED
        except asyncio.TimeoutError:
            run.status = RunStatus.TIMED_OUT
            run.error = f"Exceeded maximum duration of {definition.max_duration}s"
            logger.error("Task run timed out", extra={"task_id": run.task_id, "run_id": run.id})
        except asyncio.CancelledError:
            run.status = RunStatus.CANCELED
            raise
        except Exception as e:
            run.status = RunStatus.FAILED
            run.error = str(e)
            logger.exception("Task run failed", extra={"task_id": run.task_id, "run_id": run.id})
        finally:
            if run.idempotency_key and self._active_keys.get(run.idempotency_key) == run.id:
                del self._active_keys[run.idempotency_key]
            self._retire(run)

    def _retire(self, run: TaskRun) -> None:
        self._runs.pop(run.id, None)
        self._finished[run.id] = run
        while len(self._finished) > self.max_finished_runs:
            self._finished.popitem(last=False)
