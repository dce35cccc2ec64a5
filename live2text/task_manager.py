"""Named background tasks that run in threads and can be cancelled by name."""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass, field
from typing import Protocol

from live2text.concurrency import Context

_log = logging.getLogger(__name__)


class TaskIsRunningError(Exception):
    """Raised when a task with the same name is already registered."""


class RunnableTask(Protocol):
    def run(self, context: Context) -> None: ...


class _Status(enum.Enum):
    PREPARING = enum.auto()
    RUNNING = enum.auto()
    FINISHED = enum.auto()


@dataclass
class _Task:
    task: RunnableTask
    context: Context
    status: _Status = _Status.PREPARING
    error: BaseException | None = None


@dataclass(frozen=True)
class TaskManagerStatus:
    total_tasks: int
    task_names: list[str] = field(default_factory=list)


class TaskManager:
    """Runs tasks in threads, each with a child of the manager's context."""

    def __init__(self, context: Context) -> None:
        self._context = context
        self._cond = threading.Condition()
        self._tasks: dict[str, _Task] = {}
        self._running = 0

    def wait(self, timeout: float | None = None) -> bool:
        """Block until every started task has returned; False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: self._running == 0, timeout)

    def go(self, name: str, task: RunnableTask) -> None:
        """Start ``task`` under ``name``; raise TaskIsRunningError if the name is taken."""
        with self._cond:
            if name in self._tasks:
                raise TaskIsRunningError("task is already running")
            record = _Task(task=task, context=self._context.child())
            self._tasks[name] = record
            self._running += 1
        threading.Thread(
            target=self._run, args=(name, record), name=f"task-{name}", daemon=True
        ).start()

    def _run(self, name: str, record: _Task) -> None:
        try:
            record.status = _Status.RUNNING
            try:
                record.task.run(record.context)
            except Exception as exc:
                record.error = exc
                _log.exception("Task %s failed", name)
            record.status = _Status.FINISHED
            with self._cond:
                if self._tasks.get(name) is record:
                    del self._tasks[name]
            record.context.cancel()
        finally:
            with self._cond:
                self._running -= 1
                self._cond.notify_all()

    def cancel(self, name: str) -> bool:
        """Cancel and forget the task; return False if there was none."""
        with self._cond:
            record = self._tasks.pop(name, None)
        if record is None:
            return False
        record.context.cancel()
        return True

    def status(self) -> TaskManagerStatus:
        with self._cond:
            names = list(self._tasks)
        return TaskManagerStatus(len(names), names)

    def get(self, name: str) -> RunnableTask | None:
        with self._cond:
            record = self._tasks.get(name)
        return None if record is None else record.task

    def has(self, name: str) -> bool:
        with self._cond:
            return name in self._tasks