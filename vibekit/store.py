"""In-memory record of tasks returned by the agent."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from threading import Lock
from typing import Sequence

from vibekit.errors import VibkitError
from vibekit.schemas import Message, Task

logger = logging.getLogger(__name__)

DEFAULT_MAX_TASKS = 1000


@dataclass
class StoredTask:
    """A task and the messages that led to it."""

    task: Task
    history: list[Message] = field(default_factory=list)


class InMemoryTaskStore:
    """Bounded task store; oldest entries are evicted first."""

    def __init__(self, max_tasks: int = DEFAULT_MAX_TASKS):
        self.max_tasks = max_tasks
        self._tasks: dict[str, StoredTask] = {}
        self._lock = Lock()

    def save(self, task: Task, history: Sequence[Message] = ()) -> None:
        """Store a copy of the task, replacing any entry with the same id."""
        entry = StoredTask(
            task=task.model_copy(deep=True),
            history=[message.model_copy(deep=True) for message in history],
        )
        with self._lock:
            self._tasks.pop(task.id, None)
            self._tasks[task.id] = entry
            while len(self._tasks) > self.max_tasks:
                evicted = next(iter(self._tasks))
                del self._tasks[evicted]
                logger.debug(f"Evicted task {evicted}")

    def load(self, task_id: str) -> StoredTask:
        """Return a copy of a stored task.

        Raises:
            VibkitError: TaskNotFound
        """
        with self._lock:
            entry = self._tasks.get(task_id)
        if entry is None:
            raise VibkitError.task_not_found(task_id)
        return StoredTask(
            task=entry.task.model_copy(deep=True),
            history=[message.model_copy(deep=True) for message in entry.history],
        )

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)
