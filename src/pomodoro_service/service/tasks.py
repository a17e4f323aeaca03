"""Task status and completion operations.

These mutate a task directly, independent of any session, through point updates
that leave the focus counters untouched. The only guard is
that the task exists.
"""

from __future__ import annotations

import logging

from pomodoro_service.domain.models import Task, TaskStatus
from pomodoro_service.errors import TaskNotFound
from pomodoro_service.service.sessions import Clock, utc_now
from pomodoro_service.storage.base import TaskStorage

logger = logging.getLogger(__name__)


class TaskService:
    def __init__(self, *, tasks: TaskStorage, clock: Clock = utc_now) -> None:
        self.tasks = tasks
        self.clock = clock

    def create_task(
        self,
        *,
        user_id: str,
        title: str,
        description: str = "",
        project_id: str | None = None,
    ) -> Task:
        now = self.clock()
        task = self.tasks.create_task(
            Task(
                user_id=user_id,
                title=title,
                description=description,
                project_id=project_id,
                status="pending",
                created_at=now,
                updated_at=now,
            )
        )
        logger.info("task event=create task_id=%s user_id=%s", task.task_id, user_id)
        return task

    def get_task(self, task_id: str) -> Task:
        task = self.tasks.get_task(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    def list_tasks(self, user_id: str) -> list[Task]:
        return self.tasks.list_tasks(user_id)

    def mark_completed(self, task_id: str) -> Task:
        # Point update so concurrent focus-counter increments are never overwritten.
        stored = self.tasks.set_status(task_id, "completed", at=self.clock())
        logger.info("task event=complete task_id=%s", task_id)
        return stored

    def update_status(self, task_id: str, status: TaskStatus) -> Task:
        """Move a task to pending, in_progress, or paused. Use mark_completed to finish it."""
        if status == "completed":
            return self.mark_completed(task_id)
        stored = self.tasks.set_status(task_id, status, at=self.clock())
        logger.info("task event=status task_id=%s status=%s", task_id, status)
        return stored
