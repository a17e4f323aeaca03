"""Completed-cycle history."""

from __future__ import annotations

import logging
from datetime import datetime

from pomodoro_service.domain.models import PomodoroCycle
from pomodoro_service.service.sessions import Clock, utc_now
from pomodoro_service.storage.base import CycleStorage

logger = logging.getLogger(__name__)


class CycleService:
    def __init__(self, *, cycles: CycleStorage, clock: Clock = utc_now) -> None:
        self.cycles = cycles
        self.clock = clock

    def register_cycle(
        self,
        *,
        user_id: str,
        task_id: str,
        duration: int,
        started_at: datetime,
        finished_at: datetime | None = None,
        break_used: bool = False,
    ) -> PomodoroCycle:
        if finished_at is not None and finished_at < started_at:
            raise ValueError("finished_at must not be earlier than started_at")
        cycle = self.cycles.save_cycle(
            PomodoroCycle(
                user_id=user_id,
                task_id=task_id,
                duration=duration,
                started_at=started_at,
                finished_at=finished_at or self.clock(),
                break_used=break_used,
            )
        )
        logger.info(
            "cycle event=register cycle_id=%s task_id=%s duration=%s",
            cycle.cycle_id,
            task_id,
            duration,
        )
        return cycle

    def cycles_for_task(self, task_id: str) -> list[PomodoroCycle]:
        return self.cycles.list_cycles_for_task(task_id)
