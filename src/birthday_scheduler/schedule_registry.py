from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from birthday_scheduler.date_logic import schedule_expression
from birthday_scheduler.timer_service import ScheduleConflict, ScheduleNotFound, TimerService

LOGGER = logging.getLogger(__name__)


class ScheduleRegistry:
    """Create-or-replace and idempotent delete of named timers."""

    def __init__(self, timer_service: TimerService) -> None:
        self._timers = timer_service

    async def arm(self, name: str, target_instant: datetime, payload: dict[str, Any]) -> None:
        try:
            await self._timers.create(name, target_instant, payload, delete_after_firing=True)
        except ScheduleConflict:
            LOGGER.info("Schedule %s already exists, updating", name)
            await self._timers.update(name, target_instant, payload)
            LOGGER.info("Schedule UPDATED %s at %s", name, schedule_expression(target_instant))
            return
        LOGGER.info("Schedule CREATED %s at %s", name, schedule_expression(target_instant))

    async def disarm(self, name: str) -> None:
        try:
            await self._timers.delete(name)
        except ScheduleNotFound:
            LOGGER.warning("No schedule found to delete for %s", name)
            return
        LOGGER.info("Schedule deleted %s", name)
