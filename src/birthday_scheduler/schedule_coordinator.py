from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from birthday_scheduler.date_logic import DEFAULT_DELIVERY_HOUR, next_occurrence, validate_leap_day_rule
from birthday_scheduler.models import SchedulePayload, Subject
from birthday_scheduler.schedule_registry import ScheduleRegistry

LOGGER = logging.getLogger(__name__)

SCHEDULE_NAME_PREFIX = "event-user-"


def schedule_name_for(subject_id: str) -> str:
    return f"{SCHEDULE_NAME_PREFIX}{subject_id}"


def utc_now() -> datetime:
    return datetime.now(UTC)


class ScheduleCoordinator:
    """Keeps exactly one future birthday firing per subject, or none.

    With ``enabled=False`` both operations log and return without touching
    the registry, so the rest of the system runs without a timer backend.
    """

    def __init__(
        self,
        registry: ScheduleRegistry | None,
        *,
        enabled: bool = True,
        delivery_hour: int = DEFAULT_DELIVERY_HOUR,
        leap_day_rule: str = "mar1",
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        if enabled and registry is None:
            raise ValueError("registry is required when scheduling is enabled")
        validate_leap_day_rule(leap_day_rule)
        self._registry = registry
        self._enabled = enabled
        self._delivery_hour = delivery_hour
        self._leap_day_rule = leap_day_rule
        self._now = now

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def arm(self, subject: Subject) -> datetime | None:
        if not self._enabled:
            LOGGER.info("Scheduler disabled: skipping schedule creation for %s", subject.subject_id)
            return None

        target = next_occurrence(
            subject.birthday,
            subject.time_zone,
            self._now(),
            hour=self._delivery_hour,
            leap_day_rule=self._leap_day_rule,
        )
        payload = SchedulePayload(subject_id=subject.subject_id).to_dict()
        await self._registry.arm(schedule_name_for(subject.subject_id), target, payload)
        return target

    async def disarm(self, subject_id: str) -> None:
        if not self._enabled:
            LOGGER.info("Scheduler disabled: skipping schedule deletion for %s", subject_id)
            return
        await self._registry.disarm(schedule_name_for(subject_id))
