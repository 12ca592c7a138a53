from __future__ import annotations

import dataclasses
import logging
import re
import uuid
from collections.abc import Callable, Mapping
from datetime import date, datetime
from typing import Any

from birthday_scheduler.date_logic import resolve_time_zone
from birthday_scheduler.errors import InvalidSubject, InvalidTimeZone, SubjectNotFound
from birthday_scheduler.models import Subject
from birthday_scheduler.record_store import RecordStore
from birthday_scheduler.schedule_coordinator import ScheduleCoordinator, utc_now

LOGGER = logging.getLogger(__name__)

PROFILE_FIELDS = ("firstName", "lastName", "birthday", "location")
SUBJECT_ATTRIBUTES = {
    "firstName": "first_name",
    "lastName": "last_name",
    "birthday": "birthday",
    "location": "time_zone",
}


def parse_birthday_text(raw_text: str) -> date:
    match = re.fullmatch(r"(\d{4})-(\d{2})-(\d{2})", raw_text.strip())
    if not match:
        raise ValueError("birthday must use YYYY-MM-DD")
    return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))


def parse_profile_payload(data: Any, *, partial: bool = False) -> dict[str, Any]:
    """Validate a profile payload and return Subject attribute values.

    Unknown keys are ignored. With ``partial`` only the supplied fields are
    validated, but at least one must be present.
    """
    if not isinstance(data, Mapping):
        raise InvalidSubject(["payload must be a JSON object"])

    issues: list[str] = []
    values: dict[str, Any] = {}
    for field in PROFILE_FIELDS:
        if field not in data or data[field] is None:
            if not partial:
                issues.append(f"{field} is required")
            continue

        raw = data[field]
        if not isinstance(raw, str):
            issues.append(f"{field} must be a string")
            continue

        if field == "birthday":
            try:
                values["birthday"] = parse_birthday_text(raw)
            except ValueError as exc:
                issues.append(f"birthday: {exc}")
        elif field == "location":
            try:
                resolve_time_zone(raw.strip())
            except InvalidTimeZone as exc:
                issues.append(f"location: {exc}")
            else:
                values["time_zone"] = raw.strip()
        else:
            if not raw.strip():
                issues.append(f"{field} must not be empty")
            else:
                values[SUBJECT_ATTRIBUTES[field]] = raw.strip()

    if issues:
        raise InvalidSubject(issues)
    if partial and not values:
        raise InvalidSubject(["No fields to update"])
    return values


class ProfileService:
    """Profile CRUD that keeps the birthday schedule in step with the record.

    The record is written first and the schedule second. A scheduling failure
    fails the request, but the record write is not rolled back; retrying the
    same request converges both sides.
    """

    def __init__(
        self,
        *,
        records: RecordStore,
        coordinator: ScheduleCoordinator,
        now: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self._records = records
        self._coordinator = coordinator
        self._now = now
        self._id_factory = id_factory

    async def create(self, payload: Any) -> Subject:
        values = parse_profile_payload(payload)
        subject = Subject(
            subject_id=self._id_factory(),
            created_at=self._now().isoformat(),
            **values,
        )
        await self._records.put(subject)
        await self._coordinator.arm(subject)
        LOGGER.info("Created subject %s", subject.subject_id)
        return subject

    async def get(self, subject_id: str) -> Subject:
        subject = await self._records.get(subject_id)
        if subject is None:
            raise SubjectNotFound(subject_id)
        return subject

    async def update(self, subject_id: str, payload: Any) -> Subject:
        values = parse_profile_payload(payload, partial=True)
        existing = await self.get(subject_id)
        subject = dataclasses.replace(existing, updated_at=self._now().isoformat(), **values)
        await self._records.put(subject)
        await self._coordinator.arm(subject)
        LOGGER.info("Updated subject %s", subject_id)
        return subject

    async def delete(self, subject_id: str) -> None:
        await self._records.delete(subject_id)
        await self._coordinator.disarm(subject_id)
        LOGGER.info("Deleted subject %s", subject_id)
