from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from birthday_scheduler.delivery import DeliveryTransport
from birthday_scheduler.errors import MalformedFiring, SubjectNotFound
from birthday_scheduler.models import Subject
from birthday_scheduler.record_store import RecordStore
from birthday_scheduler.schedule_coordinator import ScheduleCoordinator

LOGGER = logging.getLogger(__name__)

MESSAGE_TEMPLATE = "Hey, {display_name} it's your birthday"


@dataclass(frozen=True)
class FiringOutcome:
    subject_id: str
    text: str
    next_firing: datetime | None


def format_birthday_message(subject: Subject) -> str:
    return MESSAGE_TEMPLATE.format(display_name=subject.display_name)


def parse_firing_body(body: str | bytes) -> dict[str, Any]:
    try:
        data = json.loads(body)
    except (TypeError, ValueError) as exc:
        raise MalformedFiring(f"Firing body is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedFiring("Firing body must be a JSON object")
    return data


def subject_id_from_firing(payload: Mapping[str, Any]) -> str:
    subject_id = payload.get("subjectId")
    if not isinstance(subject_id, str) or not subject_id.strip():
        raise MalformedFiring("Firing is missing a subjectId")
    return subject_id.strip()


class OccasionWorker:
    """Delivers one birthday message per firing and re-arms for next year."""

    def __init__(
        self,
        *,
        records: RecordStore,
        delivery: DeliveryTransport,
        coordinator: ScheduleCoordinator,
    ) -> None:
        self._records = records
        self._delivery = delivery
        self._coordinator = coordinator

    async def handle(self, payload: Mapping[str, Any]) -> FiringOutcome:
        subject_id = subject_id_from_firing(payload)

        subject = await self._records.get(subject_id)
        if subject is None:
            raise SubjectNotFound(subject_id)

        text = format_birthday_message(subject)
        LOGGER.info("Sending birthday message for %s", subject_id)
        await self._delivery.send(text)

        next_firing = await self._coordinator.arm(subject)
        return FiringOutcome(subject_id=subject_id, text=text, next_firing=next_firing)

    async def handle_batch(
        self,
        records: Iterable[Mapping[str, Any]],
        *,
        timeout: float | None = None,
    ) -> list[str]:
        """Process SQS records one by one and return the ids of those that failed.

        ``timeout`` bounds the whole batch. Once it runs out, the firing in
        progress and every firing not yet started are reported as failed.
        """
        pending = list(records)
        deadline = None if timeout is None else asyncio.get_running_loop().time() + timeout
        failed: list[str] = []
        for index, record in enumerate(pending):
            message_id = str(record.get("messageId", ""))
            try:
                async with asyncio.timeout_at(deadline) as scope:
                    await self.handle(parse_firing_body(record.get("body", "")))
            except TimeoutError:
                if not scope.expired():
                    LOGGER.exception("Error processing firing %s", message_id)
                    failed.append(message_id)
                    continue
                unprocessed = [str(item.get("messageId", "")) for item in pending[index:]]
                LOGGER.error("Batch deadline reached, returning %s firings unprocessed", len(unprocessed))
                failed.extend(unprocessed)
                break
            except Exception:
                LOGGER.exception("Error processing firing %s", message_id)
                failed.append(message_id)
        if failed:
            LOGGER.warning("%s of the firings in this batch failed", len(failed))
        return failed
