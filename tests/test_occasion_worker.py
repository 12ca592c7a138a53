import asyncio
import json
from dataclasses import dataclass, field
from datetime import UTC, date, datetime

import pytest

from birthday_scheduler.errors import BackendFailure, DeliveryFailure, MalformedFiring, SubjectNotFound
from birthday_scheduler.models import Subject
from birthday_scheduler.occasion_worker import OccasionWorker, format_birthday_message, parse_firing_body

NEXT_FIRING = datetime(2026, 6, 15, 13, 0, tzinfo=UTC)


def _subject(subject_id: str = "user-1", first_name: str = "John", last_name: str = "Doe") -> Subject:
    return Subject(
        subject_id=subject_id,
        first_name=first_name,
        last_name=last_name,
        birthday=date(1990, 6, 15),
        time_zone="America/New_York",
        created_at="2025-01-01T00:00:00+00:00",
    )


@dataclass
class FakeRecords:
    subjects: dict[str, Subject] = field(default_factory=dict)
    lookups: list[str] = field(default_factory=list)

    async def get(self, subject_id: str) -> Subject | None:
        self.lookups.append(subject_id)
        return self.subjects.get(subject_id)


@dataclass
class FakeDelivery:
    sent: list[str] = field(default_factory=list)
    fail_for: set[str] = field(default_factory=set)
    slow_for: set[str] = field(default_factory=set)

    async def send(self, text: str) -> None:
        if any(name in text for name in self.slow_for):
            await asyncio.sleep(5)
        if any(name in text for name in self.fail_for):
            raise DeliveryFailure("webhook down")
        self.sent.append(text)


@dataclass
class FakeCoordinator:
    armed: list[Subject] = field(default_factory=list)
    fail_with: Exception | None = None

    async def arm(self, subject: Subject) -> datetime:
        if self.fail_with is not None:
            raise self.fail_with
        self.armed.append(subject)
        return NEXT_FIRING


def _worker(records=None, delivery=None, coordinator=None):
    records = records or FakeRecords(subjects={"user-1": _subject()})
    delivery = delivery or FakeDelivery()
    coordinator = coordinator or FakeCoordinator()
    return OccasionWorker(records=records, delivery=delivery, coordinator=coordinator), records, delivery, coordinator


def test_firing_sends_message_and_rearms_once() -> None:
    worker, records, delivery, coordinator = _worker()

    outcome = asyncio.run(worker.handle({"subjectId": "user-1", "type": "OCCASION"}))

    assert delivery.sent == ["Hey, John Doe it's your birthday"]
    assert coordinator.armed == [records.subjects["user-1"]]
    assert outcome.next_firing == NEXT_FIRING
    assert outcome.text == "Hey, John Doe it's your birthday"


def test_format_birthday_message() -> None:
    assert format_birthday_message(_subject(first_name="Ada", last_name="Lovelace")) == (
        "Hey, Ada Lovelace it's your birthday"
    )


@pytest.mark.parametrize("payload", [{}, {"subjectId": ""}, {"subjectId": "   "}, {"subjectId": 42}])
def test_malformed_firing_never_touches_record_store(payload: dict) -> None:
    worker, records, delivery, coordinator = _worker()

    with pytest.raises(MalformedFiring):
        asyncio.run(worker.handle(payload))

    assert records.lookups == []
    assert delivery.sent == []
    assert coordinator.armed == []


def test_missing_subject_is_surfaced() -> None:
    worker, _, delivery, coordinator = _worker(records=FakeRecords())

    with pytest.raises(SubjectNotFound):
        asyncio.run(worker.handle({"subjectId": "ghost"}))

    assert delivery.sent == []
    assert coordinator.armed == []


def test_delivery_failure_skips_rearm() -> None:
    worker, _, _, coordinator = _worker(delivery=FakeDelivery(fail_for={"John"}))

    with pytest.raises(DeliveryFailure):
        asyncio.run(worker.handle({"subjectId": "user-1"}))
    assert coordinator.armed == []


def test_rearm_failure_fails_the_firing() -> None:
    worker, _, delivery, _ = _worker(coordinator=FakeCoordinator(fail_with=BackendFailure("throttled")))

    with pytest.raises(BackendFailure):
        asyncio.run(worker.handle({"subjectId": "user-1"}))
    assert len(delivery.sent) == 1


def test_parse_firing_body_rejects_non_objects() -> None:
    assert parse_firing_body('{"subjectId": "a"}') == {"subjectId": "a"}
    with pytest.raises(MalformedFiring):
        parse_firing_body("not json")
    with pytest.raises(MalformedFiring):
        parse_firing_body('["a"]')


def test_batch_failures_are_reported_per_message() -> None:
    records = FakeRecords(
        subjects={
            "user-1": _subject("user-1", "John", "Doe"),
            "user-2": _subject("user-2", "Jane", "Roe"),
            "user-3": _subject("user-3", "Max", "Poe"),
        }
    )
    worker, _, delivery, coordinator = _worker(records=records, delivery=FakeDelivery(fail_for={"Jane"}))

    failed = asyncio.run(
        worker.handle_batch(
            [
                {"messageId": "m1", "body": json.dumps({"subjectId": "user-1"})},
                {"messageId": "m2", "body": json.dumps({"subjectId": "user-2"})},
                {"messageId": "m3", "body": "{}"},
                {"messageId": "m4", "body": json.dumps({"subjectId": "user-3"})},
            ]
        )
    )

    assert failed == ["m2", "m3"]
    assert delivery.sent == ["Hey, John Doe it's your birthday", "Hey, Max Poe it's your birthday"]
    assert [subject.subject_id for subject in coordinator.armed] == ["user-1", "user-3"]


def test_batch_deadline_reports_current_and_remaining_firings() -> None:
    records = FakeRecords(
        subjects={
            "user-1": _subject("user-1", "John", "Doe"),
            "user-2": _subject("user-2", "Jane", "Roe"),
            "user-3": _subject("user-3", "Max", "Poe"),
        }
    )
    worker, _, delivery, coordinator = _worker(records=records, delivery=FakeDelivery(slow_for={"Jane"}))

    failed = asyncio.run(
        worker.handle_batch(
            [
                {"messageId": "m1", "body": json.dumps({"subjectId": "user-1"})},
                {"messageId": "m2", "body": json.dumps({"subjectId": "user-2"})},
                {"messageId": "m3", "body": json.dumps({"subjectId": "user-3"})},
            ],
            timeout=0.2,
        )
    )

    assert failed == ["m2", "m3"]
    assert delivery.sent == ["Hey, John Doe it's your birthday"]
    assert [subject.subject_id for subject in coordinator.armed] == ["user-1"]


def test_timeout_raised_inside_a_firing_is_an_ordinary_failure() -> None:
    @dataclass
    class TimingOutDelivery:
        async def send(self, text: str) -> None:
            raise TimeoutError("upstream timed out")

    worker, _, _, _ = _worker(delivery=TimingOutDelivery())

    failed = asyncio.run(
        worker.handle_batch(
            [
                {"messageId": "m1", "body": json.dumps({"subjectId": "user-1"})},
                {"messageId": "m2", "body": "{}"},
            ],
            timeout=30,
        )
    )

    assert failed == ["m1", "m2"]
