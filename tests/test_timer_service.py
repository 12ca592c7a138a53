import asyncio
import json
from dataclasses import dataclass, field
from datetime import UTC, datetime

import boto3
import pytest
from botocore.stub import Stubber

from birthday_scheduler.errors import BackendFailure
from birthday_scheduler.timer_service import EventBridgeTimerService, ScheduleConflict, ScheduleNotFound

QUEUE_ARN = "arn:aws:sqs:us-east-1:123456789012:test-queue"
ROLE_ARN = "arn:aws:iam::123456789012:role/test-role"
SCHEDULE_ARN = "arn:aws:scheduler:us-east-1:123456789012:schedule/default/event-user-abc"
TARGET = datetime(2025, 5, 15, 13, 0, tzinfo=UTC)
PAYLOAD = {"subjectId": "abc", "type": "OCCASION"}


@dataclass
class RecordingClient:
    calls: list[tuple[str, dict]] = field(default_factory=list)

    def create_schedule(self, **kwargs) -> dict:
        self.calls.append(("create_schedule", kwargs))
        return {"ScheduleArn": SCHEDULE_ARN}

    def update_schedule(self, **kwargs) -> dict:
        self.calls.append(("update_schedule", kwargs))
        return {"ScheduleArn": SCHEDULE_ARN}

    def delete_schedule(self, **kwargs) -> dict:
        self.calls.append(("delete_schedule", kwargs))
        return {}


def _stubbed_service() -> tuple[EventBridgeTimerService, Stubber]:
    client = boto3.client(
        "scheduler",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )
    service = EventBridgeTimerService(client=client, target_arn=QUEUE_ARN, role_arn=ROLE_ARN)
    return service, Stubber(client)


def test_create_sends_one_shot_utc_schedule() -> None:
    client = RecordingClient()
    service = EventBridgeTimerService(client=client, target_arn=QUEUE_ARN, role_arn=ROLE_ARN, group_name="birthdays")

    asyncio.run(service.create("event-user-abc", TARGET, PAYLOAD))

    assert client.calls == [
        (
            "create_schedule",
            {
                "Name": "event-user-abc",
                "GroupName": "birthdays",
                "ScheduleExpression": "at(2025-05-15T13:00:00)",
                "ScheduleExpressionTimezone": "UTC",
                "FlexibleTimeWindow": {"Mode": "OFF"},
                "Target": {"Arn": QUEUE_ARN, "RoleArn": ROLE_ARN, "Input": json.dumps(PAYLOAD)},
                "ActionAfterCompletion": "DELETE",
            },
        )
    ]


def test_update_and_delete_address_schedule_by_name() -> None:
    client = RecordingClient()
    service = EventBridgeTimerService(client=client, target_arn=QUEUE_ARN, role_arn=ROLE_ARN)

    asyncio.run(service.update("event-user-abc", TARGET, PAYLOAD))
    asyncio.run(service.delete("event-user-abc"))

    (update_name, update_params), (delete_name, delete_params) = client.calls
    assert update_name == "update_schedule"
    assert update_params["Name"] == "event-user-abc"
    assert update_params["ScheduleExpression"] == "at(2025-05-15T13:00:00)"
    assert json.loads(update_params["Target"]["Input"]) == PAYLOAD
    assert update_params["ActionAfterCompletion"] == "DELETE"
    assert delete_name == "delete_schedule"
    assert delete_params == {"Name": "event-user-abc", "GroupName": "default"}


def test_create_against_stubbed_client() -> None:
    service, stubber = _stubbed_service()
    stubber.add_response("create_schedule", {"ScheduleArn": SCHEDULE_ARN})

    with stubber:
        asyncio.run(service.create("event-user-abc", TARGET, PAYLOAD))
        stubber.assert_no_pending_responses()


def test_create_conflict_is_reported_as_schedule_conflict() -> None:
    service, stubber = _stubbed_service()
    stubber.add_client_error("create_schedule", service_error_code="ConflictException", http_status_code=409)

    with stubber, pytest.raises(ScheduleConflict):
        asyncio.run(service.create("event-user-abc", TARGET, PAYLOAD))


def test_delete_missing_is_reported_as_schedule_not_found() -> None:
    service, stubber = _stubbed_service()
    stubber.add_client_error("delete_schedule", service_error_code="ResourceNotFoundException", http_status_code=404)

    with stubber, pytest.raises(ScheduleNotFound):
        asyncio.run(service.delete("event-user-abc"))


def test_update_missing_is_reported_as_schedule_not_found() -> None:
    service, stubber = _stubbed_service()
    stubber.add_client_error("update_schedule", service_error_code="ResourceNotFoundException", http_status_code=404)

    with stubber, pytest.raises(ScheduleNotFound):
        asyncio.run(service.update("event-user-abc", TARGET, PAYLOAD))


def test_other_errors_become_backend_failure() -> None:
    service, stubber = _stubbed_service()
    stubber.add_client_error("delete_schedule", service_error_code="AccessDeniedException", http_status_code=403)

    with stubber, pytest.raises(BackendFailure):
        asyncio.run(service.delete("event-user-abc"))
