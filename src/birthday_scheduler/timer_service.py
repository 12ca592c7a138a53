"""One-shot timers backed by Amazon EventBridge Scheduler."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from typing import Any, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from birthday_scheduler.date_logic import schedule_expression
from birthday_scheduler.errors import BackendFailure
from birthday_scheduler.settings import Settings


class ScheduleConflict(Exception):
    def __init__(self, name: str) -> None:
        super().__init__(f"Schedule already exists: {name}")
        self.name = name


class ScheduleNotFound(Exception):
    def __init__(self, name: str) -> None:
        super().__init__(f"Schedule not found: {name}")
        self.name = name


class TimerService(Protocol):
    """Fire-once-at-instant primitive.

    ``create`` raises ScheduleConflict when the name is taken, ``update`` and
    ``delete`` raise ScheduleNotFound when it is absent. Any other failure is
    a BackendFailure.
    """

    async def create(
        self,
        name: str,
        target_instant: datetime,
        payload: dict[str, Any],
        *,
        delete_after_firing: bool = True,
    ) -> None: ...

    async def update(self, name: str, target_instant: datetime, payload: dict[str, Any]) -> None: ...

    async def delete(self, name: str) -> None: ...


def build_scheduler_client(settings: Settings):
    extra = {} if settings.aws_endpoint_url is None else {"endpoint_url": settings.aws_endpoint_url}
    return boto3.client(
        "scheduler",
        region_name=settings.aws_region,
        config=Config(
            connect_timeout=settings.request_timeout_seconds,
            read_timeout=settings.request_timeout_seconds,
        ),
        **extra,
    )


class EventBridgeTimerService:
    """EventBridge Scheduler ``at()`` schedules targeting an SQS queue.

    boto3 is synchronous, so every call runs in a worker thread.
    """

    def __init__(
        self,
        *,
        client,
        target_arn: str,
        role_arn: str,
        group_name: str = "default",
    ) -> None:
        self._client = client
        self._target_arn = target_arn
        self._role_arn = role_arn
        self._group_name = group_name

    def _schedule_input(self, name: str, target_instant: datetime, payload: dict[str, Any]) -> dict[str, Any]:
        return {
            "Name": name,
            "GroupName": self._group_name,
            "ScheduleExpression": schedule_expression(target_instant),
            "ScheduleExpressionTimezone": "UTC",
            "FlexibleTimeWindow": {"Mode": "OFF"},
            "Target": {
                "Arn": self._target_arn,
                "RoleArn": self._role_arn,
                "Input": json.dumps(payload),
            },
        }

    async def create(
        self,
        name: str,
        target_instant: datetime,
        payload: dict[str, Any],
        *,
        delete_after_firing: bool = True,
    ) -> None:
        params = self._schedule_input(name, target_instant, payload)
        params["ActionAfterCompletion"] = "DELETE" if delete_after_firing else "NONE"
        await self._call("create_schedule", name, params)

    async def update(self, name: str, target_instant: datetime, payload: dict[str, Any]) -> None:
        params = self._schedule_input(name, target_instant, payload)
        params["ActionAfterCompletion"] = "DELETE"
        await self._call("update_schedule", name, params)

    async def delete(self, name: str) -> None:
        await self._call("delete_schedule", name, {"Name": name, "GroupName": self._group_name})

    async def _call(self, operation: str, name: str, params: dict[str, Any]) -> None:
        def _send() -> None:
            try:
                getattr(self._client, operation)(**params)
            except ClientError as exc:
                code = exc.response.get("Error", {}).get("Code")
                if code == "ConflictException":
                    raise ScheduleConflict(name) from exc
                if code == "ResourceNotFoundException":
                    raise ScheduleNotFound(name) from exc
                raise BackendFailure(f"{operation} failed for {name}: {code}") from exc
            except BotoCoreError as exc:
                raise BackendFailure(f"{operation} failed for {name}: {exc}") from exc

        await asyncio.to_thread(_send)
