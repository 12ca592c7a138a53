"""AWS Lambda entrypoints for the profile API and the birthday firing queue."""

from __future__ import annotations

import asyncio
import base64
import functools
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from birthday_scheduler.delivery import build_delivery
from birthday_scheduler.errors import InvalidSubject, SubjectNotFound
from birthday_scheduler.occasion_worker import OccasionWorker
from birthday_scheduler.profile_service import ProfileService
from birthday_scheduler.record_store import build_record_store
from birthday_scheduler.schedule_coordinator import ScheduleCoordinator
from birthday_scheduler.schedule_registry import ScheduleRegistry
from birthday_scheduler.settings import Settings, load_settings
from birthday_scheduler.timer_service import EventBridgeTimerService, build_scheduler_client

LOGGER = logging.getLogger(__name__)

# Time kept back from the Lambda deadline so a timeout is reported, not killed.
DEADLINE_MARGIN_SECONDS = 1.0


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@dataclass(frozen=True)
class Runtime:
    settings: Settings
    coordinator: ScheduleCoordinator
    profiles: ProfileService
    worker: OccasionWorker


def build_coordinator(settings: Settings) -> ScheduleCoordinator:
    if settings.scheduler_disabled:
        return ScheduleCoordinator(
            None,
            enabled=False,
            delivery_hour=settings.delivery_hour,
            leap_day_rule=settings.leap_day_rule,
        )

    timer_service = EventBridgeTimerService(
        client=build_scheduler_client(settings),
        target_arn=settings.event_queue_arn,
        role_arn=settings.scheduler_role_arn,
        group_name=settings.schedule_group_name,
    )
    return ScheduleCoordinator(
        ScheduleRegistry(timer_service),
        delivery_hour=settings.delivery_hour,
        leap_day_rule=settings.leap_day_rule,
    )


def build_runtime(settings: Settings) -> Runtime:
    records = build_record_store(settings)
    coordinator = build_coordinator(settings)
    return Runtime(
        settings=settings,
        coordinator=coordinator,
        profiles=ProfileService(records=records, coordinator=coordinator),
        worker=OccasionWorker(records=records, delivery=build_delivery(settings), coordinator=coordinator),
    )


@functools.lru_cache(maxsize=1)
def get_runtime() -> Runtime:
    settings = load_settings()
    configure_logging(settings.log_level)
    return build_runtime(settings)


def _remaining_seconds(context: Any) -> float | None:
    get_remaining = getattr(context, "get_remaining_time_in_millis", None)
    if get_remaining is None:
        return None
    return max(get_remaining() / 1000 - DEADLINE_MARGIN_SECONDS, 0.0)


def run_bounded(operation: Callable[[], Awaitable[Any]], context: Any = None) -> Any:
    timeout = _remaining_seconds(context)

    async def _bounded() -> Any:
        async with asyncio.timeout(timeout):
            return await operation()

    return asyncio.run(_bounded())


def _response(status_code: int, body: Any) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }


def _path_subject_id(event: dict[str, Any]) -> str | None:
    subject_id = (event.get("pathParameters") or {}).get("userId")
    if not subject_id:
        return None
    return str(subject_id)


def _json_body(event: dict[str, Any]) -> Any:
    body = event.get("body")
    if not body:
        raise InvalidSubject(["Missing request body"])
    if event.get("isBase64Encoded"):
        body = base64.b64decode(body)
    try:
        return json.loads(body)
    except ValueError as exc:
        raise InvalidSubject([f"Invalid JSON body: {exc}"]) from exc


def _api_call(handler: Callable[[Runtime], Awaitable[dict[str, Any]]], context: Any) -> dict[str, Any]:
    try:
        runtime = get_runtime()
        return run_bounded(lambda: handler(runtime), context)
    except InvalidSubject as exc:
        return _response(400, {"message": "Invalid user data", "errors": exc.issues})
    except SubjectNotFound:
        return _response(404, {"message": "User not found"})
    except Exception:
        LOGGER.exception("Request failed")
        return _response(500, {"message": "Internal Server Error"})


def create_subject_handler(event: dict[str, Any], context: Any = None) -> dict[str, Any]:
    async def _create(runtime: Runtime) -> dict[str, Any]:
        subject = await runtime.profiles.create(_json_body(event))
        return _response(201, subject.to_record())

    return _api_call(_create, context)


def get_subject_handler(event: dict[str, Any], context: Any = None) -> dict[str, Any]:
    subject_id = _path_subject_id(event)
    if subject_id is None:
        return _response(400, {"message": "Missing userId in path"})

    async def _get(runtime: Runtime) -> dict[str, Any]:
        subject = await runtime.profiles.get(subject_id)
        return _response(200, subject.to_record())

    return _api_call(_get, context)


def update_subject_handler(event: dict[str, Any], context: Any = None) -> dict[str, Any]:
    subject_id = _path_subject_id(event)
    if subject_id is None:
        return _response(400, {"message": "Missing userId in path"})

    async def _update(runtime: Runtime) -> dict[str, Any]:
        subject = await runtime.profiles.update(subject_id, _json_body(event))
        return _response(200, subject.to_record())

    return _api_call(_update, context)


def delete_subject_handler(event: dict[str, Any], context: Any = None) -> dict[str, Any]:
    subject_id = _path_subject_id(event)
    if subject_id is None:
        return _response(400, {"message": "Missing userId in path"})

    async def _delete(runtime: Runtime) -> dict[str, Any]:
        await runtime.profiles.delete(subject_id)
        return _response(200, {"message": "User deleted successfully", "userId": subject_id})

    return _api_call(_delete, context)


def firing_handler(event: dict[str, Any], context: Any = None) -> dict[str, Any]:
    """SQS batch handler; failed records are returned for redelivery."""
    runtime = get_runtime()
    records = event.get("Records", [])
    failed = asyncio.run(runtime.worker.handle_batch(records, timeout=_remaining_seconds(context)))
    return {"batchItemFailures": [{"itemIdentifier": message_id} for message_id in failed]}
