from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from birthday_scheduler.date_logic import ALLOWED_LEAP_DAY_RULES, DEFAULT_DELIVERY_HOUR

DELIVERY_BACKENDS = {"webhook", "telegram"}
RECORD_STORES = {"dynamodb", "file"}
TRUTHY_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    scheduler_disabled: bool = False
    event_queue_arn: str = ""
    scheduler_role_arn: str = ""
    schedule_group_name: str = "default"
    delivery_backend: str = "webhook"
    delivery_url: str = ""
    telegram_bot_token: str = ""
    telegram_chat_id: int | None = None
    record_store: str = "dynamodb"
    users_table_name: str = ""
    record_store_path: Path = Path("data/subjects.json")
    aws_region: str = "us-east-1"
    aws_endpoint_url: str | None = None
    leap_day_rule: str = "mar1"
    delivery_hour: int = DEFAULT_DELIVERY_HOUR
    request_timeout_seconds: float = 10.0
    log_level: str = "INFO"


def _get(environ: Mapping[str, str], *names: str) -> str | None:
    for name in names:
        value = environ.get(name)
        if value is not None and value.strip():
            return value.strip()
    return None


def _required(environ: Mapping[str, str], *names: str) -> str:
    value = _get(environ, *names)
    if value is None:
        raise ValueError(f"Missing required environment variable: {names[0]}")
    return value


def _flag(environ: Mapping[str, str], *names: str) -> bool:
    value = _get(environ, *names)
    return value is not None and value.lower() in TRUTHY_VALUES


def _choice(environ: Mapping[str, str], name: str, default: str, allowed: set[str]) -> str:
    value = (_get(environ, name) or default).lower()
    if value not in allowed:
        raise ValueError(f"{name} must be one of {sorted(allowed)}")
    return value


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if environ is None else environ

    scheduler_disabled = _flag(env, "SCHEDULER_DISABLED", "IS_OFFLINE")
    if scheduler_disabled:
        event_queue_arn = _get(env, "EVENT_QUEUE_ARN") or ""
        scheduler_role_arn = _get(env, "SCHEDULER_ROLE_ARN") or ""
    else:
        event_queue_arn = _required(env, "EVENT_QUEUE_ARN")
        scheduler_role_arn = _required(env, "SCHEDULER_ROLE_ARN")

    delivery_backend = _choice(env, "DELIVERY_BACKEND", "webhook", DELIVERY_BACKENDS)
    delivery_url = ""
    telegram_bot_token = ""
    telegram_chat_id = None
    if delivery_backend == "webhook":
        delivery_url = _required(env, "DELIVERY_URL", "HOOKBIN_URL")
    else:
        telegram_bot_token = _required(env, "TELEGRAM_BOT_TOKEN")
        telegram_chat_id = int(_required(env, "TELEGRAM_CHAT_ID"))

    record_store = _choice(env, "RECORD_STORE", "dynamodb", RECORD_STORES)
    users_table_name = ""
    if record_store == "dynamodb":
        users_table_name = _required(env, "USERS_TABLE_NAME")
    record_store_path = Path(_get(env, "RECORD_STORE_PATH") or Path.cwd() / "data" / "subjects.json")

    leap_day_rule = _choice(env, "LEAP_DAY_RULE", "mar1", ALLOWED_LEAP_DAY_RULES)

    delivery_hour = int(_get(env, "DELIVERY_HOUR") or DEFAULT_DELIVERY_HOUR)
    if delivery_hour < 0 or delivery_hour > 23:
        raise ValueError("DELIVERY_HOUR must be between 0 and 23")

    request_timeout_seconds = float(_get(env, "REQUEST_TIMEOUT_SECONDS") or 10.0)
    if request_timeout_seconds <= 0:
        raise ValueError("REQUEST_TIMEOUT_SECONDS must be positive")

    return Settings(
        scheduler_disabled=scheduler_disabled,
        event_queue_arn=event_queue_arn,
        scheduler_role_arn=scheduler_role_arn,
        schedule_group_name=_get(env, "SCHEDULE_GROUP_NAME") or "default",
        delivery_backend=delivery_backend,
        delivery_url=delivery_url,
        telegram_bot_token=telegram_bot_token,
        telegram_chat_id=telegram_chat_id,
        record_store=record_store,
        users_table_name=users_table_name,
        record_store_path=record_store_path,
        aws_region=_get(env, "AWS_REGION", "AWS_DEFAULT_REGION") or "us-east-1",
        aws_endpoint_url=_get(env, "AWS_ENDPOINT_URL"),
        leap_day_rule=leap_day_rule,
        delivery_hour=delivery_hour,
        request_timeout_seconds=request_timeout_seconds,
        log_level=(_get(env, "LOG_LEVEL") or "INFO").upper(),
    )
