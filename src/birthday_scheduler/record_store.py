from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from birthday_scheduler.errors import BackendFailure
from birthday_scheduler.models import Subject
from birthday_scheduler.settings import Settings

LOGGER = logging.getLogger(__name__)


class RecordStore(Protocol):
    async def get(self, subject_id: str) -> Subject | None: ...

    async def put(self, subject: Subject) -> None: ...

    async def delete(self, subject_id: str) -> None: ...


def decode_record(subject_id: str, record: dict) -> Subject:
    try:
        return Subject.from_record(record)
    except (KeyError, TypeError, ValueError) as exc:
        raise BackendFailure(f"Stored record for {subject_id} is unreadable: {exc!r}") from exc


class DynamoRecordStore:
    """Subjects kept in a DynamoDB table with partition key ``userId``."""

    def __init__(self, table) -> None:
        self._table = table

    @classmethod
    def from_settings(cls, settings: Settings) -> DynamoRecordStore:
        extra = {} if settings.aws_endpoint_url is None else {"endpoint_url": settings.aws_endpoint_url}
        resource = boto3.resource(
            "dynamodb",
            region_name=settings.aws_region,
            config=Config(
                connect_timeout=settings.request_timeout_seconds,
                read_timeout=settings.request_timeout_seconds,
            ),
            **extra,
        )
        return cls(resource.Table(settings.users_table_name))

    async def get(self, subject_id: str) -> Subject | None:
        def _get() -> dict | None:
            response = self._table.get_item(Key={"userId": subject_id})
            return response.get("Item")

        item = await self._run("get_item", subject_id, _get)
        if item is None:
            return None
        return decode_record(subject_id, item)

    async def put(self, subject: Subject) -> None:
        await self._run("put_item", subject.subject_id, lambda: self._table.put_item(Item=subject.to_record()))

    async def delete(self, subject_id: str) -> None:
        await self._run("delete_item", subject_id, lambda: self._table.delete_item(Key={"userId": subject_id}))

    async def _run(self, operation: str, subject_id: str, func):
        try:
            return await asyncio.to_thread(func)
        except (ClientError, BotoCoreError) as exc:
            raise BackendFailure(f"{operation} failed for {subject_id}: {exc}") from exc


def load_records(path: Path) -> dict[str, dict]:
    if not path.exists():
        return {}

    with path.open("r", encoding="utf-8") as file_obj:
        data = json.load(file_obj)
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not hold a JSON object")

    subjects = data.get("subjects", {})
    if not isinstance(subjects, dict):
        return {}
    return {str(key): value for key, value in subjects.items() if isinstance(value, dict)}


def save_records_atomic(path: Path, records: dict[str, dict]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {"version": 1, "subjects": records}

    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        prefix=f".{path.name}.",
        delete=False,
    ) as temp_file:
        json.dump(payload, temp_file, indent=2, sort_keys=True)
        temp_file.write("\n")
        temp_name = temp_file.name

    os.replace(temp_name, path)


class FileRecordStore:
    """JSON file store for running locally without DynamoDB."""

    def __init__(self, path: Path) -> None:
        self._path = path

    async def get(self, subject_id: str) -> Subject | None:
        record = await self._run("get", subject_id, lambda: load_records(self._path).get(subject_id))
        if record is None:
            return None
        return decode_record(subject_id, record)

    async def put(self, subject: Subject) -> None:
        def _put() -> None:
            records = load_records(self._path)
            records[subject.subject_id] = subject.to_record()
            save_records_atomic(self._path, records)

        await self._run("put", subject.subject_id, _put)

    async def delete(self, subject_id: str) -> None:
        def _delete() -> None:
            records = load_records(self._path)
            if records.pop(subject_id, None) is not None:
                save_records_atomic(self._path, records)

        await self._run("delete", subject_id, _delete)

    async def _run(self, operation: str, subject_id: str, func):
        try:
            return await asyncio.to_thread(func)
        except (OSError, ValueError) as exc:
            raise BackendFailure(f"{operation} failed for {subject_id} in {self._path}: {exc}") from exc


def ensure_users_table(client, table_name: str) -> bool:
    """Create the subjects table on a DynamoDB client unless it exists.

    Returns True when the table was created.
    """
    existing: set[str] = set()
    for page in client.get_paginator("list_tables").paginate():
        existing.update(page.get("TableNames", []))
    if table_name in existing:
        LOGGER.info("Table %s already exists", table_name)
        return False

    client.create_table(
        TableName=table_name,
        AttributeDefinitions=[{"AttributeName": "userId", "AttributeType": "S"}],
        KeySchema=[{"AttributeName": "userId", "KeyType": "HASH"}],
        BillingMode="PAY_PER_REQUEST",
    )
    LOGGER.info("Created table %s", table_name)
    return True


def build_record_store(settings: Settings) -> RecordStore:
    if settings.record_store == "file":
        LOGGER.info("Using file record store at %s", settings.record_store_path)
        return FileRecordStore(settings.record_store_path)
    return DynamoRecordStore.from_settings(settings)
