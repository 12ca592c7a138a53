"""Create the subjects table on DynamoDB Local.

Usage:
    python -m scripts.create_tables [table_name]

The table name defaults to USERS_TABLE_NAME. AWS_ENDPOINT_URL defaults to
http://localhost:8000 and AWS_REGION to us-east-1. Requires the package to be
installed (pip install -e .).
"""

from __future__ import annotations

import os
import sys

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from birthday_scheduler.main import configure_logging
from birthday_scheduler.record_store import ensure_users_table

LOCAL_ENDPOINT = "http://localhost:8000"


def main() -> None:
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))
    table_name = sys.argv[1] if len(sys.argv) > 1 else os.environ.get("USERS_TABLE_NAME", "")
    if not table_name:
        print("Pass a table name or set USERS_TABLE_NAME", file=sys.stderr)
        sys.exit(1)

    endpoint_url = os.environ.get("AWS_ENDPOINT_URL", LOCAL_ENDPOINT)
    client = boto3.client(
        "dynamodb",
        region_name=os.environ.get("AWS_REGION", "us-east-1"),
        endpoint_url=endpoint_url,
        # DynamoDB Local accepts any credentials.
        aws_access_key_id=os.environ.get("AWS_ACCESS_KEY_ID", "local"),
        aws_secret_access_key=os.environ.get("AWS_SECRET_ACCESS_KEY", "local"),
    )
    try:
        ensure_users_table(client, table_name)
    except (BotoCoreError, ClientError) as exc:
        print(f"Could not create {table_name} at {endpoint_url}: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
