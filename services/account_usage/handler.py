"""
Account Usage Lambda
====================
Smoke-test function for a freshly deployed environment:

  ANY /account-usage → {"TotalCodeSize": ..., "FunctionCount": ...}

Logs what the function sees (event, region, request ID, deadline) and makes
one AWS SDK call, which proves the execution role and X-Ray wiring work.
"""
from __future__ import annotations

import json
import os

import boto3
from aws_xray_sdk.core import patch_all
from botocore.exceptions import BotoCoreError, ClientError

patch_all()

from shared.logger import bind_lambda_context, get_logger
logger = get_logger(__name__)

lambda_client = boto3.client("lambda")


def handler(event: dict, context) -> dict:
    log = bind_lambda_context(logger, context)
    log.info("Event received", extra={"event": event})
    log.info(
        "Invocation details",
        extra={
            "region": os.environ.get("AWS_REGION"),
            "remaining_ms": context.get_remaining_time_in_millis(),
            # names only; values may hold credentials
            "env_vars": sorted(os.environ),
        },
    )

    try:
        usage = get_account_usage()
    except (ClientError, BotoCoreError) as e:
        log.exception("GetAccountSettings failed")
        return {"statusCode": 500, "body": f"ERROR: {e}"}

    return {
        "statusCode": 200,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(usage),
    }


def get_account_usage() -> dict:
    return lambda_client.get_account_settings()["AccountUsage"]
