"""
Structured JSON logging for sandbox Lambdas
===========================================
One JSON object per line, so CloudWatch Logs Insights can filter on fields:

    fields @timestamp, message, request_id
    | filter environment = "preview" and level = "ERROR"

Every record carries the deployment environment (DEPLOY_ENVIRONMENT, set by
the Lambda stack). Inside a handler, bind the invocation context to get the
request ID on every line:

  from shared.logger import bind_lambda_context, get_logger
  logger = get_logger(__name__)

  def handler(event, context):
      log = bind_lambda_context(logger, context)
      log.info("Request received", extra={"path": event.get("path")})
"""
from __future__ import annotations

import json
import logging
import os
import time
from typing import Any

# LogRecord attributes that are not user-supplied extras
_RECORD_FIELDS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message"}

_configured = False


class JsonFormatter(logging.Formatter):
    def __init__(self, environment: str | None = None):
        super().__init__()
        self.environment = environment

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "level": record.levelname,
            "service": record.name,
            "message": record.getMessage(),
        }
        if self.environment:
            entry["environment"] = self.environment

        entry.update(
            (key, value) for key, value in vars(record).items() if key not in _RECORD_FIELDS
        )

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def get_logger(name: str) -> logging.Logger:
    """Logger emitting JSON to stdout. The root logger is configured once."""
    global _configured
    if not _configured:
        root = logging.getLogger()
        formatter = JsonFormatter(os.environ.get("DEPLOY_ENVIRONMENT"))
        # The Lambda runtime pre-installs a handler on the root logger
        if not root.handlers:
            root.addHandler(logging.StreamHandler())
        for handler in root.handlers:
            handler.setFormatter(formatter)
        level = os.environ.get("LOG_LEVEL", "INFO").upper()
        root.setLevel(getattr(logging, level, logging.INFO))
        _configured = True
    return logging.getLogger(name)


class _ContextAdapter(logging.LoggerAdapter):
    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def bind_lambda_context(logger: logging.Logger, context) -> logging.LoggerAdapter:
    """Attach request_id / function_name from a Lambda context to every record."""
    return _ContextAdapter(logger, {
        "request_id": getattr(context, "aws_request_id", None),
        "function_name": getattr(context, "function_name", None),
    })
