"""
API Server Lambda
=================
Minimal HTTP router behind the API Gateway proxy integration:

  GET /api-server          → greeting
  GET /api-server/         → greeting
  GET /api-server/ping     → {"message": "pong"}
  anything else            → 404 {"message": "Route not found: <path>"}

The stage path is not stripped: routes include the /api-server prefix the
Lambda stack mounts this function under.
"""
from __future__ import annotations

import json
from typing import Callable

from pydantic import BaseModel

from shared.logger import bind_lambda_context, get_logger
logger = get_logger(__name__)

ROUTE_PREFIX = "/api-server"


class Message(BaseModel):
    message: str


def _greeting() -> Message:
    return Message(message="Hello from the sandbox API server!")


def _ping() -> Message:
    return Message(message="pong")


ROUTES: dict[tuple[str, str], Callable[[], Message]] = {
    ("GET", ROUTE_PREFIX): _greeting,
    ("GET", f"{ROUTE_PREFIX}/"): _greeting,
    ("GET", f"{ROUTE_PREFIX}/ping"): _ping,
}


def handler(event: dict, context) -> dict:
    log = bind_lambda_context(logger, context)
    http_method = event.get("httpMethod", "")
    path = event.get("path", "")
    log.info("Request path", extra={"http_method": http_method, "path": path})

    route = ROUTES.get((http_method, path))
    try:
        if route is None:
            log.info("No route found", extra={"path": path})
            return _response(404, Message(message=f"Route not found: {path}"))
        return _response(200, route())
    except Exception:
        log.exception("Unhandled exception in api_server handler", extra={"path": path})
        return _response(500, Message(message="Internal server error"))


def _response(status_code: int, body: Message) -> dict:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body.model_dump()),
    }
