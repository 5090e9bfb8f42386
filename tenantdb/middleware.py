from __future__ import annotations

import uuid
from typing import Awaitable, Callable

from fastapi import Request, Response

from .logging_setup import request_id_var, request_path_var


async def request_context_middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]):
    """Attach request_id and the request path to contextvars.

    - request_id: X-Request-ID (if present) else uuid4
    - path: decoded ASGI path, so rejection logs show which page was asked for

    Adds `X-Request-ID` to response for client correlation, including the
    4xx responses produced for rejected input.
    """

    rid = (request.headers.get("X-Request-ID") or "").strip()[:100] or uuid.uuid4().hex
    token_rid = request_id_var.set(rid)
    token_path = request_path_var.set(request.scope.get("path") or "/")

    try:
        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response
    finally:
        request_id_var.reset(token_rid)
        request_path_var.reset(token_path)
