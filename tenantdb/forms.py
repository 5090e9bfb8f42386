"""Request-local form parsing.

Every extractor starts with `await ensure_form_parsed(request)`. The first
call reads and parses the query string and (for POST/PUT/PATCH with an
urlencoded body) the request body; the result is stored on `request.state`,
which lives in the ASGI scope, so later calls from any `Request` wrapper of
the same request reuse it instead of touching the body stream again.

Only `application/x-www-form-urlencoded` bodies are parsed. Other content
types produce an empty body form, which keeps this layer free of multipart
parsing.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from urllib.parse import parse_qsl

from fastapi import Request
from starlette.requests import ClientDisconnect

from .config import settings
from .errors import MalformedRequestBody

logger = logging.getLogger(__name__)

_STATE_KEY = "tenantdb_form"
_FAILED_KEY = "tenantdb_form_failed"
_BODY_METHODS = ("POST", "PUT", "PATCH")
_FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
_BAD_ESCAPE_RE = re.compile(r"%(?![0-9A-Fa-f]{2})")


@dataclass(frozen=True)
class ParsedForm:
    """Query string and body fields of one request.

    Values keep their wire order; lookups return the first value for a name.
    """

    query: Dict[str, List[str]] = field(default_factory=dict)
    body: Dict[str, List[str]] = field(default_factory=dict)

    def post_value(self, name: str) -> str:
        """First value of `name` in the request body, or ""."""

        values = self.body.get(name)
        return values[0] if values else ""

    def value(self, name: str) -> str:
        """First value of `name`, body first, then query string, or ""."""

        values = self.body.get(name) or self.query.get(name)
        return values[0] if values else ""


def _parse_urlencoded(raw: str, *, source: str) -> Dict[str, List[str]]:
    if _BAD_ESCAPE_RE.search(raw):
        raise MalformedRequestBody()
    try:
        pairs = parse_qsl(
            raw,
            keep_blank_values=True,
            encoding="utf-8",
            errors="strict",
            max_num_fields=settings.max_form_fields,
        )
    except ValueError as e:
        # also covers UnicodeDecodeError from bad percent-encoded bytes
        logger.info("form parse failed: %s", e, extra={"field": source})
        raise MalformedRequestBody() from None

    out: Dict[str, List[str]] = {}
    for k, v in pairs:
        out.setdefault(k, []).append(v)
    return out


async def _read_body(request: Request) -> bytes:
    max_bytes = settings.max_form_bytes
    chunks: List[bytes] = []
    written = 0
    try:
        async for chunk in request.stream():
            if not chunk:
                continue
            written += len(chunk)
            if written > max_bytes:
                logger.info("form body too large", extra={"path": request.url.path})
                raise MalformedRequestBody()
            chunks.append(chunk)
    except ClientDisconnect:
        logger.info("client disconnected while reading form body", extra={"path": request.url.path})
        raise MalformedRequestBody() from None
    return b"".join(chunks)


def _content_type(request: Request) -> str:
    return (request.headers.get("content-type") or "").split(";", 1)[0].strip().lower()


async def ensure_form_parsed(request: Request) -> ParsedForm:
    """Parse the request's form data once and return it.

    Raises MalformedRequestBody if the query string or body cannot be parsed.
    A failed parse is remembered too, so later calls raise again without
    re-reading the (already consumed) body.
    """

    cached: Optional[ParsedForm] = getattr(request.state, _STATE_KEY, None)
    if cached is not None:
        return cached
    if getattr(request.state, _FAILED_KEY, False):
        raise MalformedRequestBody()

    try:
        parsed = await _parse_request(request)
    except MalformedRequestBody:
        setattr(request.state, _FAILED_KEY, True)
        raise

    setattr(request.state, _STATE_KEY, parsed)
    return parsed


async def _parse_request(request: Request) -> ParsedForm:
    query_raw = request.scope.get("query_string", b"").decode("latin-1")
    query = _parse_urlencoded(query_raw, source="query")

    body: Dict[str, List[str]] = {}
    if request.method.upper() in _BODY_METHODS and _content_type(request) == _FORM_CONTENT_TYPE:
        raw = await _read_body(request)
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            logger.info("form body is not valid utf-8", extra={"path": request.url.path})
            raise MalformedRequestBody() from None
        body = _parse_urlencoded(text, source="body")

    return ParsedForm(query=query, body=body)
