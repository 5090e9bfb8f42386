"""Pytest configuration.

We add the repo root to sys.path so `import tenantdb` works without an
editable install.

Extractors are exercised against real Starlette requests built from a raw
ASGI scope; `make_request` builds those and counts how often the body is
pulled from the ASGI receive channel.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest


REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from starlette.requests import Request  # noqa: E402

from tenantdb.naming import IdentifierKind  # noqa: E402


class CountingReceive:
    def __init__(self, body: bytes):
        self._body = body
        self.calls = 0

    async def __call__(self) -> Dict[str, Any]:
        self.calls += 1
        if self.calls == 1:
            return {"type": "http.request", "body": self._body, "more_body": False}
        return {"type": "http.disconnect"}


def build_request(
    path: str = "/",
    *,
    method: str = "GET",
    query: str = "",
    body: bytes | str = b"",
    content_type: Optional[str] = None,
) -> Tuple[Request, CountingReceive]:
    if isinstance(body, str):
        body = body.encode("utf-8")
    headers: List[Tuple[bytes, bytes]] = [(b"host", b"testserver")]
    if content_type is None and body:
        content_type = "application/x-www-form-urlencoded"
    if content_type:
        headers.append((b"content-type", content_type.encode("latin-1")))

    scope = {
        "type": "http",
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "server": ("testserver", 80),
        "path": path,
        "raw_path": path.encode("utf-8"),
        "root_path": "",
        "query_string": query.encode("latin-1"),
        "headers": headers,
    }
    receive = CountingReceive(body)
    return Request(scope, receive), receive


@pytest.fixture
def make_request():
    def _make(*args, **kwargs) -> Request:
        req, _ = build_request(*args, **kwargs)
        return req

    return _make


@pytest.fixture
def make_counted_request():
    return build_request


class RecordingValidator:
    """Fake IdentifierValidator that records every call.

    `reject` holds IdentifierKind members and/or "owner_database" for the
    checks that should fail.
    """

    def __init__(self, reject=()):
        self.reject = set(reject)
        self.calls: List[Tuple[Any, ...]] = []

    def validate_identifier(self, kind: IdentifierKind, value: str) -> None:
        self.calls.append((kind, value))
        if kind in self.reject:
            raise ValueError(f"secret rule detail for {value!r}")

    def validate_owner_database(self, owner: str, database: str) -> None:
        self.calls.append(("owner_database", owner, database))
        if "owner_database" in self.reject:
            raise ValueError(f"secret rule detail for {owner!r}/{database!r}")

    def kinds(self) -> List[Any]:
        return [c[0] for c in self.calls]


@pytest.fixture
def recording_validator():
    return RecordingValidator
