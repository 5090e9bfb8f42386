"""Extract and validate user provided request data.

Field extractors read one form field, apply that field's default when it is
absent, and otherwise run the matching identifier validator. The path
extractor resolves /<owner>/<database> from the URL. Composite extractors
chain those in a fixed order for each page handler and stop at the first
error.

Every extractor is a coroutine taking the Starlette/FastAPI request, and
raises an ExtractionError subclass on bad input. Validator messages are
logged here and never passed on to the caller.

"Absent" means the field is missing or its value is empty after stripping
whitespace. A present value is validated exactly as sent.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, fields
from typing import Any, Iterator
from urllib.parse import urlsplit

from fastapi import Request

from .errors import (
    InvalidIdentifier,
    InvalidOwnerOrDatabase,
    InvalidVersion,
    InvalidVisibility,
    MalformedURL,
    MissingCredential,
    MissingVisibility,
)
from .forms import ensure_form_parsed
from .naming import IdentifierKind, IdentifierValidator, default_validator

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"[0-9]+")
MAX_VERSION = 2**63 - 1

_TRUE_VALUES = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_VALUES = frozenset({"0", "f", "F", "FALSE", "false", "False"})

_SAFE_REDIRECT_SCHEMES = ("http", "https")


class _Unpackable:
    def __iter__(self) -> Iterator[Any]:
        return iter(tuple(getattr(self, f.name) for f in fields(self)))  # type: ignore[arg-type]


@dataclass(frozen=True)
class OwnerDatabase(_Unpackable):
    owner: str
    database: str


@dataclass(frozen=True)
class OwnerDatabaseTable(_Unpackable):
    owner: str
    database: str
    table: str


@dataclass(frozen=True)
class OwnerDatabaseTableVersion(_Unpackable):
    owner: str
    database: str
    table: str
    version: int


@dataclass(frozen=True)
class OwnerDatabaseVersion(_Unpackable):
    owner: str
    database: str
    version: int


@dataclass(frozen=True)
class UserDatabaseVersion(_Unpackable):
    username: str
    database: str
    version: int


@dataclass(frozen=True)
class UserFolderDatabase(_Unpackable):
    username: str
    folder: str
    database: str


@dataclass(frozen=True)
class LoginForm(_Unpackable):
    username: str
    password: str
    bounce_url: str

    def __repr__(self) -> str:
        return f"LoginForm(username={self.username!r}, password='***', bounce_url={self.bounce_url!r})"


def _absent(value: str) -> bool:
    return not value.strip()


def _check_identifier(validator: IdentifierValidator, kind: IdentifierKind, field: str, value: str) -> str:
    try:
        validator.validate_identifier(kind, value)
    except ValueError as e:
        logger.info("Validation failed for %s: %s", field, e, extra={"field": field})
        raise InvalidIdentifier(field) from None
    return value


# -----------------
# Field extractors
# -----------------


async def get_form_username(request: Request, validator: IdentifierValidator = default_validator) -> str:
    """Return the username (if any) present in the form data."""

    form = await ensure_form_parsed(request)
    username = form.post_value("username")
    if _absent(username):
        return ""
    return _check_identifier(validator, IdentifierKind.USERNAME, "username", username)


async def get_form_database(request: Request, validator: IdentifierValidator = default_validator) -> str:
    """Return the database name from the form data.

    The database name is required: an absent value is still handed to the
    validator, which decides whether empty is acceptable.
    """

    form = await ensure_form_parsed(request)
    db_name = form.post_value("dbname")
    return _check_identifier(validator, IdentifierKind.DATABASE, "dbname", db_name)


async def get_form_folder(request: Request, validator: IdentifierValidator = default_validator) -> str:
    """Return the folder name (if any) present in the form data."""

    form = await ensure_form_parsed(request)
    folder = form.post_value("folder")
    if _absent(folder):
        return ""
    return _check_identifier(validator, IdentifierKind.FOLDER, "folder", folder)


async def get_table(request: Request, validator: IdentifierValidator = default_validator) -> str:
    """Return the requested table name (if any), from the body or query string."""

    form = await ensure_form_parsed(request)
    table = form.value("table")
    if _absent(table):
        return ""
    return _check_identifier(validator, IdentifierKind.TABLE, "table", table)


async def get_form_version(request: Request) -> int:
    """Return the requested database version number.

    No version given means 0 ("latest"). Only plain ASCII digits are
    accepted, so signs, underscores, decimals and whitespace are all
    rejected.
    """

    form = await ensure_form_parsed(request)
    raw = form.value("version")
    if _absent(raw):
        return 0

    if not _VERSION_RE.fullmatch(raw):
        logger.info("Invalid database version number: %r", raw[:50], extra={"field": "version"})
        raise InvalidVersion()
    # length check first: int() refuses very long digit strings
    if len(raw) > len(str(MAX_VERSION)) or int(raw) > MAX_VERSION:
        logger.info("Database version number out of range", extra={"field": "version"})
        raise InvalidVersion()
    return int(raw)


async def get_pub(request: Request) -> bool:
    """Return the requested "public" flag from the form data.

    Unlike the other fields there is no default: a missing value raises
    MissingVisibility so callers can tell "false" from "not given".
    """

    form = await ensure_form_parsed(request)
    val = form.post_value("public")
    if _absent(val):
        raise MissingVisibility()
    if val in _TRUE_VALUES:
        return True
    if val in _FALSE_VALUES:
        return False
    logger.info("Error when converting public value to boolean: %r", val[:50], extra={"field": "public"})
    raise InvalidVisibility()


# -----------------
# Path extractor
# -----------------


async def get_od(request: Request, skip: int = 0, validator: IdentifierValidator = default_validator) -> OwnerDatabase:
    """Return the database owner and name from the URL path.

    `skip` is the number of leading path segments to ignore, so the same
    handler logic works under different prefixes:

      get_od(request, 0)  # /<owner>/<database>
      get_od(request, 1)  # /download/<owner>/<database>
    """

    if skip < 0:
        raise ValueError("skip must be >= 0")

    # scope path is already percent-decoded; request.url would re-parse it and
    # cut a segment at a decoded "?" or "#"
    root_path = request.scope.get("root_path", "")
    path = request.scope["path"]
    if root_path and not path.startswith(root_path):
        path = root_path + path
    parts = path.split("/")

    # parts[0] is the empty segment before the leading slash
    if len(parts) < skip + 3:
        logger.info("Something wrong with the requested URL: %r", path[:200], extra={"path": path[:200]})
        raise MalformedURL()

    owner = parts[skip + 1]
    database = parts[skip + 2]

    try:
        validator.validate_owner_database(owner, database)
    except ValueError as e:
        logger.info("Validation failed for owner or database name: %s", e, extra={"path": path[:200]})
        raise InvalidOwnerOrDatabase() from None

    return OwnerDatabase(owner=owner, database=database)


# -----------------
# Composite extractors
# -----------------


async def get_odt(request: Request, skip: int = 0, validator: IdentifierValidator = default_validator) -> OwnerDatabaseTable:
    """Return owner, database and requested table name (if any)."""

    await ensure_form_parsed(request)
    od = await get_od(request, skip, validator)
    table = await get_table(request, validator)
    return OwnerDatabaseTable(owner=od.owner, database=od.database, table=table)


async def get_odtv(
    request: Request, skip: int = 0, validator: IdentifierValidator = default_validator
) -> OwnerDatabaseTableVersion:
    """Return owner, database, requested table name (if any) and version number."""

    await ensure_form_parsed(request)
    od = await get_od(request, skip, validator)
    table = await get_table(request, validator)
    version = await get_form_version(request)
    return OwnerDatabaseTableVersion(owner=od.owner, database=od.database, table=table, version=version)


async def get_odv(request: Request, skip: int = 0, validator: IdentifierValidator = default_validator) -> OwnerDatabaseVersion:
    """Return owner, database and version number."""

    await ensure_form_parsed(request)
    od = await get_od(request, skip, validator)
    version = await get_form_version(request)
    return OwnerDatabaseVersion(owner=od.owner, database=od.database, version=version)


async def get_form_udv(request: Request, validator: IdentifierValidator = default_validator) -> UserDatabaseVersion:
    """Return the username, database and version present in the form data."""

    await ensure_form_parsed(request)
    username = await get_form_username(request, validator)
    database = await get_form_database(request, validator)
    version = await get_form_version(request)
    return UserDatabaseVersion(username=username, database=database, version=version)


async def get_form_ufd(request: Request, validator: IdentifierValidator = default_validator) -> UserFolderDatabase:
    """Return the username, folder and database name present in the form data."""

    await ensure_form_parsed(request)
    username = await get_form_username(request, validator)
    folder = await get_form_folder(request, validator)
    database = await get_form_database(request, validator)
    return UserFolderDatabase(username=username, folder=folder, database=database)


async def get_form_ups(request: Request, validator: IdentifierValidator = default_validator) -> LoginForm:
    """Return the username, password and sanitized source URL of a login form.

    Both username and password must be present; anything less raises
    MissingCredential. The source URL never fails the extraction: a value
    that is unusable as a same-site redirect becomes "".
    """

    form = await ensure_form_parsed(request)
    username = await get_form_username(request, validator)

    password = form.post_value("pass")
    source_url = form.post_value("sourceurl")

    if not username or not password:
        # never log the password itself
        logger.info("Username or password missing", extra={"field": "pass" if username else "username"})
        raise MissingCredential()

    return LoginForm(username=username, password=password, bounce_url=sanitize_referer(source_url))


# -----------------
# Referer sanitizer
# -----------------


def sanitize_referer(source_url: str) -> str:
    """Reduce a caller supplied "bounce back" URL to a same-site path.

    Returns "" for empty input, unparsable URLs, and anything carrying a
    host (absolute or protocol-relative URLs). Otherwise only the path is
    kept; query string and fragment are dropped.
    """

    if not source_url or not source_url.strip():
        return ""

    try:
        ref = urlsplit(source_url)
    except ValueError as e:
        logger.warning("Error when parsing referrer URL: %s", e, extra={"field": "sourceurl"})
        return ""

    if ref.netloc:
        logger.info("Discarding referrer URL with a host component", extra={"field": "sourceurl"})
        return ""

    if ref.scheme and ref.scheme.lower() not in _SAFE_REDIRECT_SCHEMES:
        logger.info("Discarding referrer URL with scheme %r", ref.scheme[:20], extra={"field": "sourceurl"})
        return ""

    path = ref.path
    # Browsers treat "//host" and "/\host" in a Location header as another site.
    if path.startswith("//") or "\\" in path:
        logger.info("Discarding protocol-relative referrer path", extra={"field": "sourceurl"})
        return ""

    return path
