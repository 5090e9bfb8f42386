"""Naming and validation helpers.

This module centralizes rules for user-controlled identifiers that become:
- storage paths (owner/folder/database)
- SQL identifiers (table names inside hosted SQLite databases)
- page URLs (/<owner>/<database>)

Keeping these rules strict prevents:
- path traversal
- injection via dynamically constructed identifiers
- owners that shadow top-level routes (/login, /static, ...)

Each identifier domain has its own rule. A table name and a database name
look alike but are consumed by different systems, so they are not allowed to
share a pattern.

The extraction layer depends on the IdentifierValidator protocol rather than
on these functions directly, so tests (or a different deployment) can swap
the rule set.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Iterable, Optional, Protocol

from .config import settings

_USER_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,62}$")
_DB_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9 _.()\[\]-]{0,255}$")
_FOLDER_SEGMENT_RE = re.compile(r"^[A-Za-z0-9 _.-]{1,255}$")
_TABLE_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9 _$-]{0,127}$")

MAX_FOLDER_LENGTH = 1024


class IdentifierKind(str, Enum):
    USERNAME = "username"
    DATABASE = "database"
    FOLDER = "folder"
    TABLE = "table"


class IdentifierValidator(Protocol):
    """Accept/reject capability used by the extractors.

    Both methods return None on acceptance and raise ValueError on
    rejection. The message is for server logs only.
    """

    def validate_identifier(self, kind: IdentifierKind, value: str) -> None: ...

    def validate_owner_database(self, owner: str, database: str) -> None: ...


def validate_user(name: str) -> None:
    if not name:
        raise ValueError("Username is required")
    if not _USER_RE.fullmatch(name):
        raise ValueError(
            "Invalid username. Use letters/numbers/underscore/dot/hyphen, start with a letter or number, "
            f"max 63 chars. Got: {name!r}"
        )


def validate_db(name: str) -> None:
    if not name:
        raise ValueError("Database name is required")
    if not _DB_RE.fullmatch(name):
        raise ValueError(
            "Invalid database name. Use letters/numbers/space and _.-()[], start with a letter or number, "
            f"max 256 chars. Got: {name!r}"
        )
    if ".." in name:
        raise ValueError(f"Database name may not contain '..'. Got: {name!r}")


def validate_folder(path: str) -> None:
    """Validate a storage folder path such as "/reports/2026/".

    Leading and trailing slashes are allowed; empty, "." and ".." segments
    are not.
    """

    if not path:
        raise ValueError("Folder is required")
    if len(path) > MAX_FOLDER_LENGTH:
        raise ValueError(f"Folder path too long (max {MAX_FOLDER_LENGTH} chars)")

    if path == "/":
        return

    inner = path[1:] if path.startswith("/") else path
    if inner.endswith("/"):
        inner = inner[:-1]

    for segment in inner.split("/"):
        if segment in ("", ".", ".."):
            raise ValueError(f"Invalid folder segment {segment!r} in {path!r}")
        if not _FOLDER_SEGMENT_RE.fullmatch(segment):
            raise ValueError(f"Invalid character in folder segment {segment!r}")


def validate_table(name: str) -> None:
    """Validate a table name inside a hosted SQLite database."""

    if not name:
        raise ValueError("Table name is required")
    if not _TABLE_RE.fullmatch(name):
        raise ValueError(
            "Invalid table name. Use letters/numbers/space and _-$, start with a letter, number or "
            f"underscore, max 128 chars. Got: {name!r}"
        )
    # SQLite keeps its own bookkeeping tables under this prefix.
    if name.lower().startswith("sqlite_"):
        raise ValueError(f"Table names starting with 'sqlite_' are reserved. Got: {name!r}")


def validate_user_db(owner: str, database: str, *, reserved: Optional[Iterable[str]] = None) -> None:
    """Validate an owner/database pair taken from a URL path.

    On top of the single-field rules, the owner may not be a reserved route
    name (compared case-insensitively).
    """

    validate_user(owner)
    validate_db(database)

    reserved_names = settings.reserved_owner_names if reserved is None else tuple(r.lower() for r in reserved)
    if owner.lower() in reserved_names:
        raise ValueError(f"Owner name {owner!r} is reserved")


_RULES = {
    IdentifierKind.USERNAME: validate_user,
    IdentifierKind.DATABASE: validate_db,
    IdentifierKind.FOLDER: validate_folder,
    IdentifierKind.TABLE: validate_table,
}


class DefaultValidator:
    """IdentifierValidator backed by the rules in this module."""

    def __init__(self, *, reserved_owner_names: Optional[Iterable[str]] = None):
        self._reserved = None if reserved_owner_names is None else tuple(reserved_owner_names)

    def validate_identifier(self, kind: IdentifierKind, value: str) -> None:
        _RULES[IdentifierKind(kind)](value)

    def validate_owner_database(self, owner: str, database: str) -> None:
        validate_user_db(owner, database, reserved=self._reserved)


default_validator = DefaultValidator()
