"""Extraction errors.

Every error raised by the extractors is one of the classes below. Messages
are fixed, generic strings: the validator detail that caused a rejection is
logged server-side and never stored on the exception, so rendering an
ExtractionError to a client cannot disclose validation internals.
"""

from __future__ import annotations

from typing import Optional


class ExtractionError(Exception):
    """Base class for rejected request input."""

    kind: str = "ExtractionError"
    status_code: int = 400
    message: str = "Invalid request"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)

    @property
    def detail(self) -> str:
        return str(self)


class MalformedRequestBody(ExtractionError):
    kind = "MalformedRequestBody"
    message = "Malformed request body"


class MalformedURL(ExtractionError):
    kind = "MalformedURL"
    status_code = 404
    message = "Invalid URL"


class InvalidIdentifier(ExtractionError):
    """A single identifier field failed its validator.

    `field` is the form field name (e.g. "dbname"), never the rejected value.
    """

    kind = "InvalidIdentifier"

    _labels = {
        "username": "username",
        "dbname": "database name",
        "folder": "folder",
        "table": "table name",
    }

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Invalid {self._labels.get(field, field)}")


class InvalidOwnerOrDatabase(ExtractionError):
    kind = "InvalidOwnerOrDatabase"
    message = "Invalid owner or database name"


class InvalidVersion(ExtractionError):
    kind = "InvalidVersion"
    message = "Invalid database version number"


class MissingVisibility(ExtractionError):
    kind = "MissingVisibility"
    message = "No public/private value present"


class InvalidVisibility(ExtractionError):
    kind = "InvalidVisibility"
    message = "Invalid public/private value"


class MissingCredential(ExtractionError):
    kind = "MissingCredential"
    message = "Username and password are required"
