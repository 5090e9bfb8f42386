"""FastAPI integration for the extractors.

Handlers declare what they need as dependencies:

    @app.get("/{owner}/{database}")
    async def db_page(odtv: OwnerDatabaseTableVersionDep) -> ...:
        owner, database, table, version = odtv

Routes mounted under a prefix build their own dependency with the number of
segments to skip:

    DownloadODV = Annotated[OwnerDatabaseVersion, Depends(odv_dependency(skip=1))]

The identifier validator is looked up on `app.state.identifier_validator`,
falling back to the default rule set. Any ExtractionError raised inside a
dependency becomes a JSON response carrying only the generic message.
"""

from __future__ import annotations

import logging
from typing import Annotated, Awaitable, Callable

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from .config import settings
from .errors import ExtractionError
from .logging_setup import setup_logging
from .middleware import request_context_middleware
from .naming import IdentifierValidator, default_validator
from .userinput import (
    LoginForm,
    OwnerDatabase,
    OwnerDatabaseTable,
    OwnerDatabaseTableVersion,
    OwnerDatabaseVersion,
    UserDatabaseVersion,
    UserFolderDatabase,
    get_form_udv,
    get_form_ufd,
    get_form_ups,
    get_od,
    get_odt,
    get_odtv,
    get_odv,
)

logger = logging.getLogger(__name__)


def get_identifier_validator(request: Request) -> IdentifierValidator:
    """Return the validator bound to the app, or the default rule set."""

    return getattr(request.app.state, "identifier_validator", None) or default_validator


def od_dependency(skip: int = 0) -> Callable[[Request], Awaitable[OwnerDatabase]]:
    async def _dep(request: Request) -> OwnerDatabase:
        return await get_od(request, skip, get_identifier_validator(request))

    return _dep


def odt_dependency(skip: int = 0) -> Callable[[Request], Awaitable[OwnerDatabaseTable]]:
    async def _dep(request: Request) -> OwnerDatabaseTable:
        return await get_odt(request, skip, get_identifier_validator(request))

    return _dep


def odtv_dependency(skip: int = 0) -> Callable[[Request], Awaitable[OwnerDatabaseTableVersion]]:
    async def _dep(request: Request) -> OwnerDatabaseTableVersion:
        return await get_odtv(request, skip, get_identifier_validator(request))

    return _dep


def odv_dependency(skip: int = 0) -> Callable[[Request], Awaitable[OwnerDatabaseVersion]]:
    async def _dep(request: Request) -> OwnerDatabaseVersion:
        return await get_odv(request, skip, get_identifier_validator(request))

    return _dep


async def udv_dependency(request: Request) -> UserDatabaseVersion:
    return await get_form_udv(request, get_identifier_validator(request))


async def ufd_dependency(request: Request) -> UserFolderDatabase:
    return await get_form_ufd(request, get_identifier_validator(request))


async def login_form_dependency(request: Request) -> LoginForm:
    return await get_form_ups(request, get_identifier_validator(request))


OwnerDatabaseDep = Annotated[OwnerDatabase, Depends(od_dependency())]
OwnerDatabaseTableDep = Annotated[OwnerDatabaseTable, Depends(odt_dependency())]
OwnerDatabaseTableVersionDep = Annotated[OwnerDatabaseTableVersion, Depends(odtv_dependency())]
OwnerDatabaseVersionDep = Annotated[OwnerDatabaseVersion, Depends(odv_dependency())]
UserDatabaseVersionDep = Annotated[UserDatabaseVersion, Depends(udv_dependency)]
UserFolderDatabaseDep = Annotated[UserFolderDatabase, Depends(ufd_dependency)]
LoginFormDep = Annotated[LoginForm, Depends(login_form_dependency)]


async def extraction_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render an ExtractionError as a generic JSON error."""

    if not isinstance(exc, ExtractionError):
        raise exc
    logger.info("rejected request input", extra={"kind": exc.kind, "path": request.scope.get("path", "")[:200]})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail, "error": exc.kind})


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ExtractionError, extraction_error_handler)


def install(app: FastAPI, *, validator: IdentifierValidator | None = None, configure_logging: bool = True) -> None:
    """Wire request-id middleware, error handlers and (optionally) logging into an app.

    Idempotent for logging; call once per app for middleware and handlers.
    """

    if configure_logging:
        setup_logging(
            log_level=settings.log_level,
            log_format=settings.log_format,
            input_log_level=settings.input_log_level or None,
        )

    if validator is not None:
        app.state.identifier_validator = validator

    app.middleware("http")(request_context_middleware)
    install_error_handlers(app)
