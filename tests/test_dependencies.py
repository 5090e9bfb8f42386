from __future__ import annotations

from typing import Annotated, Any, Dict

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from tenantdb.dependencies import (
    LoginFormDep,
    OwnerDatabaseDep,
    OwnerDatabaseTableVersionDep,
    UserDatabaseVersionDep,
    UserFolderDatabaseDep,
    install,
    odv_dependency,
)
from tenantdb.naming import IdentifierKind
from tenantdb.userinput import OwnerDatabaseVersion


def _make_app(validator=None) -> FastAPI:
    app = FastAPI()
    install(app, validator=validator, configure_logging=False)

    @app.get("/{owner}/{database}")
    async def db_page(odtv: OwnerDatabaseTableVersionDep) -> Dict[str, Any]:
        owner, database, table, version = odtv
        return {"owner": owner, "database": database, "table": table, "version": version}

    @app.delete("/{owner}/{database}")
    async def delete_db(od: OwnerDatabaseDep) -> Dict[str, Any]:
        owner, database = od
        return {"owner": owner, "database": database}

    @app.get("/download/{owner}/{database}")
    async def download(
        odv: Annotated[OwnerDatabaseVersion, Depends(odv_dependency(skip=1))],
    ) -> Dict[str, Any]:
        return {"owner": odv.owner, "database": odv.database, "version": odv.version}

    @app.post("/x/login")
    async def login(form: LoginFormDep) -> Dict[str, Any]:
        return {"username": form.username, "bounce": form.bounce_url}

    @app.post("/x/upload")
    async def upload(ufd: UserFolderDatabaseDep) -> Dict[str, Any]:
        return {"username": ufd.username, "folder": ufd.folder, "database": ufd.database}

    @app.post("/x/fork")
    async def fork(udv: UserDatabaseVersionDep) -> Dict[str, Any]:
        return {"username": udv.username, "database": udv.database, "version": udv.version}

    return app


@pytest.fixture
def client() -> TestClient:
    return TestClient(_make_app())


def test_db_page_extracts_path_and_query(client: TestClient) -> None:
    r = client.get("/alice/db.sqlite", params={"table": "Customers", "version": "2"})
    assert r.status_code == 200
    assert r.json() == {"owner": "alice", "database": "db.sqlite", "table": "Customers", "version": 2}
    assert r.headers["X-Request-ID"]


def test_prefixed_route_skips_segments(client: TestClient) -> None:
    r = client.get("/download/alice/db.sqlite")
    assert r.status_code == 200
    assert r.json() == {"owner": "alice", "database": "db.sqlite", "version": 0}


def test_invalid_owner_is_generic_400(client: TestClient) -> None:
    r = client.get("/static/db.sqlite", headers={"X-Request-ID": "req-123"})
    assert r.status_code == 400
    assert r.json() == {"detail": "Invalid owner or database name", "error": "InvalidOwnerOrDatabase"}
    assert r.headers["X-Request-ID"] == "req-123"


def test_invalid_version_is_400(client: TestClient) -> None:
    r = client.get("/alice/db.sqlite", params={"version": "1.5"})
    assert r.status_code == 400
    assert r.json()["error"] == "InvalidVersion"


def test_invalid_table_does_not_echo_value(client: TestClient) -> None:
    r = client.get("/alice/db.sqlite", params={"table": "x'; DROP TABLE y"})
    assert r.status_code == 400
    body = r.json()
    assert body == {"detail": "Invalid table name", "error": "InvalidIdentifier"}


def test_login_form(client: TestClient) -> None:
    r = client.post(
        "/x/login",
        data={"username": "alice", "pass": "s3cret", "sourceurl": "https://evil.example/phish"},
    )
    assert r.status_code == 200
    assert r.json() == {"username": "alice", "bounce": ""}


def test_login_form_missing_password(client: TestClient) -> None:
    r = client.post("/x/login", data={"username": "alice"})
    assert r.status_code == 400
    assert r.json()["error"] == "MissingCredential"


def test_upload_form(client: TestClient) -> None:
    r = client.post("/x/upload", data={"username": "alice", "folder": "/reports", "dbname": "db.sqlite"})
    assert r.status_code == 200
    assert r.json() == {"username": "alice", "folder": "/reports", "database": "db.sqlite"}


def test_malformed_body_is_400(client: TestClient) -> None:
    r = client.post(
        "/x/upload",
        content=b"username=%zz",
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    assert r.status_code == 400
    assert r.json()["error"] == "MalformedRequestBody"


def test_app_validator_is_used(recording_validator) -> None:
    validator = recording_validator(reject={IdentifierKind.TABLE})
    client = TestClient(_make_app(validator))

    r = client.get("/alice/db.sqlite", params={"table": "Customers"})
    assert r.status_code == 400
    assert validator.kinds() == ["owner_database", IdentifierKind.TABLE]


def test_owner_database_only_route(client: TestClient) -> None:
    r = client.delete("/alice/db.sqlite", params={"table": "x'; DROP TABLE y", "version": "nope"})
    assert r.status_code == 200
    assert r.json() == {"owner": "alice", "database": "db.sqlite"}


@pytest.mark.parametrize("encoded", ["secret%3Fx.sqlite", "secret%23x.sqlite"])
def test_encoded_query_chars_in_database_are_rejected(client: TestClient, encoded: str) -> None:
    r = client.get(f"/alice/{encoded}")
    assert r.status_code == 400
    assert r.json()["error"] == "InvalidOwnerOrDatabase"


def test_fork_form(client: TestClient) -> None:
    r = client.post("/x/fork", data={"username": "alice", "dbname": "db.sqlite", "version": "3"})
    assert r.status_code == 200
    assert r.json() == {"username": "alice", "database": "db.sqlite", "version": 3}


def test_fork_form_version_defaults_to_latest(client: TestClient) -> None:
    r = client.post("/x/fork", data={"username": "alice", "dbname": "db.sqlite"})
    assert r.status_code == 200
    assert r.json()["version"] == 0


def test_fork_form_huge_version_is_400(client: TestClient) -> None:
    r = client.post("/x/fork", data={"username": "alice", "dbname": "db.sqlite", "version": "9" * 5000})
    assert r.status_code == 400
    assert r.json()["error"] == "InvalidVersion"
