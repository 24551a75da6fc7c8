"""Tests for normalized error responses."""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from prosite.core.errors import (
    AccountMutationFailedError,
    AppError,
    ConflictError,
    app_error_handler,
    unhandled_exception_handler,
)
from prosite.core.middleware.request_id import RequestIdMiddleware


def _make_app(exc):
    app = FastAPI()
    app.add_middleware(RequestIdMiddleware)
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.get("/boom")
    async def boom():
        raise exc

    return app


def test_validation_error_has_standard_shape(client, alice, auth_headers):
    resp = client.post("/api/billing/create-order", json={"planId": "nope"}, headers=auth_headers(alice))
    assert resp.status_code == 400
    body = resp.json()
    rid = resp.headers.get("x-request-id")
    assert body["error"]["code"] == "invalid_plan"
    assert body["error"]["request_id"] == rid
    assert body["detail"] == body["error"]["message"]


def test_conflict_error_code():
    client = TestClient(_make_app(ConflictError("taken", code="username_taken")))
    resp = client.get("/boom")
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "username_taken"


def test_account_mutation_failure_is_500():
    client = TestClient(_make_app(AccountMutationFailedError("write failed")))
    resp = client.get("/boom", headers={"X-Request-Id": "rid-500"})
    assert resp.status_code == 500
    assert resp.json()["error"] == {
        "code": "account_mutation_failed",
        "message": "write failed",
        "request_id": "rid-500",
    }


def test_unhandled_exception_hides_details():
    client = TestClient(_make_app(RuntimeError("secret stack detail")), raise_server_exceptions=False)
    resp = client.get("/boom")
    assert resp.status_code == 500
    body = resp.json()
    assert body["error"]["code"] == "internal_error"
    assert "secret" not in resp.text
    assert body["error"]["request_id"]
