# backend/tests/test_error_contract.py

from fastapi import FastAPI, APIRouter, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient

# The real handlers from sunrise.main, not FastAPI's defaults
from sunrise.core.errors import PersistenceError
from sunrise.main import (
    app as real_app,
    http_exception_handler,
    persistence_exception_handler,
    validation_exception_handler,
)


def _app_with_handlers() -> FastAPI:
    app = FastAPI()
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PersistenceError, persistence_exception_handler)
    return app


def test_http_exception_detail_dict_is_preserved_and_merged():
    app = _app_with_handlers()
    r = APIRouter()

    @r.get("/boom")
    def boom():
        raise HTTPException(
            status_code=404,
            detail={"code": "INVITATION_NOT_FOUND", "message": "Invitation not found or already expired"},
        )

    app.include_router(r, prefix="/api/v1")

    resp = TestClient(app).get("/api/v1/boom")
    assert resp.status_code == 404

    body = resp.json()
    assert body["code"] == "HTTP_404"
    assert body["message"] == "Invitation not found or already expired"
    # Structured detail wins over the generic code
    assert body["detail"]["code"] == "INVITATION_NOT_FOUND"

    assert isinstance(body["request_id"], str)
    assert len(body["request_id"]) > 0
    assert resp.headers["X-Request-ID"] == body["request_id"]


def test_http_exception_string_detail():
    app = _app_with_handlers()

    @app.get("/nope")
    def nope():
        raise HTTPException(status_code=401, detail="Not authenticated", headers={"WWW-Authenticate": "Bearer"})

    resp = TestClient(app).get("/nope")
    assert resp.status_code == 401
    assert resp.json()["message"] == "Not authenticated"
    assert resp.json()["detail"] == {"code": "HTTP_401", "message": "Not authenticated"}
    assert resp.headers["WWW-Authenticate"] == "Bearer"


def test_validation_errors_use_the_contract():
    app = _app_with_handlers()

    @app.get("/items")
    def items(page: int):
        return {"page": page}

    resp = TestClient(app).get("/items", params={"page": "first"})
    assert resp.status_code == 422

    body = resp.json()
    assert body["code"] == "VALIDATION_ERROR"
    assert body["detail"]["code"] == "VALIDATION_ERROR"
    assert body["errors"][0]["loc"] == ["query", "page"]


def test_persistence_error_maps_to_503():
    app = _app_with_handlers()

    @app.get("/store")
    def store():
        raise PersistenceError("delete_by_identifier")

    resp = TestClient(app).get("/store")
    assert resp.status_code == 503
    assert resp.json()["code"] == "PERSISTENCE_ERROR"
    # Internal operation names stay in the logs
    assert "delete_by_identifier" not in resp.text


def test_incoming_request_id_is_echoed():
    resp = TestClient(real_app).get("/api/v1/health", headers={"X-Request-ID": "req-abc-123"})
    assert resp.status_code == 200
    assert resp.headers["X-Request-ID"] == "req-abc-123"
