# backend/sunrise/main.py

import logging
import time
import uuid
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

from sunrise.core.config import settings
from sunrise.core.errors import PersistenceError, install_request_id_logging, log_exception_with_context
from sunrise.core.request_context import (
    clear_db_metrics,
    get_db_metrics,
    get_request_id,
    reset_db_metrics,
    set_request_id,
)

# --- Logging setup ---
# The record factory guarantees every record has request_id (third-party
# loggers can bypass filters); the filter fills in the real value.
_old_factory = logging.getLogRecordFactory()


def _record_factory(*args, **kwargs):
    record = _old_factory(*args, **kwargs)
    if not hasattr(record, "request_id"):
        record.request_id = "-"
    return record


logging.setLogRecordFactory(_record_factory)

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s %(name)s request_id=%(request_id)s %(message)s",
)
install_request_id_logging()

logger = logging.getLogger("sunrise")

enable_docs = settings.enable_docs
logger.info("Startup: enable_docs=%s", enable_docs)

# Log DB backend type (sqlite, postgresql, etc.) without leaking credentials
logger.info("DB backend detected: %s", (settings.database_url or "").split(":", 1)[0] or "unknown")

SLOW_HTTP_MS = float(settings.slow_http_ms)

# --- App setup ---
app = FastAPI(
    title=f"{settings.app_name} API",
    openapi_url="/api/v1/openapi.json" if enable_docs else None,
    docs_url="/api/v1/docs" if enable_docs else None,
    redoc_url="/api/v1/redoc" if enable_docs else None,
)


def _get_request_id(request: Request) -> str:
    """
    Use an incoming request id if present (common in proxies),
    otherwise generate one.
    """
    incoming = request.headers.get("x-request-id") or request.headers.get("x-correlation-id")
    if incoming and incoming.strip():
        return incoming.strip()[:128]
    return uuid.uuid4().hex


def _client_ip(request: Request) -> str:
    xff = request.headers.get("x-forwarded-for")
    if xff:
        first = xff.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else "unknown"


def _rid_from_request(request: Request) -> str:
    # Prefer request.state (set by middleware), fall back to request_context, then generate.
    rid = getattr(request.state, "request_id", None)
    if isinstance(rid, str) and rid.strip():
        return rid
    rid2 = get_request_id()
    if rid2 and rid2 != "-":
        return rid2
    return uuid.uuid4().hex


def _error_payload(code: str, message: str, request_id: str, extra: Optional[dict] = None) -> dict:
    """
    Standardized error contract:
    - code/message/request_id at the top level
    - detail mirrors code/message for older clients
    """
    payload: dict[str, Any] = {
        "code": code,
        "message": message,
        "request_id": request_id,
        "detail": {"code": code, "message": message},
    }
    if extra:
        payload.update(extra)
    return payload


def _http_exception_payload(exc: HTTPException, *, request_id: str) -> dict:
    """
    Structured error payload for HTTPException.

    If exc.detail is a dict it is MERGED into payload["detail"], so handlers can raise
        HTTPException(404, detail={"code": "INVITATION_NOT_FOUND", "message": "..."})
    and clients receive that structured payload.
    """
    code = f"HTTP_{exc.status_code}"

    if isinstance(exc.detail, dict):
        msg = exc.detail.get("message")
        if not isinstance(msg, str) or not msg.strip():
            msg = "Request failed."

        merged_detail: dict[str, Any] = {"code": code, "message": msg}
        merged_detail.update(exc.detail)

        return _error_payload(code=code, message=msg, request_id=request_id, extra={"detail": merged_detail})

    msg = exc.detail if isinstance(exc.detail, str) else "Request failed."
    return _error_payload(code=code, message=msg, request_id=request_id)


# --- Exception handlers (standardized error contract) ---
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    request_id = _rid_from_request(request)

    resp = JSONResponse(
        status_code=exc.status_code,
        content=_http_exception_payload(exc, request_id=request_id),
        headers=getattr(exc, "headers", None),
    )
    resp.headers["X-Request-ID"] = request_id
    return resp


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = _rid_from_request(request)
    msg = "Validation error. Check request body/query parameters."
    resp = JSONResponse(
        status_code=422,
        content=_error_payload(
            code="VALIDATION_ERROR",
            message=msg,
            request_id=request_id,
            extra={"errors": _jsonable_errors(exc)},
        ),
    )
    resp.headers["X-Request-ID"] = request_id
    return resp


@app.exception_handler(PersistenceError)
async def persistence_exception_handler(request: Request, exc: PersistenceError):
    request_id = _rid_from_request(request)
    logger.error(
        "persistence_error method=%s path=%s operation=%s",
        request.method,
        request.url.path,
        exc.operation,
    )
    resp = JSONResponse(
        status_code=503,
        content=_error_payload(
            code="PERSISTENCE_ERROR",
            message="The service is temporarily unavailable. Please retry.",
            request_id=request_id,
        ),
    )
    resp.headers["X-Request-ID"] = request_id
    return resp


def _jsonable_errors(exc: RequestValidationError) -> list[dict]:
    # Pydantic may put exception objects under "ctx"; keep only JSON-safe fields.
    return [
        {"loc": list(err.get("loc", ())), "msg": str(err.get("msg", "")), "type": str(err.get("type", ""))}
        for err in exc.errors()
    ]


# --- Observability middleware: request id + timing + structured logs ---
@app.middleware("http")
async def request_observability(request: Request, call_next):
    request_id = _get_request_id(request)
    request.state.request_id = request_id
    set_request_id(request_id)
    reset_db_metrics()

    start = time.perf_counter()
    status_code = 500

    try:
        response = await call_next(request)
        status_code = getattr(response, "status_code", 200) or 200
        response.headers["X-Request-ID"] = request_id
        return response

    except Exception as e:
        # Unhandled errors only: HTTPException / validation / persistence errors
        # are rendered by the exception handlers above.
        log_exception_with_context(
            "Unhandled error method=%s path=%s" % (request.method, request.url.path),
            request_id=request_id,
            extra={"error": e.__class__.__name__},
        )

        resp = JSONResponse(
            status_code=500,
            content=_error_payload(code="INTERNAL_ERROR", message="Internal Server Error", request_id=request_id),
        )
        resp.headers["X-Request-ID"] = request_id
        return resp

    finally:
        duration_ms = (time.perf_counter() - start) * 1000.0

        m = get_db_metrics()

        log_fn = logger.warning if duration_ms >= SLOW_HTTP_MS else logger.info
        log_fn(
            "req request_id=%s method=%s path=%s status=%s duration_ms=%.2f db_total_ms=%.2f db_q=%s db_slowest_ms=%.2f ip=%s",
            request_id,
            request.method,
            request.url.path,
            status_code,
            duration_ms,
            m.total_ms,
            m.query_count,
            m.slowest_ms,
            _client_ip(request),
        )

        if m.total_ms >= float(settings.slow_db_total_ms):
            logger.warning(
                "slow_db_total request_id=%s method=%s path=%s db_total_ms=%.2f db_q=%s db_slowest_ms=%.2f",
                request_id,
                request.method,
                request.url.path,
                m.total_ms,
                m.query_count,
                m.slowest_ms,
            )

        clear_db_metrics()
        set_request_id(None)


# --- CORS setup ---
allowed = settings.origins_list()
logger.info("CORS allow_origins=%s", allowed)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Include routers (after app creation) ---
from sunrise.api.v1 import (  # noqa: E402
    admin_invitations,  # invite / resend / list / delete (admin)
    health,
    invitations,        # metadata lookup + accept (public, token-authenticated)
)

app.include_router(health.router, prefix="/api/v1")
app.include_router(admin_invitations.router, prefix="/api/v1")
app.include_router(invitations.router, prefix="/api/v1")


@app.get("/", include_in_schema=False)
def root():
    if enable_docs:
        return RedirectResponse(url="/api/v1/docs")
    return {"status": f"{settings.app_name} API is running. See /api/v1/health."}
