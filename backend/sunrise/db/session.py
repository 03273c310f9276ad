# backend/sunrise/db/session.py
import logging
import time

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from sunrise.core.config import settings
from sunrise.core.request_context import get_request_id, record_db_query

logger = logging.getLogger("sunrise.db")

DATABASE_URL = settings.database_url or "sqlite:///./sunrise.db"


def _connect_args(url: str) -> dict:
    # SQLite connections are shared with the threadpool FastAPI runs sync routes on.
    return {"check_same_thread": False} if url.startswith("sqlite") else {}


engine = create_engine(DATABASE_URL, connect_args=_connect_args(DATABASE_URL), future=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)


def _statement_head(statement: str) -> str:
    # Single line, truncated, never the bound parameters (they can hold token hashes).
    return " ".join((statement or "").split())[:240]


def instrument_engine(target: Engine) -> None:
    """Feed per-statement timings into the request's DbMetrics and flag slow statements."""
    slow_ms = float(settings.slow_db_query_ms)

    @event.listens_for(target, "before_cursor_execute")
    def _start_timer(conn, cursor, statement, parameters, context, executemany):
        context._sunrise_started = time.perf_counter()

    @event.listens_for(target, "after_cursor_execute")
    def _stop_timer(conn, cursor, statement, parameters, context, executemany):
        started = getattr(context, "_sunrise_started", None)
        if started is None:
            return

        elapsed_ms = (time.perf_counter() - started) * 1000.0
        head = _statement_head(statement)
        record_db_query(elapsed_ms, head)

        if elapsed_ms < slow_ms:
            return
        if settings.log_db_sql:
            logger.warning("slow_db_query request_id=%s duration_ms=%.2f sql=%s", get_request_id(), elapsed_ms, head)
        else:
            logger.warning("slow_db_query request_id=%s duration_ms=%.2f", get_request_id(), elapsed_ms)


instrument_engine(engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
