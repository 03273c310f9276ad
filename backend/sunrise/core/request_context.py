# backend/sunrise/core/request_context.py
"""
Per-request state carried in context variables: the request id used in log
lines and error payloads, and a running tally of database time.
"""

from __future__ import annotations

from contextvars import ContextVar
from dataclasses import dataclass
from typing import Optional

_request_id: ContextVar[Optional[str]] = ContextVar("sunrise_request_id", default=None)
_db_metrics: ContextVar[Optional["DbMetrics"]] = ContextVar("sunrise_db_metrics", default=None)


def set_request_id(rid: Optional[str]) -> None:
    _request_id.set(rid)


def get_request_id() -> str:
    return _request_id.get() or "-"


@dataclass
class DbMetrics:
    query_count: int = 0
    total_ms: float = 0.0
    slowest_ms: float = 0.0
    slowest_sql_head: str = ""

    def add(self, duration_ms: float, sql_head: str = "") -> None:
        self.query_count += 1
        self.total_ms += duration_ms
        if duration_ms > self.slowest_ms:
            self.slowest_ms = duration_ms
            self.slowest_sql_head = sql_head[:240]


def reset_db_metrics() -> None:
    _db_metrics.set(DbMetrics())


def get_db_metrics() -> DbMetrics:
    metrics = _db_metrics.get()
    if metrics is None:
        metrics = DbMetrics()
        _db_metrics.set(metrics)
    return metrics


def clear_db_metrics() -> None:
    _db_metrics.set(None)


def record_db_query(duration_ms: float, sql_head: str = "") -> None:
    get_db_metrics().add(float(duration_ms), sql_head or "")
