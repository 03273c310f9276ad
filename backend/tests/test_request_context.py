# backend/tests/test_request_context.py
from sqlalchemy import text

from sunrise.core.request_context import (
    clear_db_metrics,
    get_db_metrics,
    get_request_id,
    reset_db_metrics,
    set_request_id,
)


def test_request_id_defaults_to_dash():
    set_request_id(None)
    assert get_request_id() == "-"

    set_request_id("abc")
    try:
        assert get_request_id() == "abc"
    finally:
        set_request_id(None)


def test_db_queries_are_tallied_per_request(db):
    reset_db_metrics()
    try:
        db.execute(text("SELECT 1"))
        db.execute(text("SELECT 2"))

        m = get_db_metrics()
        assert m.query_count >= 2
        assert m.total_ms >= m.slowest_ms >= 0.0
        assert m.slowest_sql_head.startswith("SELECT")
    finally:
        clear_db_metrics()
