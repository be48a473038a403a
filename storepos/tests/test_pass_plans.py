from decimal import Decimal

import psycopg
import pytest

from storepos.app import pass_plans as pass_plans_module
from storepos.app.errors import InternalError
from storepos.app.pass_plans import get_pass_plan_by_sku, list_active_plans
from storepos.app.routers import passes as passes_router


class _DummyCursor:
    def __init__(self, rows=None, error=None):
        self._rows = rows or []
        self._error = error
        self.executed: list[tuple[str, tuple]] = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def execute(self, sql, params=()):
        self.executed.append((" ".join(sql.lower().split()), tuple(params)))
        if self._error is not None:
            raise self._error

    def fetchall(self):
        return self._rows

    def fetchone(self):
        return self._rows[0] if self._rows else None


class _DummyConn:
    def __init__(self, cursor: _DummyCursor):
        self._cursor = cursor

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def cursor(self):
        return self._cursor


def test_list_active_plans_filters_inactive_and_sorts_by_price():
    cur = _DummyCursor([{"pass_plan_id": 1, "sale_price": Decimal("9.90")}])
    assert list_active_plans(cur) == [{"pass_plan_id": 1, "sale_price": Decimal("9.90")}]
    sql, _params = cur.executed[0]
    assert "where is_active = true" in sql
    assert "order by sale_price asc" in sql


def test_list_active_plans_storage_fault_is_internal_error():
    cur = _DummyCursor(error=psycopg.OperationalError("connection reset"))
    with pytest.raises(InternalError) as ex:
        list_active_plans(cur)
    assert ex.value.status_code == 500


def test_get_pass_plan_by_sku_only_returns_active_plans():
    cur = _DummyCursor([{"pass_plan_id": 2, "sale_sku": "PASS-10"}])
    assert get_pass_plan_by_sku(cur, "PASS-10")["pass_plan_id"] == 2
    sql, params = cur.executed[0]
    assert "sale_sku = %s and is_active = true" in sql
    assert params == ("PASS-10",)


def test_get_pass_plan_by_sku_unknown_returns_none():
    assert get_pass_plan_by_sku(_DummyCursor([]), "NOPE") is None


def test_pass_plan_list_endpoint_wraps_plans_in_envelope(monkeypatch):
    plans = [
        {"pass_plan_id": 1, "sale_price": Decimal("9.90")},
        {"pass_plan_id": 2, "sale_price": Decimal("19.90")},
    ]
    conn = _DummyConn(_DummyCursor(plans))
    monkeypatch.setattr(passes_router, "get_conn", lambda: conn)

    res = passes_router.pass_plan_list()

    assert res["status"] == "success"
    assert res["message"] == "Pass plans retrieved successfully."
    assert [p["pass_plan_id"] for p in res["data"]] == [1, 2]


def test_plan_columns_cover_catalog_fields():
    cols = {c.strip() for c in pass_plans_module.PLAN_COLUMNS.replace("\n", " ").split(",")}
    for name in ("name_zh", "name_es", "total_uses", "validity_days", "max_uses_per_order", "max_uses_per_day", "sale_sku", "sale_price"):
        assert name in cols
