from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from storepos.app.pass_purchase import CartLineIn
from storepos.app.pass_records import (
    DuplicateOrder,
    InvoiceInfo,
    PassRecords,
    PurchaseContext,
    create_pass_records,
    find_order_by_idempotency_key,
)


class _FakeCursor:
    def __init__(self, answers):
        self.answers = list(answers)
        self.executed = []
        self._row = None

    def execute(self, sql, params=None):
        text = " ".join(str(sql or "").lower().split())
        self.executed.append((text, params))
        needle, row = self.answers.pop(0)
        assert needle in text, f"expected {needle!r} in {text}"
        self._row = row

    def fetchone(self):
        return self._row


CONTEXT = PurchaseContext(
    store_id=1,
    device_id=11,
    user_id=21,
    member_id=7,
    payment_method="card",
    idempotency_key="key-1",
)
PLAN = {"pass_plan_id": 3, "total_uses": 10, "validity_days": 30, "sale_price": Decimal("29.90")}


def test_create_pass_records_writes_order_then_pass():
    cur = _FakeCursor(
        [
            ("insert into topup_orders", {"id": 100}),
            ("insert into member_passes", {"id": 500}),
        ]
    )
    records = create_pass_records(cur, CONTEXT, InvoiceInfo("VR01", 9), CartLineIn(product_code="PASS-10"), PLAN)

    assert records == PassRecords(order_id=100, pass_id=500)

    order_sql, order_params = cur.executed[0]
    assert "on conflict (store_id, idempotency_key) do nothing" in order_sql
    assert order_params[:10] == (1, 11, 21, 7, 3, "PASS-10", 1, Decimal("29.90"), "card", "key-1")
    assert order_params[10:12] == ("VR01", 9)
    assert order_params[12].tzinfo == timezone.utc

    pass_sql, pass_params = cur.executed[1]
    member_id, plan_id, order_id, total_uses, remaining_uses, purchased_at, expires_on = pass_params
    assert (member_id, plan_id, order_id, total_uses, remaining_uses) == (7, 3, 100, 10, 10)
    assert expires_on == purchased_at.date() + timedelta(days=30)
    assert isinstance(expires_on, date) and not isinstance(expires_on, datetime)


def test_create_pass_records_signals_duplicate_key_without_writing_pass():
    cur = _FakeCursor([("insert into topup_orders", None)])
    with pytest.raises(DuplicateOrder) as ex:
        create_pass_records(cur, CONTEXT, InvoiceInfo("VR01", 9), CartLineIn(product_code="PASS-10"), PLAN)
    assert ex.value.idempotency_key == "key-1"
    assert len(cur.executed) == 1


def test_find_order_by_idempotency_key_is_store_scoped():
    cur = _FakeCursor([("from topup_orders o", {"order_id": 100, "pass_id": 500, "member_phone": "555-0100"})])
    found = find_order_by_idempotency_key(cur, 1, "key-1")
    assert found["pass_id"] == 500
    assert found["member_phone"] == "555-0100"
    sql, params = cur.executed[0]
    assert "where o.store_id = %s and o.idempotency_key = %s" in sql
    # The member join is not filtered on is_active so a replay survives deactivation.
    assert "join pos_members m on m.id = o.member_id" in sql
    assert "m.is_active" not in sql
    assert params == (1, "key-1")
