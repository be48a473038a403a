import pytest

from storepos.app.deps import RequestContext
from storepos.app.errors import BusinessRuleViolation
from storepos.app.shifts import ensure_active_shift
from storepos.app.stores import get_store_config


class _OneRowCursor:
    def __init__(self, row):
        self.row = row
        self.executed = []

    def execute(self, sql, params=None):
        self.executed.append((" ".join(sql.lower().split()), params))

    def fetchone(self):
        return self.row


CTX = RequestContext(store_id=1, device_id=11, user_id=21)


def test_ensure_active_shift_returns_open_shift_for_store_device():
    cur = _OneRowCursor({"id": 5, "opened_at": None})
    assert ensure_active_shift(cur, CTX)["id"] == 5
    sql, params = cur.executed[0]
    assert "status = 'open'" in sql
    assert params == (1, 11)


def test_ensure_active_shift_rejects_without_open_shift():
    with pytest.raises(BusinessRuleViolation) as ex:
        ensure_active_shift(_OneRowCursor(None), CTX)
    assert ex.value.status_code == 403
    assert ex.value.code == "NO_ACTIVE_SHIFT"
    assert ex.value.messages["es"]


def test_get_store_config_reads_invoice_prefix():
    cur = _OneRowCursor({"store_id": 1, "invoice_prefix": "VR01"})
    assert get_store_config(cur, 1)["invoice_prefix"] == "VR01"
    assert cur.executed[0][1] == (1,)
