from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class PurchaseContext:
    store_id: int
    device_id: int
    user_id: int
    member_id: int
    payment_method: str
    idempotency_key: str


@dataclass(frozen=True)
class InvoiceInfo:
    series: str
    number: int


@dataclass(frozen=True)
class PassRecords:
    order_id: int
    pass_id: int


class DuplicateOrder(Exception):
    """Another request committed an order with the same idempotency key first."""

    def __init__(self, store_id: int, idempotency_key: str):
        super().__init__(f"duplicate idempotency key for store {store_id}")
        self.store_id = store_id
        self.idempotency_key = idempotency_key


def find_order_by_idempotency_key(cur, store_id: int, idempotency_key: str) -> Optional[dict]:
    cur.execute(
        """
        SELECT o.id AS order_id, o.member_id, o.pass_plan_id, o.sale_sku,
               o.invoice_series, o.invoice_number, o.created_at,
               mp.id AS pass_id, m.phone_number AS member_phone
        FROM topup_orders o
        JOIN pos_members m ON m.id = o.member_id
        LEFT JOIN member_passes mp ON mp.topup_order_id = o.id
        WHERE o.store_id = %s AND o.idempotency_key = %s
        """,
        (store_id, idempotency_key),
    )
    return cur.fetchone()


def create_pass_records(cur, context: PurchaseContext, invoice: InvoiceInfo, cart_item, plan: dict) -> PassRecords:
    """
    Write the order and the redeemable pass for one purchase. Both rows go into
    the caller's transaction; the caller owns commit/rollback.
    """
    purchased_at = datetime.now(timezone.utc)
    expires_on = purchased_at.date() + timedelta(days=int(plan["validity_days"]))
    amount = Decimal(str(plan["sale_price"]))

    cur.execute(
        """
        INSERT INTO topup_orders
          (store_id, device_id, user_id, member_id, pass_plan_id, sale_sku, quantity, amount,
           payment_method, idempotency_key, invoice_series, invoice_number, created_at)
        VALUES
          (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (store_id, idempotency_key) DO NOTHING
        RETURNING id
        """,
        (
            context.store_id,
            context.device_id,
            context.user_id,
            context.member_id,
            plan["pass_plan_id"],
            cart_item.product_code,
            1,
            amount,
            context.payment_method,
            context.idempotency_key,
            invoice.series,
            invoice.number,
            purchased_at,
        ),
    )
    order = cur.fetchone()
    if not order:
        raise DuplicateOrder(context.store_id, context.idempotency_key)

    total_uses = int(plan["total_uses"])
    cur.execute(
        """
        INSERT INTO member_passes
          (member_id, pass_plan_id, topup_order_id, total_uses, remaining_uses,
           purchased_at, expires_on, status)
        VALUES
          (%s, %s, %s, %s, %s, %s, %s, 'active')
        RETURNING id
        """,
        (
            context.member_id,
            plan["pass_plan_id"],
            order["id"],
            total_uses,
            total_uses,
            purchased_at,
            expires_on,
        ),
    )
    member_pass = cur.fetchone()
    return PassRecords(order_id=int(order["id"]), pass_id=int(member_pass["id"]))
