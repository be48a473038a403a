"""
Pass (discount card) purchase.

One request runs through:

    VALIDATE_INPUT -> CHECK_DUPLICATE -> CHECK_SHIFT -> CHECK_MEMBER -> CHECK_PLAN
      -> VALIDATE_BUSINESS_RULES -> ALLOCATE_INVOICE -> PERSIST -> COMMIT

and ends either COMMITTED or ABORTED. Everything up to the business rules is
read-only; invoice allocation and the order/pass inserts share one
transaction, so an abort never leaves a consumed invoice number or a
half-written pass behind. Duplicate submissions are detected by the
(store_id, idempotency_key) pair, first by lookup and then by the order
insert itself when two registers race.
"""
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, ContextManager, Dict, List, Optional, Set, Tuple

import psycopg
from pydantic import AliasChoices, BaseModel, Field

from . import invoices, members, pass_plans, pass_records, pass_rules, shifts, stores
from .config import settings
from .db import get_conn
from .deps import RequestContext
from .errors import BusinessRuleViolation, Conflict, InternalError, NotFound, PosError, ValidationError
from .invoices import format_invoice_number
from .logs import json_log
from .pass_records import DuplicateOrder, InvoiceInfo, PassRecords, PurchaseContext
from .pass_rules import RuleViolation
from .validation import TrimmedStr, mask_phone

PURCHASE_SUCCESS_MESSAGE = "PASS_PURCHASE_SUCCESS"
PURCHASE_ACTIONS = ["LOGOUT_MEMBER", "CLEAR_ORDER", "RESET_TO_HOME", "SHOW_PASS_SUCCESS_PAGE"]


class CartLineIn(BaseModel):
    product_code: TrimmedStr = Field("", validation_alias=AliasChoices("product_code", "sku"))
    quantity: int = 1
    unit_price: Optional[Decimal] = None
    discount_amount: Decimal = Decimal("0")


class PromoResultIn(BaseModel):
    applied_promotions: List[dict] = []
    discount_total: Decimal = Decimal("0")


class PassPurchaseIn(BaseModel):
    cart: List[CartLineIn] = []
    member_id: Optional[int] = None
    secondary_phone_input: TrimmedStr = ""
    payment_method: TrimmedStr = ""
    idempotency_key: TrimmedStr = ""
    promo_result: Optional[PromoResultIn] = None


class PurchaseStage(str, Enum):
    VALIDATE_INPUT = "validate_input"
    CHECK_DUPLICATE = "check_duplicate"
    CHECK_SHIFT = "check_shift"
    CHECK_MEMBER = "check_member"
    CHECK_PLAN = "check_plan"
    VALIDATE_BUSINESS_RULES = "validate_business_rules"
    ALLOCATE_INVOICE = "allocate_invoice"
    PERSIST = "persist"
    COMMIT = "commit"


@dataclass(frozen=True)
class PassPurchaseDeps:
    connect: Callable[[], ContextManager[Any]]
    ensure_active_shift: Callable[[Any, RequestContext], Any]
    get_member_by_id: Callable[[Any, int], Optional[dict]]
    get_pass_plan_by_sku: Callable[[Any, str], Optional[dict]]
    get_store_config: Callable[[Any, int], Optional[dict]]
    get_cart_item_tags: Callable[[Any, List[CartLineIn]], Dict[str, Set[str]]]
    validate_purchase_order: Callable[[List[CartLineIn], Dict[str, Set[str]], Optional[PromoResultIn]], Optional[RuleViolation]]
    find_order_by_idempotency_key: Callable[[Any, int, str], Optional[dict]]
    allocate_invoice_number: Callable[[Any, int, str], Tuple[str, int]]
    create_pass_records: Callable[[Any, PurchaseContext, InvoiceInfo, CartLineIn, dict], PassRecords]


def default_deps() -> PassPurchaseDeps:
    return PassPurchaseDeps(
        connect=get_conn,
        ensure_active_shift=shifts.ensure_active_shift,
        get_member_by_id=members.get_member_by_id,
        get_pass_plan_by_sku=pass_plans.get_pass_plan_by_sku,
        get_store_config=stores.get_store_config,
        get_cart_item_tags=pass_rules.get_cart_item_tags,
        validate_purchase_order=pass_rules.validate_purchase_order,
        find_order_by_idempotency_key=pass_records.find_order_by_idempotency_key,
        allocate_invoice_number=invoices.allocate_invoice_number,
        create_pass_records=pass_records.create_pass_records,
    )


class _Attempt:
    def __init__(self):
        self.stage = PurchaseStage.VALIDATE_INPUT
        self.replayed = False


class PassPurchaseWorkflow:
    def __init__(
        self,
        deps: PassPurchaseDeps,
        *,
        duplicate_mode: Optional[str] = None,
        payment_methods: Optional[List[str]] = None,
    ):
        self.deps = deps
        self.duplicate_mode = duplicate_mode or settings.pass_duplicate_mode
        self.payment_methods = set(payment_methods or settings.pass_payment_methods)

    def purchase(self, ctx: RequestContext, data: PassPurchaseIn) -> dict:
        attempt = _Attempt()
        try:
            self._validate_input(data)
            with self.deps.connect() as conn:
                payload = self._run(conn, ctx, data, attempt)
        except PosError as exc:
            self._log_abort(ctx, data, attempt, exc.code, exc.detail)
            raise
        except psycopg.Error as exc:
            self._log_abort(ctx, data, attempt, "DB_ERROR", str(exc))
            raise InternalError("Database error during pass purchase.") from exc

        json_log(
            "info",
            "pass_purchase.replayed" if attempt.replayed else "pass_purchase.committed",
            store_id=ctx.store_id,
            device_id=ctx.device_id,
            member_id=payload["member_id"],
            order_id=payload["order_id"],
            invoice_number=payload["invoice_number"],
        )
        return payload

    def _validate_input(self, data: PassPurchaseIn) -> None:
        if not data.idempotency_key:
            raise ValidationError("Idempotency key is required.")
        if len(data.cart) != 1 or not data.cart[0].product_code:
            raise ValidationError("Cart must contain exactly one pass item.")
        if not data.member_id:
            raise ValidationError("Member ID is required.")
        if data.payment_method not in self.payment_methods:
            raise BusinessRuleViolation.localized(
                "PAYMENT_METHOD_NOT_ALLOWED",
                f"Unsupported payment method for pass purchase: {data.payment_method or '(empty)'}",
            )

    def _run(self, conn, ctx: RequestContext, data: PassPurchaseIn, attempt: _Attempt) -> dict:
        deps = self.deps
        line = data.cart[0]

        with conn.cursor() as cur:
            # A retry of a committed purchase gets its result even if the shift,
            # member or plan has changed since.
            attempt.stage = PurchaseStage.CHECK_DUPLICATE
            existing = deps.find_order_by_idempotency_key(cur, ctx.store_id, data.idempotency_key)
            if existing:
                return self._duplicate(existing, data, attempt)

            attempt.stage = PurchaseStage.CHECK_SHIFT
            deps.ensure_active_shift(cur, ctx)

            attempt.stage = PurchaseStage.CHECK_MEMBER
            member = deps.get_member_by_id(cur, data.member_id)
            if not member:
                raise NotFound("Member not found.")
            member_phone = (member.get("phone_number") or "").strip()
            if data.secondary_phone_input and data.secondary_phone_input != member_phone:
                raise BusinessRuleViolation.localized(
                    "PHONE_MISMATCH",
                    "Secondary phone does not match the logged-in member.",
                )

            attempt.stage = PurchaseStage.CHECK_PLAN
            plan = deps.get_pass_plan_by_sku(cur, line.product_code)
            if not plan:
                raise NotFound(f"Pass plan not found for sku: {line.product_code}")

            attempt.stage = PurchaseStage.VALIDATE_BUSINESS_RULES
            tags_map = deps.get_cart_item_tags(cur, data.cart)
            violation = deps.validate_purchase_order(data.cart, tags_map, data.promo_result)
            if violation is not None:
                raise BusinessRuleViolation.localized(violation.code, violation.detail)

            store = deps.get_store_config(cur, ctx.store_id) or {}

        context = PurchaseContext(
            store_id=ctx.store_id,
            device_id=ctx.device_id,
            user_id=ctx.user_id,
            member_id=int(data.member_id),
            payment_method=data.payment_method,
            idempotency_key=data.idempotency_key,
        )
        try:
            with conn.transaction():
                with conn.cursor() as cur:
                    attempt.stage = PurchaseStage.ALLOCATE_INVOICE
                    series, number = deps.allocate_invoice_number(cur, ctx.store_id, store.get("invoice_prefix"))
                    invoice = InvoiceInfo(series=series, number=number)

                    attempt.stage = PurchaseStage.PERSIST
                    records = deps.create_pass_records(cur, context, invoice, line, plan)
        except DuplicateOrder:
            # Lost the race to a concurrent request with the same key; its order is
            # committed and ours (invoice number included) has been rolled back.
            with conn.cursor() as cur:
                existing = deps.find_order_by_idempotency_key(cur, ctx.store_id, data.idempotency_key)
            if not existing:
                raise InternalError("Duplicate order reported but not found.")
            return self._duplicate(existing, data, attempt)

        attempt.stage = PurchaseStage.COMMIT
        return _success_payload(
            order_id=records.order_id,
            pass_id=records.pass_id,
            member_id=context.member_id,
            phone=member.get("phone_number"),
            invoice_number=format_invoice_number(invoice.series, invoice.number),
            replayed=False,
        )

    def _duplicate(self, existing: dict, data: PassPurchaseIn, attempt: _Attempt) -> dict:
        same_purchase = (
            int(existing["member_id"]) == int(data.member_id)
            and existing["sale_sku"] == data.cart[0].product_code
        )
        if not same_purchase:
            raise Conflict(
                "Idempotency key was already used for a different purchase.",
                code="IDEMPOTENCY_KEY_REUSED",
            )
        if self.duplicate_mode == "conflict":
            raise Conflict("Duplicate pass purchase submission.", code="DUPLICATE_SUBMISSION")
        attempt.replayed = True
        return _success_payload(
            order_id=int(existing["order_id"]),
            pass_id=int(existing["pass_id"]) if existing.get("pass_id") is not None else None,
            member_id=int(existing["member_id"]),
            phone=existing.get("member_phone"),
            invoice_number=format_invoice_number(existing["invoice_series"], int(existing["invoice_number"])),
            replayed=True,
        )

    def _log_abort(self, ctx: RequestContext, data: PassPurchaseIn, attempt: _Attempt, code: str, detail) -> None:
        json_log(
            "warning",
            "pass_purchase.aborted",
            store_id=ctx.store_id,
            device_id=ctx.device_id,
            member_id=data.member_id,
            stage=attempt.stage.value,
            code=code,
            detail=detail,
        )


def _success_payload(
    *, order_id: int, pass_id: Optional[int], member_id: int, phone: Optional[str], invoice_number: str, replayed: bool
) -> dict:
    return {
        "order_id": order_id,
        "pass_id": pass_id,
        "member_id": member_id,
        "phone_masked": mask_phone(phone),
        "invoice_number": invoice_number,
        "actions": list(PURCHASE_ACTIONS),
        "replayed": replayed,
    }
