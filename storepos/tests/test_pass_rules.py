from decimal import Decimal

from storepos.app.pass_purchase import CartLineIn, PromoResultIn
from storepos.app.pass_rules import RuleViolation, get_cart_item_tags, validate_purchase_order


class _TagCursor:
    def __init__(self, rows):
        self.rows = rows
        self.executed = []

    def execute(self, sql, params=None):
        self.executed.append((" ".join(sql.lower().split()), params))

    def fetchall(self):
        return list(self.rows)


def _line(**kw):
    return CartLineIn(**{"product_code": "PASS-10", **kw})


def test_single_pass_line_without_promo_passes():
    assert validate_purchase_order([_line()], {}, None) is None


def test_quantity_above_one_is_rejected():
    violation = validate_purchase_order([_line(quantity=2)], {}, None)
    assert isinstance(violation, RuleViolation)
    assert violation.code == "PASS_QTY_LIMIT"


def test_product_tagged_but_not_as_pass_is_rejected():
    violation = validate_purchase_order([_line()], {"PASS-10": {"drink"}}, None)
    assert violation.code == "NOT_A_PASS_PRODUCT"
    assert validate_purchase_order([_line()], {"PASS-10": {"pass_product", "drink"}}, None) is None


def test_line_discount_is_rejected():
    violation = validate_purchase_order([_line(discount_amount=Decimal("1.00"))], {}, None)
    assert violation.code == "PASS_PROMO_NOT_ALLOWED"


def test_applied_promotion_is_rejected():
    promo = PromoResultIn(applied_promotions=[{"id": "BOGO"}])
    assert validate_purchase_order([_line()], {}, promo).code == "PASS_PROMO_NOT_ALLOWED"
    assert validate_purchase_order([_line()], {}, PromoResultIn(discount_total=Decimal("0.50"))).code == "PASS_PROMO_NOT_ALLOWED"
    assert validate_purchase_order([_line()], {}, PromoResultIn()) is None


def test_get_cart_item_tags_groups_and_normalizes():
    cur = _TagCursor(
        [
            {"product_code": "PASS-10", "tag_code": " Pass_Product "},
            {"product_code": "PASS-10", "tag_code": "seasonal"},
        ]
    )
    tags = get_cart_item_tags(cur, [_line(), _line()])
    assert tags == {"PASS-10": {"pass_product", "seasonal"}}
    assert cur.executed[0][1] == (["PASS-10"],)


def test_get_cart_item_tags_skips_query_for_empty_cart():
    cur = _TagCursor([])
    assert get_cart_item_tags(cur, []) == {}
    assert cur.executed == []
