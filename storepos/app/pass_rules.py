from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional, Set

PASS_PRODUCT_TAG = "pass_product"


@dataclass(frozen=True)
class RuleViolation:
    code: str
    detail: str


def get_cart_item_tags(cur, cart) -> Dict[str, Set[str]]:
    codes = sorted({line.product_code for line in cart if line.product_code})
    if not codes:
        return {}
    cur.execute(
        """
        SELECT product_code, tag_code
        FROM pos_product_tags
        WHERE product_code = ANY(%s)
        """,
        (codes,),
    )
    tags: Dict[str, Set[str]] = {}
    for row in cur.fetchall():
        tags.setdefault(row["product_code"], set()).add(str(row["tag_code"]).strip().lower())
    return tags


def validate_purchase_order(cart, tags_map: Dict[str, Set[str]], promo) -> Optional[RuleViolation]:
    """
    Pre-purchase checks for a pass sale. Returns the first violation found, or
    None when the order may proceed.
    """
    for line in cart:
        if line.quantity != 1:
            return RuleViolation("PASS_QTY_LIMIT", "Only one pass can be purchased per order.")
        tags = tags_map.get(line.product_code) or set()
        # Untagged products are judged by the plan lookup alone.
        if tags and PASS_PRODUCT_TAG not in tags:
            return RuleViolation("NOT_A_PASS_PRODUCT", f"Product {line.product_code} is not a pass product.")
        if (line.discount_amount or Decimal("0")) > 0:
            return RuleViolation("PASS_PROMO_NOT_ALLOWED", "Passes are sold at list price; remove the discount.")

    if promo is not None:
        if promo.applied_promotions or (promo.discount_total or Decimal("0")) > 0:
            return RuleViolation("PASS_PROMO_NOT_ALLOWED", "Promotions cannot be applied to a pass purchase.")
    return None
