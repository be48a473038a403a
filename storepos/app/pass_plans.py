from typing import Optional

import psycopg

from .errors import InternalError

PLAN_COLUMNS = """
    pass_plan_id, name, name_zh, name_es,
    total_uses, validity_days,
    max_uses_per_order, max_uses_per_day,
    sale_sku, sale_price,
    notes, important_notice_zh, important_notice_es
"""


def list_active_plans(cur) -> list:
    try:
        cur.execute(
            f"""
            SELECT {PLAN_COLUMNS}
            FROM pass_plans
            WHERE is_active = true
            ORDER BY sale_price ASC, pass_plan_id ASC
            """
        )
        return list(cur.fetchall())
    except psycopg.Error as exc:
        raise InternalError("Failed to load pass plans: DB Error.") from exc


def get_pass_plan_by_sku(cur, sku: str) -> Optional[dict]:
    cur.execute(
        f"""
        SELECT {PLAN_COLUMNS}
        FROM pass_plans
        WHERE sale_sku = %s AND is_active = true
        """,
        (sku,),
    )
    return cur.fetchone()
