from .errors import BusinessRuleViolation


def ensure_active_shift(cur, ctx) -> dict:
    cur.execute(
        """
        SELECT id, opened_at
        FROM pos_shifts
        WHERE store_id = %s AND device_id = %s AND status = 'open'
        ORDER BY opened_at DESC
        LIMIT 1
        """,
        (ctx.store_id, ctx.device_id),
    )
    row = cur.fetchone()
    if not row:
        raise BusinessRuleViolation.localized(
            "NO_ACTIVE_SHIFT",
            "No active shift for this store/device.",
            status_code=403,
        )
    return row
