from typing import Tuple

from .errors import InternalError


def allocate_invoice_number(cur, store_id: int, prefix: str) -> Tuple[str, int]:
    """
    Issue the next fiscal (VR) invoice number for a store's series.

    A single upsert-increment: the counter row stays locked until the caller's
    transaction ends, so concurrent registers in the same store serialize here
    and a rollback hands the number back (no gaps, no duplicates).
    """
    series = (prefix or "").strip()
    if not series:
        raise InternalError("Store invoice_prefix (VR Series) is not configured.")
    cur.execute(
        """
        INSERT INTO invoice_counters (store_id, series, last_number, updated_at)
        VALUES (%s, %s, 1, now())
        ON CONFLICT (store_id, series) DO UPDATE
        SET last_number = invoice_counters.last_number + 1,
            updated_at = now()
        RETURNING series, last_number
        """,
        (store_id, series),
    )
    row = cur.fetchone()
    if not row:
        raise InternalError("invoice counter update returned no row")
    return row["series"], int(row["last_number"])


def format_invoice_number(series: str, number: int) -> str:
    return f"{series}-{number}"
