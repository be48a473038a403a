from typing import Optional


def get_store_config(cur, store_id: int) -> Optional[dict]:
    cur.execute(
        """
        SELECT id AS store_id, store_code, store_name, invoice_prefix, timezone
        FROM pos_stores
        WHERE id = %s
        """,
        (store_id,),
    )
    return cur.fetchone()
