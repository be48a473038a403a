import hashlib
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from fastapi import Cookie, Header, HTTPException

from .db import get_conn


SESSION_COOKIE_NAME = "storepos_session"


@dataclass(frozen=True)
class RequestContext:
    """Who is selling, where: resolved once per request from the POS session."""

    store_id: int
    device_id: int
    user_id: int


def hash_session_token(token: str) -> str:
    # Sessions are stored as a one-way hash; the prefix keeps a leaked hash from
    # being replayed as a token.
    return "sha256:" + hashlib.sha256(token.encode("utf-8")).hexdigest()


def _extract_session_token(authorization: Optional[str], cookie_token: Optional[str]) -> str:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization.split(" ", 1)[1].strip()
    if cookie_token:
        return cookie_token
    raise HTTPException(status_code=401, detail="missing token")


def require_pos_session(
    authorization: Optional[str] = Header(None),
    cookie_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME),
) -> RequestContext:
    token = _extract_session_token(authorization, cookie_token)
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT s.user_id, s.store_id, s.device_id, s.expires_at, s.is_active
                FROM pos_sessions s
                WHERE s.token_hash = %s
                """,
                (hash_session_token(token),),
            )
            row = cur.fetchone()
    now = datetime.now(timezone.utc)
    if not row or not row["is_active"] or row["expires_at"] < now:
        raise HTTPException(status_code=401, detail="invalid token")
    return RequestContext(
        store_id=int(row["store_id"]),
        device_id=int(row["device_id"] or 0),
        user_id=int(row["user_id"]),
    )
