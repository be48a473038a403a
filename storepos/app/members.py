"""
Member directory: phone lookup, registration, and the member reads the
pass purchase flow depends on.
"""
import uuid
from datetime import date, datetime, timezone
from typing import Annotated, Optional

import psycopg
from psycopg import errors as pg_errors
from pydantic import AliasChoices, BaseModel, Field, model_validator

from .config import settings
from .errors import Conflict, InternalError, NotFound, ValidationError
from .logs import json_log
from .validation import BlankAsNone, TrimmedStr, clean_legacy_date

MEMBER_COLUMNS = """
    m.id, m.member_uuid, m.first_name, m.last_name, m.phone_number, m.email,
    m.birthdate, m.member_level_id, m.points_balance, m.is_active,
    m.created_at, m.updated_at,
    ml.level_name_zh, ml.level_name_es
"""

_DATE_FIELDS = ("birthdate", "created_at", "updated_at")


class MemberCreateIn(BaseModel):
    first_name: TrimmedStr = ""
    last_name: TrimmedStr = ""
    phone: TrimmedStr = Field("", validation_alias=AliasChoices("phone_number", "phone"))
    email: TrimmedStr = ""
    birthdate: Annotated[Optional[date], BlankAsNone] = None

    @model_validator(mode="before")
    @classmethod
    def _unwrap_data(cls, value):
        # Register clients send either the flat form or {"data": {...}}.
        if isinstance(value, dict) and isinstance(value.get("data"), dict):
            return value["data"]
        return value


def clean_member_row(row: dict) -> dict:
    member = dict(row)
    for field in _DATE_FIELDS:
        if field in member:
            member[field] = clean_legacy_date(member[field])
    return member


def get_member_by_id(cur, member_id: int) -> Optional[dict]:
    cur.execute(
        f"""
        SELECT {MEMBER_COLUMNS}
        FROM pos_members m
        LEFT JOIN pos_member_levels ml ON ml.id = m.member_level_id
        WHERE m.id = %s AND m.is_active = true
        """,
        (member_id,),
    )
    row = cur.fetchone()
    return clean_member_row(row) if row else None


def get_member_active_passes(cur, member_id: int) -> list:
    cur.execute(
        """
        SELECT mp.id AS member_pass_id, mp.pass_plan_id,
               pp.name, pp.name_zh, pp.name_es,
               mp.total_uses, mp.remaining_uses,
               pp.max_uses_per_order, pp.max_uses_per_day,
               mp.purchased_at, mp.expires_on
        FROM member_passes mp
        JOIN pass_plans pp ON pp.pass_plan_id = mp.pass_plan_id
        WHERE mp.member_id = %s
          AND mp.status = 'active'
          AND mp.remaining_uses > 0
          AND mp.expires_on >= CURRENT_DATE
        ORDER BY mp.expires_on ASC, mp.id ASC
        """,
        (member_id,),
    )
    return list(cur.fetchall())


def _attach_passes(conn, member: dict) -> dict:
    # Pass lookup is an enrichment; a failure here must not hide the member.
    try:
        with conn.transaction():
            with conn.cursor() as cur:
                member["passes"] = get_member_active_passes(cur, int(member["id"]))
    except psycopg.Error as exc:
        json_log("warning", "members.passes_lookup_failed", member_id=member.get("id"), error=str(exc))
        member["passes"] = []
    return member


def find_member(conn, phone: Optional[str]) -> dict:
    phone = (phone or "").strip()
    if not phone:
        raise ValidationError("Phone number is required.")
    try:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                SELECT {MEMBER_COLUMNS}
                FROM pos_members m
                LEFT JOIN pos_member_levels ml ON ml.id = m.member_level_id
                WHERE TRIM(m.phone_number) = %s
                  AND m.is_active = true
                ORDER BY m.id
                LIMIT 1
                """,
                (phone,),
            )
            row = cur.fetchone()
    except psycopg.Error as exc:
        raise InternalError("Failed to look up member: DB Error.") from exc
    if not row:
        raise NotFound("Member not found.")
    return _attach_passes(conn, clean_member_row(row))


def create_member(conn, data: MemberCreateIn, *, new_uuid=None) -> dict:
    if not data.phone:
        raise ValidationError("Phone number is required.")
    member_uuid = (new_uuid or uuid.uuid4)()
    # Stored in UTC: reports join members across stores in different time zones.
    now = datetime.now(timezone.utc)
    try:
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO pos_members
                  (member_uuid, first_name, last_name, phone_number, email, birthdate,
                   member_level_id, points_balance, is_active, created_at, updated_at)
                VALUES
                  (%s, %s, %s, %s, %s, %s, %s, 0, true, %s, %s)
                RETURNING id
                """,
                (
                    str(member_uuid),
                    data.first_name,
                    data.last_name,
                    data.phone,
                    data.email or None,
                    data.birthdate,
                    settings.default_member_level_id,
                    now,
                    now,
                ),
            )
            member_id = cur.fetchone()["id"]
            cur.execute(
                f"""
                SELECT {MEMBER_COLUMNS}
                FROM pos_members m
                LEFT JOIN pos_member_levels ml ON ml.id = m.member_level_id
                WHERE m.id = %s
                """,
                (member_id,),
            )
            row = cur.fetchone()
    except pg_errors.UniqueViolation as exc:
        raise Conflict("Phone number already exists.") from exc
    except psycopg.Error as exc:
        raise InternalError("Failed to create member: DB Error.") from exc
    if not row:
        raise InternalError("Failed to retrieve created member.")
    member = clean_member_row(row)
    member["passes"] = []
    json_log("info", "members.created", member_id=member_id)
    return member
