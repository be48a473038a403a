from typing import Optional

from fastapi import APIRouter, Depends

from ..db import get_conn
from ..deps import require_pos_session
from ..envelope import ok
from ..members import MemberCreateIn, create_member, find_member

router = APIRouter(prefix="/pos/members", tags=["members"], dependencies=[Depends(require_pos_session)])


@router.get("/find")
def member_find(phone: Optional[str] = None):
    with get_conn() as conn:
        member = find_member(conn, phone)
    return ok(member, "Member found.")


@router.post("")
def member_create(data: MemberCreateIn):
    with get_conn() as conn:
        member = create_member(conn, data)
    return ok(member, "Member created successfully.")
