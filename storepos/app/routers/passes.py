from functools import lru_cache

from fastapi import APIRouter, Depends

from ..db import get_conn
from ..deps import RequestContext, require_pos_session
from ..envelope import ok
from ..pass_plans import list_active_plans
from ..pass_purchase import PURCHASE_SUCCESS_MESSAGE, PassPurchaseIn, PassPurchaseWorkflow, default_deps

router = APIRouter(prefix="/pos/passes", tags=["passes"])


@lru_cache(maxsize=1)
def get_pass_purchase_workflow() -> PassPurchaseWorkflow:
    return PassPurchaseWorkflow(default_deps())


@router.get("/plans", dependencies=[Depends(require_pos_session)])
def pass_plan_list():
    with get_conn() as conn:
        with conn.cursor() as cur:
            plans = list_active_plans(cur)
    return ok(plans, "Pass plans retrieved successfully.")


@router.post("/purchase")
def pass_purchase(
    data: PassPurchaseIn,
    ctx: RequestContext = Depends(require_pos_session),
    workflow: PassPurchaseWorkflow = Depends(get_pass_purchase_workflow),
):
    return ok(workflow.purchase(ctx, data), PURCHASE_SUCCESS_MESSAGE)
