from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from deps.admin import require_admin
from deps.auth import CurrentUser
from deps.market import store_dep
from schemas import ReconcileRunRequest, ReconcileRunResponse
from services.reconcile import run_reconcile

logger = logging.getLogger("nexus.reconcile")
router = APIRouter(prefix="/v1/admin/reconcile", tags=["admin-reconcile"])


@router.post("/run", response_model=ReconcileRunResponse)
def run_reconcile_report(
    req: ReconcileRunRequest | None = None,
    admin: CurrentUser = Depends(require_admin),
    store=Depends(store_dep),
):
    stale_minutes = req.stale_minutes if req is not None else 30
    logger.info("reconcile run requested admin=%s stale_minutes=%s", admin.user_id, stale_minutes)
    return run_reconcile(stale_minutes=stale_minutes, store=store)
