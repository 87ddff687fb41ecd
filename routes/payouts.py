# routes/payouts.py
from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends

from app.errors import MarketError
from app.payouts.service import confirm_payout
from deps.admin import require_admin
from deps.auth import CurrentUser
from deps.market import store_dep
from routes.orders import payout_out
from schemas import PayoutConfirmRequest, PayoutResponse
from services.http_errors import raise_http_from_market_error

logger = logging.getLogger("nexus.payouts")
router = APIRouter(prefix="/v1/admin/payouts", tags=["payouts"])


@router.post("/{payout_id}/confirm", response_model=PayoutResponse)
def confirm(
    payout_id: uuid.UUID,
    req: PayoutConfirmRequest,
    admin: CurrentUser = Depends(require_admin),
    store=Depends(store_dep),
):
    try:
        payout = confirm_payout(store, str(payout_id), req.status, provider_ref=req.provider_ref)
    except MarketError as exc:
        raise_http_from_market_error(exc)

    logger.info("payout confirm payout=%s status=%s admin=%s", payout_id, req.status, admin.user_id)
    return payout_out(payout)
