# routes/checkout.py
from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException

from app.charges.model import Charge, ChargeStatus
from app.errors import GatewayError, MarketError
from app.orders.state_machine import order_state_for
from app.payouts.fees import quantize_money
from deps.auth import CurrentUser, get_current_user
from deps.market import gateway_dep, reconciler_dep, store_dep
from schemas import ChargeResponse, CheckoutRequest
from services.http_errors import raise_http_from_market_error

logger = logging.getLogger("nexus.checkout")
router = APIRouter(prefix="/v1", tags=["checkout"])


def charge_out(charge: Charge, order=None) -> ChargeResponse:
    return ChargeResponse(
        id=charge.id,
        status=charge.status.value,
        order_state=order_state_for(charge, order).value,
        gross_amount=charge.gross_amount,
        product_id=charge.product_id,
        quantity=charge.quantity,
        qrcode_url=charge.qrcode_url,
        copy_paste=charge.copy_paste,
        order_id=order.id if order is not None else None,
        created_at=charge.created_at,
    )


@router.post("/checkout", response_model=ChargeResponse, status_code=201)
def checkout(
    req: CheckoutRequest,
    user: CurrentUser = Depends(get_current_user),
    store=Depends(store_dep),
    gateway=Depends(gateway_dep),
):
    with store.unit_of_work() as uow:
        product = uow.get_product(str(req.product_id))
    if product is None:
        raise HTTPException(status_code=404, detail="PRODUCT_NOT_FOUND")
    if product.seller_id == user.user_id:
        raise HTTPException(status_code=400, detail="CANNOT_BUY_OWN_PRODUCT")
    # Advisory only; the settlement decrement is what actually guards stock
    if product.quantity < req.quantity:
        raise HTTPException(status_code=409, detail="INSUFFICIENT_STOCK")

    gross = quantize_money(product.price * req.quantity)
    description = f"Nexus Market: {product.title} x{req.quantity}"

    # Provider call happens before anything is written locally
    try:
        remote = gateway.create_charge(gross, description)
    except GatewayError as exc:
        logger.error("could not create charge buyer=%s product=%s kind=%s: %s", user.user_id, product.id, exc.kind.value, exc)
        raise HTTPException(status_code=502, detail="could not create charge")

    status = remote.status if remote.status in (ChargeStatus.PENDING, ChargeStatus.ACTIVE) else ChargeStatus.PENDING
    charge = Charge(
        id=str(uuid.uuid4()),
        buyer_id=user.user_id,
        seller_id=product.seller_id,
        product_id=product.id,
        product_title=product.title,
        quantity=req.quantity,
        gross_amount=gross,
        status=status,
        description=description,
        shipping_address=req.shipping_address,
        external_id=remote.external_id,
        provider_transaction_id=remote.transaction_id,
        qrcode_url=remote.qrcode_url,
        copy_paste=remote.copy_paste,
    )
    with store.unit_of_work() as uow:
        uow.insert_charge(charge)

    logger.info("charge created id=%s external_id=%s buyer=%s gross=%s", charge.id, charge.external_id, charge.buyer_id, gross)
    return charge_out(charge)


@router.get("/charges/{charge_id}", response_model=ChargeResponse)
def get_charge(
    charge_id: uuid.UUID,
    user: CurrentUser = Depends(get_current_user),
    store=Depends(store_dep),
    reconciler=Depends(reconciler_dep),
):
    with store.unit_of_work() as uow:
        charge = uow.get_charge(str(charge_id))
    if charge is None:
        raise HTTPException(status_code=404, detail="CHARGE_NOT_FOUND")
    if user.user_id not in (charge.buyer_id, charge.seller_id) and not user.is_admin:
        raise HTTPException(status_code=403, detail="Forbidden")

    try:
        charge = reconciler.reconcile_charge(charge.id)
    except MarketError as exc:
        raise_http_from_market_error(exc)

    with store.unit_of_work() as uow:
        order = uow.get_order_by_charge(charge.id)
    return charge_out(charge, order)
