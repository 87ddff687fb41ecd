# routes/orders.py
from __future__ import annotations

import logging
import uuid
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query

from app.errors import MarketError
from app.orders.model import Order
from app.orders.service import mark_delivered
from app.payouts.model import Payout
from deps.auth import CurrentUser, get_current_user
from deps.market import messaging_dep, store_dep
from schemas import DeliverResponse, OrderListResponse, OrderResponse, PayoutResponse
from services.http_errors import raise_http_from_market_error

logger = logging.getLogger("nexus.orders")
router = APIRouter(prefix="/v1/orders", tags=["orders"])


def order_out(o: Order) -> OrderResponse:
    return OrderResponse(
        id=o.id,
        buyer_id=o.buyer_id,
        seller_id=o.seller_id,
        product_id=o.product_id,
        product_title=o.product_title,
        price=o.price,
        quantity=o.quantity,
        charge_id=o.charge_id,
        status=o.status.value,
        shipping_address=o.shipping_address,
        created_at=o.created_at,
        delivered_at=o.delivered_at,
    )


def payout_out(p: Payout) -> PayoutResponse:
    return PayoutResponse(
        id=p.id,
        order_id=p.order_id,
        source_charge_id=p.source_charge_id,
        gross_amount=p.gross_amount,
        net_amount=p.net_amount,
        fee_amount=p.fee_amount,
        beneficiary_key_kind=p.beneficiary_key_kind.value,
        status=p.status.value,
        provider_ref=p.provider_ref,
        attempt_count=p.attempt_count,
        last_error=p.last_error,
        created_at=p.created_at,
        updated_at=p.updated_at,
    )


@router.get("", response_model=OrderListResponse)
def list_my_orders(
    role: Literal["buyer", "seller"] = Query(default="buyer"),
    limit: int = Query(default=50, ge=1, le=200),
    user: CurrentUser = Depends(get_current_user),
    store=Depends(store_dep),
):
    with store.unit_of_work() as uow:
        if role == "buyer":
            rows = uow.list_orders(buyer_id=user.user_id, limit=limit)
        else:
            rows = uow.list_orders(seller_id=user.user_id, limit=limit)
    return OrderListResponse(role=role, orders=[order_out(o) for o in rows])


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(
    order_id: uuid.UUID,
    user: CurrentUser = Depends(get_current_user),
    store=Depends(store_dep),
):
    with store.unit_of_work() as uow:
        order = uow.get_order(str(order_id))
    if order is None:
        raise HTTPException(status_code=404, detail="ORDER_NOT_FOUND")
    if user.user_id not in (order.buyer_id, order.seller_id) and not user.is_admin:
        raise HTTPException(status_code=403, detail="Forbidden")
    return order_out(order)


@router.post("/{order_id}/deliver", response_model=DeliverResponse)
def deliver_order(
    order_id: uuid.UUID,
    user: CurrentUser = Depends(get_current_user),
    store=Depends(store_dep),
    messaging=Depends(messaging_dep),
):
    try:
        result = mark_delivered(store, messaging, str(order_id), user)
    except MarketError as exc:
        raise_http_from_market_error(exc)

    return DeliverResponse(
        order=order_out(result.order),
        transitioned=result.transitioned,
        purged_messages=result.purged_messages,
    )


@router.get("/{order_id}/payout", response_model=PayoutResponse)
def get_order_payout(
    order_id: uuid.UUID,
    user: CurrentUser = Depends(get_current_user),
    store=Depends(store_dep),
):
    with store.unit_of_work() as uow:
        order = uow.get_order(str(order_id))
        payout = uow.get_payout_by_order(str(order_id)) if order is not None else None
    if order is None:
        raise HTTPException(status_code=404, detail="ORDER_NOT_FOUND")
    if order.seller_id != user.user_id and not user.is_admin:
        raise HTTPException(status_code=403, detail="Forbidden")
    if payout is None:
        raise HTTPException(status_code=404, detail="PAYOUT_NOT_FOUND")
    return payout_out(payout)
