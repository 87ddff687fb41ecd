# routes/products.py
from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException

from app.inventory.model import Product, normalize_product_input
from app.payouts.fees import quantize_money
from app.payouts.keys import KeyKind
from deps.auth import CurrentUser, get_current_user
from deps.market import store_dep
from schemas import ProductCreateRequest, ProductResponse

logger = logging.getLogger("nexus.products")
router = APIRouter(prefix="/v1", tags=["products"])


def product_out(p: Product) -> ProductResponse:
    # beneficiary_key itself is never echoed back
    return ProductResponse(
        id=p.id,
        seller_id=p.seller_id,
        title=p.title,
        description=p.description,
        price=p.price,
        quantity=p.quantity,
        city=p.city,
        delivery_method=p.delivery_method,
        beneficiary_key_kind=p.beneficiary_key_kind.value,
    )


@router.post("/products", response_model=ProductResponse, status_code=201)
def create_product(
    req: ProductCreateRequest,
    user: CurrentUser = Depends(get_current_user),
    store=Depends(store_dep),
):
    fields = normalize_product_input(
        quantity=req.quantity,
        city=req.city,
        beneficiary_key=req.beneficiary_key,
        beneficiary_key_kind=req.beneficiary_key_kind,
        delivery_method=req.delivery_method,
    )
    if not fields["beneficiary_key"]:
        raise HTTPException(status_code=422, detail="BENEFICIARY_KEY_REQUIRED")

    product = Product(
        id=str(uuid.uuid4()),
        seller_id=user.user_id,
        title=req.title.strip(),
        price=quantize_money(req.price),
        quantity=fields["quantity"],
        beneficiary_key=fields["beneficiary_key"],
        beneficiary_key_kind=KeyKind(fields["beneficiary_key_kind"]),
        city=fields["city"],
        delivery_method=fields["delivery_method"],
        description=req.description or "",
    )
    with store.unit_of_work() as uow:
        uow.insert_product(product)

    logger.info("product listed id=%s seller=%s qty=%s price=%s", product.id, product.seller_id, product.quantity, product.price)
    return product_out(product)


@router.get("/products/{product_id}", response_model=ProductResponse)
def get_product(
    product_id: uuid.UUID,
    user: CurrentUser = Depends(get_current_user),
    store=Depends(store_dep),
):
    with store.unit_of_work() as uow:
        product = uow.get_product(str(product_id))
    if product is None:
        raise HTTPException(status_code=404, detail="PRODUCT_NOT_FOUND")
    return product_out(product)
