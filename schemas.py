# schemas.py
from __future__ import annotations

from pydantic import BaseModel, Field
from datetime import datetime
from uuid import UUID
from decimal import Decimal
from typing import Optional, List, Literal, Any, Dict

KeyKindName = Literal["EMAIL", "CPF", "CNPJ", "PHONE", "RANDOM"]


# -------- PRODUCTS --------
class ProductCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    price: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    description: str = ""
    quantity: Optional[int] = Field(default=None, ge=0)
    city: Optional[str] = None
    delivery_method: Optional[str] = None
    beneficiary_key: str = Field(min_length=1, max_length=140)
    beneficiary_key_kind: Optional[KeyKindName] = None


class ProductResponse(BaseModel):
    id: str
    seller_id: str
    title: str
    description: str
    price: Decimal
    quantity: int
    city: str
    delivery_method: str
    beneficiary_key_kind: KeyKindName


# -------- CHECKOUT / CHARGES --------
class CheckoutRequest(BaseModel):
    product_id: UUID
    quantity: int = Field(default=1, gt=0)
    shipping_address: Optional[Dict[str, Any]] = None


class ChargeResponse(BaseModel):
    id: str
    status: Literal["PENDING", "ACTIVE", "COMPLETED", "FAILED"]
    order_state: Literal["AWAITING_PAYMENT", "PAID", "DELIVERED", "FAILED"]
    gross_amount: Decimal
    product_id: str
    quantity: int
    qrcode_url: Optional[str] = None
    copy_paste: Optional[str] = None
    order_id: Optional[str] = None
    created_at: datetime


# -------- ORDERS --------
class OrderResponse(BaseModel):
    id: str
    buyer_id: str
    seller_id: str
    product_id: str
    product_title: str
    price: Decimal
    quantity: int
    charge_id: str
    status: Literal["PAID", "DELIVERED"]
    shipping_address: Optional[Dict[str, Any]] = None
    created_at: datetime
    delivered_at: Optional[datetime] = None


class OrderListResponse(BaseModel):
    role: Literal["buyer", "seller"]
    orders: List[OrderResponse]


class DeliverResponse(BaseModel):
    order: OrderResponse
    transitioned: bool
    purged_messages: int


# -------- PAYOUTS --------
class PayoutResponse(BaseModel):
    id: str
    order_id: str
    source_charge_id: str
    gross_amount: Decimal
    net_amount: Decimal
    fee_amount: Decimal
    beneficiary_key_kind: KeyKindName
    status: Literal["PENDING", "COMPLETED", "FAILED"]
    provider_ref: Optional[str] = None
    attempt_count: int
    last_error: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class PayoutConfirmRequest(BaseModel):
    status: Literal["COMPLETED", "FAILED"]
    provider_ref: Optional[str] = Field(default=None, max_length=140)


# -------- ADMIN --------
class ReconcileRunRequest(BaseModel):
    stale_minutes: int = Field(default=30, ge=0, le=7 * 24 * 60)


class ReconcileRunResponse(BaseModel):
    id: str
    run_at: str
    summary: Dict[str, int]
    items: List[Dict[str, Any]]
