

# app/gateway/mock.py
from __future__ import annotations

import threading
from decimal import Decimal
from typing import Any, Optional

from app.charges.model import ChargeStatus
from app.errors import GatewayError, GatewayErrorKind
from app.gateway.base import GatewayCharge, GatewayPayout
from app.payouts.fees import quantize_money
from app.payouts.keys import KeyKind
from app.payouts.model import PayoutStatus


class MockGateway:
    """
    Sandbox/test provider.

    - ids are sequential, so runs are reproducible
    - statuses are scripted with set_charge_status()
    - failures are queued per operation with fail_next()
    - every call is recorded in .calls
    """

    def __init__(
        self,
        *,
        initial_status: ChargeStatus = ChargeStatus.PENDING,
        payout_status: PayoutStatus = PayoutStatus.PENDING,
        auto_complete_after_polls: Optional[int] = None,
    ):
        self.initial_status = initial_status
        self.payout_status = payout_status
        self.auto_complete_after_polls = auto_complete_after_polls

        self.charges: dict[str, dict[str, Any]] = {}
        self.payouts: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self._errors: dict[str, list[GatewayError]] = {}
        self._seq = 0
        self._lock = threading.Lock()

    # scripting
    def set_charge_status(self, external_id: str, status: ChargeStatus) -> None:
        with self._lock:
            self.charges[external_id]["status"] = ChargeStatus(status)

    def fail_next(self, op: str, kind: GatewayErrorKind, message: str = "mock failure", *, times: int = 1) -> None:
        with self._lock:
            queue = self._errors.setdefault(op, [])
            for _ in range(times):
                queue.append(GatewayError(kind, message))

    def calls_for(self, op: str) -> list[dict[str, Any]]:
        return [args for name, args in self.calls if name == op]

    def _enter(self, op: str, **args: Any) -> None:
        self.calls.append((op, args))
        queue = self._errors.get(op)
        if queue:
            raise queue.pop(0)

    def _next_id(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}-{self._seq:06d}"

    # PaymentGateway
    def create_charge(self, gross_amount: Decimal, description: str) -> GatewayCharge:
        with self._lock:
            self._enter("create_charge", gross_amount=gross_amount, description=description)
            external_id = self._next_id("mock-pay")
            amount = quantize_money(gross_amount)
            self.charges[external_id] = {"status": self.initial_status, "amount": amount, "polls": 0}
            return GatewayCharge(
                external_id=external_id,
                status=self.initial_status,
                amount=amount,
                transaction_id=f"tx-{external_id}",
                qrcode_url=f"https://sandbox.pix.invalid/qr/{external_id}.png",
                copy_paste=f"00020126580014br.gov.bcb.pix-{external_id}",
                response={"id": external_id, "mock": True},
            )

    def get_charge_status(self, external_id: str) -> GatewayCharge:
        with self._lock:
            self._enter("get_charge_status", external_id=external_id)
            row = self.charges.get(external_id)
            if row is None:
                raise GatewayError(GatewayErrorKind.REJECTED_BY_PROVIDER, f"payment {external_id} not found")

            row["polls"] += 1
            if (
                self.auto_complete_after_polls is not None
                and row["status"] in (ChargeStatus.PENDING, ChargeStatus.ACTIVE)
                and row["polls"] >= self.auto_complete_after_polls
            ):
                row["status"] = ChargeStatus.COMPLETED

            return GatewayCharge(
                external_id=external_id,
                status=row["status"],
                amount=row["amount"],
                response={"id": external_id, "status": row["status"].value, "mock": True},
            )

    def create_payout(
        self,
        net_amount: Decimal,
        beneficiary_key: str,
        beneficiary_key_kind: KeyKind,
        description: str,
    ) -> GatewayPayout:
        with self._lock:
            self._enter(
                "create_payout",
                net_amount=net_amount,
                beneficiary_key=beneficiary_key,
                beneficiary_key_kind=KeyKind(beneficiary_key_kind),
                description=description,
            )
            if not (beneficiary_key or "").strip():
                raise GatewayError(GatewayErrorKind.INVALID_BENEFICIARY, "pix key is empty")

            provider_ref = self._next_id("mock-wd")
            self.payouts[provider_ref] = {"amount": quantize_money(net_amount), "status": self.payout_status}
            return GatewayPayout(
                provider_ref=provider_ref,
                status=self.payout_status,
                response={"id": provider_ref, "status": self.payout_status.value, "mock": True},
            )
