

# app/gateway/client.py
from __future__ import annotations

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import httpx

from app.charges.model import ChargeStatus
from app.errors import GatewayError, GatewayErrorKind
from app.gateway.base import GatewayCharge, GatewayPayout
from app.gateway.http import HttpClient, HttpResponse, is_retryable_http
from app.payouts.fees import quantize_money
from app.payouts.keys import KeyKind
from app.payouts.model import PayoutStatus
from settings import settings

logger = logging.getLogger("nexus.gateway")

# Provider messages that mean the Pix key itself was refused
_BENEFICIARY_PATTERN = re.compile(r"(pix\s*_?key|chave|benefici\w*|invalid\s+key)", re.IGNORECASE)


def _provider_message(body: Any, fallback: str) -> str:
    if isinstance(body, dict):
        for k in ("message", "error", "detail"):
            v = body.get(k)
            if isinstance(v, str) and v.strip():
                return v.strip()
    return fallback


def _parse_amount(value: Any, *, field: str) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise GatewayError(GatewayErrorKind.INVALID_RESPONSE, f"field {field!r} is not a number: {value!r}")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise GatewayError(GatewayErrorKind.INVALID_RESPONSE, f"field {field!r} is not a number: {value!r}")
    if not amount.is_finite() or amount <= 0:
        raise GatewayError(GatewayErrorKind.INVALID_RESPONSE, f"field {field!r} must be positive: {value!r}")
    return quantize_money(amount)


def _parse_charge_status(value: Any) -> ChargeStatus:
    try:
        return ChargeStatus(str(value).strip().upper())
    except ValueError:
        raise GatewayError(GatewayErrorKind.INVALID_RESPONSE, f"unknown payment status: {value!r}")


def _parse_payout_status(value: Any) -> PayoutStatus:
    try:
        return PayoutStatus(str(value).strip().upper())
    except ValueError:
        raise GatewayError(GatewayErrorKind.INVALID_RESPONSE, f"unknown withdraw status: {value!r}")


def _require(data: dict[str, Any], *fields: str) -> None:
    missing = [f for f in fields if data.get(f) in (None, "")]
    if missing:
        raise GatewayError(
            GatewayErrorKind.INVALID_RESPONSE,
            "response missing required fields: " + ", ".join(missing),
            response=data,
        )


class PixGatewayClient:
    """
    Client side of the Pix provider contract:
      - create_charge   POST /payment/create
      - get_charge_status  GET /payment/get/{id}
      - create_payout   POST /withdraw/create

    No call is ever retried here; retry policy belongs to the workers.
    """

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = (api_key if api_key is not None else settings.PIX_API_KEY or "").strip()
        self.http = HttpClient(
            (base_url or settings.PIX_API_BASE_URL or "").strip(),
            timeout_s=float(timeout_s if timeout_s is not None else settings.PIX_HTTP_TIMEOUT_S),
            transport=transport,
        )

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "X-API-Key": self.api_key}

    def _unwrap(self, resp: HttpResponse, *, op: str, payout: bool = False) -> dict[str, Any]:
        """
        Envelope check: {success, data, message}. Returns `data`.
        """
        body = resp.json
        envelope_refused = isinstance(body, dict) and body.get("success") is False

        # An explicit refusal wins over the status code: the provider answered,
        # so resending could execute the operation twice
        if is_retryable_http(resp.status_code) and not envelope_refused:
            raise GatewayError(
                GatewayErrorKind.UNREACHABLE,
                f"{op}: provider returned HTTP {resp.status_code}",
                http_status=resp.status_code,
            )

        if envelope_refused or not (200 <= resp.status_code < 300):
            message = _provider_message(body, resp.text[:300] or f"HTTP {resp.status_code}")
            kind = GatewayErrorKind.REJECTED_BY_PROVIDER
            if payout and _BENEFICIARY_PATTERN.search(message):
                kind = GatewayErrorKind.INVALID_BENEFICIARY
            raise GatewayError(
                kind,
                f"{op}: {message}",
                http_status=resp.status_code,
                response=body if isinstance(body, dict) else None,
            )

        if not isinstance(body, dict):
            raise GatewayError(GatewayErrorKind.INVALID_RESPONSE, f"{op}: response is not a JSON object", http_status=resp.status_code)
        if body.get("success") is not True:
            raise GatewayError(GatewayErrorKind.INVALID_RESPONSE, f"{op}: response missing success flag", response=body)

        data = body.get("data")
        if not isinstance(data, dict):
            raise GatewayError(GatewayErrorKind.INVALID_RESPONSE, f"{op}: response missing data object", response=body)
        return data

    def create_charge(self, gross_amount: Decimal, description: str) -> GatewayCharge:
        amount = quantize_money(gross_amount)
        resp = self.http.post(
            "/payment/create",
            headers=self._headers(),
            json_body={
                "value": float(amount),
                "description": description,
                "coverFee": bool(settings.CHARGE_COVER_FEE),
            },
        )
        data = self._unwrap(resp, op="create_charge")
        _require(data, "id", "status", "valueInReais")

        provider_amount = _parse_amount(data["valueInReais"], field="valueInReais")
        if provider_amount != amount:
            raise GatewayError(
                GatewayErrorKind.INVALID_RESPONSE,
                f"create_charge: provider amount {provider_amount} != requested {amount}",
                response=data,
            )

        charge = GatewayCharge(
            external_id=str(data["id"]),
            status=_parse_charge_status(data["status"]),
            amount=provider_amount,
            transaction_id=(str(data["transactionId"]) if data.get("transactionId") else None),
            qrcode_url=data.get("qrcodeUrl"),
            copy_paste=data.get("copyPaste"),
            response=data,
        )
        logger.info("charge created external_id=%s status=%s amount=%s", charge.external_id, charge.status.value, amount)
        return charge

    def get_charge_status(self, external_id: str) -> GatewayCharge:
        ref = (external_id or "").strip()
        if not ref:
            raise ValueError("external_id is required")

        resp = self.http.get(f"/payment/get/{ref}", headers=self._headers())
        data = self._unwrap(resp, op="get_charge_status")
        _require(data, "id", "status", "value")

        return GatewayCharge(
            external_id=str(data["id"]),
            status=_parse_charge_status(data["status"]),
            amount=_parse_amount(data["value"], field="value"),
            qrcode_url=data.get("qrCode"),
            response=data,
        )

    def create_payout(
        self,
        net_amount: Decimal,
        beneficiary_key: str,
        beneficiary_key_kind: KeyKind,
        description: str,
    ) -> GatewayPayout:
        amount = quantize_money(net_amount)
        resp = self.http.post(
            "/withdraw/create",
            headers=self._headers(),
            json_body={
                "amount": float(amount),
                "pixKey": beneficiary_key,
                "pixKeyType": KeyKind(beneficiary_key_kind).value,
                "description": description,
                "coverFee": bool(settings.PAYOUT_COVER_FEE),
            },
        )
        data = self._unwrap(resp, op="create_payout", payout=True)
        # The withdraw envelope carries no amount; validate it only when present
        _require(data, "id", "status")

        provider_amount = None
        if data.get("amount") is not None:
            provider_amount = _parse_amount(data["amount"], field="amount")
            if provider_amount != amount:
                raise GatewayError(
                    GatewayErrorKind.INVALID_RESPONSE,
                    f"create_payout: provider amount {provider_amount} != requested {amount}",
                    response=data,
                )

        payout = GatewayPayout(
            provider_ref=str(data["id"]),
            status=_parse_payout_status(data["status"]),
            amount=provider_amount,
            response=data,
        )
        logger.info("payout created provider_ref=%s status=%s amount=%s", payout.provider_ref, payout.status.value, amount)
        return payout
