from __future__ import annotations

import json
from decimal import Decimal

import httpx
import pytest

from app.charges.model import ChargeStatus
from app.errors import GatewayError, GatewayErrorKind
from app.gateway.client import PixGatewayClient
from app.payouts.keys import KeyKind
from app.payouts.model import PayoutStatus


def _client(handler) -> PixGatewayClient:
    return PixGatewayClient(
        base_url="https://pix.test/api/v1",
        api_key="key-123",
        timeout_s=2,
        transport=httpx.MockTransport(handler),
    )


def test_create_charge_success():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["api_key"] = request.headers.get("X-API-Key")
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "success": True,
                "data": {
                    "id": "pay-1",
                    "transactionId": "tx-1",
                    "status": "PENDING",
                    "qrcodeUrl": "https://qr/1.png",
                    "copyPaste": "000201...",
                    "valueInReais": 200.0,
                },
            },
        )

    res = _client(handler).create_charge(Decimal("200.00"), "Bike")

    assert seen["url"] == "https://pix.test/api/v1/payment/create"
    assert seen["api_key"] == "key-123"
    assert seen["body"] == {"value": 200.0, "description": "Bike", "coverFee": False}
    assert res.external_id == "pay-1"
    assert res.status is ChargeStatus.PENDING
    assert res.amount == Decimal("200.00")
    assert res.transaction_id == "tx-1"
    assert res.copy_paste == "000201..."


def test_success_false_is_rejected_by_provider():
    def handler(request):
        return httpx.Response(400, json={"success": False, "message": "Saldo insuficiente"})

    with pytest.raises(GatewayError) as exc:
        _client(handler).create_charge(Decimal("10.00"), "x")

    assert exc.value.kind is GatewayErrorKind.REJECTED_BY_PROVIDER
    assert "Saldo insuficiente" in exc.value.message
    assert not exc.value.retryable


def test_success_false_with_200_is_rejected_by_provider():
    def handler(request):
        return httpx.Response(200, json={"success": False, "message": "Pagamento recusado"})

    with pytest.raises(GatewayError) as exc:
        _client(handler).create_charge(Decimal("10.00"), "x")
    assert exc.value.kind is GatewayErrorKind.REJECTED_BY_PROVIDER


@pytest.mark.parametrize("status_code", [408, 429, 500, 502, 503, 504])
def test_transient_http_is_unreachable(status_code):
    def handler(request):
        return httpx.Response(status_code, text="upstream trouble")

    with pytest.raises(GatewayError) as exc:
        _client(handler).get_charge_status("pay-1")
    assert exc.value.kind is GatewayErrorKind.UNREACHABLE
    assert exc.value.retryable
    assert exc.value.http_status == status_code


@pytest.mark.parametrize("status_code", [429, 500, 503])
def test_success_false_on_transient_status_is_rejected(status_code):
    def handler(request):
        return httpx.Response(status_code, json={"success": False, "message": "saldo insuficiente"})

    with pytest.raises(GatewayError) as exc:
        _client(handler).create_payout(Decimal("9.50"), "user@mail.com", KeyKind.EMAIL, "x")
    assert exc.value.kind is GatewayErrorKind.REJECTED_BY_PROVIDER
    assert not exc.value.retryable
    assert exc.value.http_status == status_code


def test_transient_status_with_envelope_but_no_refusal_is_unreachable():
    def handler(request):
        return httpx.Response(503, json={"message": "maintenance"})

    with pytest.raises(GatewayError) as exc:
        _client(handler).get_charge_status("pay-1")
    assert exc.value.kind is GatewayErrorKind.UNREACHABLE


def test_timeout_is_unreachable():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(GatewayError) as exc:
        _client(handler).get_charge_status("pay-1")
    assert exc.value.kind is GatewayErrorKind.UNREACHABLE


def test_connection_error_is_unreachable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(GatewayError) as exc:
        _client(handler).create_charge(Decimal("10.00"), "x")
    assert exc.value.kind is GatewayErrorKind.UNREACHABLE


@pytest.mark.parametrize(
    "data",
    [
        {"status": "COMPLETED", "value": 10.0},  # no id
        {"id": "pay-1", "value": 10.0},  # no status
        {"id": "pay-1", "status": "COMPLETED"},  # no amount
        {"id": "pay-1", "status": "PAID_MAYBE", "value": 10.0},  # unknown status
        {"id": "pay-1", "status": "COMPLETED", "value": "ten"},  # bad amount
    ],
)
def test_malformed_status_payload_is_invalid_response(data):
    def handler(request):
        return httpx.Response(200, json={"success": True, "data": data})

    with pytest.raises(GatewayError) as exc:
        _client(handler).get_charge_status("pay-1")
    assert exc.value.kind is GatewayErrorKind.INVALID_RESPONSE


def test_non_json_body_is_invalid_response():
    def handler(request):
        return httpx.Response(200, text="<html>maintenance</html>")

    with pytest.raises(GatewayError) as exc:
        _client(handler).get_charge_status("pay-1")
    assert exc.value.kind is GatewayErrorKind.INVALID_RESPONSE


def test_get_charge_status_success():
    def handler(request):
        assert request.method == "GET"
        assert request.url.path == "/api/v1/payment/get/pay-1"
        return httpx.Response(200, json={"success": True, "data": {"id": "pay-1", "status": "completed", "value": 200}})

    res = _client(handler).get_charge_status("pay-1")
    assert res.status is ChargeStatus.COMPLETED
    assert res.amount == Decimal("200.00")


def test_create_charge_amount_mismatch_is_invalid_response():
    def handler(request):
        return httpx.Response(
            200,
            json={"success": True, "data": {"id": "pay-1", "status": "PENDING", "valueInReais": 20.0}},
        )

    with pytest.raises(GatewayError) as exc:
        _client(handler).create_charge(Decimal("200.00"), "x")
    assert exc.value.kind is GatewayErrorKind.INVALID_RESPONSE


def test_create_payout_success():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "data": {"id": "wd-1", "status": "PENDING"}})

    res = _client(handler).create_payout(Decimal("190.00"), "seller@mail.com", KeyKind.EMAIL, "Repasse Nexus Market")

    assert seen["body"] == {
        "amount": 190.0,
        "pixKey": "seller@mail.com",
        "pixKeyType": "EMAIL",
        "description": "Repasse Nexus Market",
        "coverFee": True,
    }
    assert res.provider_ref == "wd-1"
    assert res.status is PayoutStatus.PENDING
    assert res.amount is None


def test_create_payout_invalid_key():
    def handler(request):
        return httpx.Response(400, json={"success": False, "message": "Chave PIX inválida"})

    with pytest.raises(GatewayError) as exc:
        _client(handler).create_payout(Decimal("9.50"), "nope", KeyKind.RANDOM, "x")
    assert exc.value.kind is GatewayErrorKind.INVALID_BENEFICIARY


def test_create_payout_other_rejection():
    def handler(request):
        return httpx.Response(422, json={"success": False, "message": "Limite diário excedido"})

    with pytest.raises(GatewayError) as exc:
        _client(handler).create_payout(Decimal("9.50"), "user@mail.com", KeyKind.EMAIL, "x")
    assert exc.value.kind is GatewayErrorKind.REJECTED_BY_PROVIDER


def test_create_payout_missing_id_is_invalid_response():
    def handler(request):
        return httpx.Response(200, json={"success": True, "data": {"status": "PENDING"}})

    with pytest.raises(GatewayError) as exc:
        _client(handler).create_payout(Decimal("9.50"), "user@mail.com", KeyKind.EMAIL, "x")
    assert exc.value.kind is GatewayErrorKind.INVALID_RESPONSE


def test_api_key_is_redacted_in_debug_log(caplog):
    import logging

    def handler(request):
        return httpx.Response(200, json={"success": True, "data": {"id": "pay-1", "status": "ACTIVE", "value": 5}})

    client = _client(handler)
    client.http.debug = True
    caplog.set_level(logging.DEBUG, logger="nexus.gateway.http")
    client.get_charge_status("pay-1")

    text = "\n".join(r.getMessage() for r in caplog.records)
    assert "key-123" not in text
    assert "REDACTED" in text
