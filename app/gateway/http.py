

# app/gateway/http.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from app.errors import GatewayError, GatewayErrorKind

logger = logging.getLogger("nexus.gateway.http")

SENSITIVE_HEADERS = {"authorization", "x-api-key"}


@dataclass
class HttpResponse:
    status_code: int
    json: Optional[Any]
    text: str


class HttpClient:
    """
    Thin httpx wrapper. Transport failures (timeouts, DNS, resets) surface as
    GatewayError(UNREACHABLE); everything else is returned for the caller to judge.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_s: float = 20.0,
        transport: Optional[httpx.BaseTransport] = None,
        debug: bool = False,
    ):
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout_s,
            follow_redirects=True,
            transport=transport,
        )
        self.debug = debug

    def post(self, path: str, *, headers: dict[str, str], json_body: dict[str, Any]) -> HttpResponse:
        return self._send("POST", path, headers=headers, json_body=json_body)

    def get(self, path: str, *, headers: dict[str, str]) -> HttpResponse:
        return self._send("GET", path, headers=headers, json_body=None)

    def close(self) -> None:
        self._client.close()

    def _send(self, method: str, path: str, *, headers: dict[str, str], json_body: Optional[dict[str, Any]]) -> HttpResponse:
        try:
            r = self._client.request(method, path, headers=headers, json=json_body)
        except httpx.TimeoutException as exc:
            raise GatewayError(GatewayErrorKind.UNREACHABLE, f"timeout on {method} {path}: {exc}") from exc
        except httpx.TransportError as exc:
            raise GatewayError(GatewayErrorKind.UNREACHABLE, f"transport error on {method} {path}: {exc}") from exc

        if self.debug:
            self._debug_dump(method, path, headers, json_body, r)
        return self._wrap(r)

    @staticmethod
    def _wrap(r: httpx.Response) -> HttpResponse:
        try:
            payload = r.json()
        except ValueError:
            payload = None
        return HttpResponse(status_code=r.status_code, json=payload, text=r.text)

    @staticmethod
    def _debug_dump(method: str, path: str, headers: dict[str, str], json_body: Any, r: httpx.Response) -> None:
        # Don't log secrets
        safe_headers = {k: ("REDACTED" if k.lower() in SENSITIVE_HEADERS else v) for k, v in (headers or {}).items()}
        logger.debug(
            "%s %s headers=%s json=%s -> status=%s text=%s",
            method,
            path,
            safe_headers,
            json_body,
            r.status_code,
            r.text[:300],
        )


def is_retryable_http(code: int) -> bool:
    # Retry transient / throttling / gateway issues
    return code in (408, 425, 429, 500, 502, 503, 504)
