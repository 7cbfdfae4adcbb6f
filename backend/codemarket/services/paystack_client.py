# Overview: Payment verification gateway adapter for Paystack.

"""
Payment Gateway Adapter

Payment capture happens in Paystack's browser widget. The server only asks
Paystack what it knows about a transaction reference and hands the answer
back to checkout_service, which decides whether to trust it.

Failure mapping:
- timeout, connection error, 5xx   -> GatewayUnavailable (retryable)
- other non-200, malformed payload -> VerificationFailed
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from urllib.parse import quote

import httpx
from flask import current_app

from ..errors import GatewayUnavailable, VerificationFailed


@dataclass(frozen=True)
class GatewayTransaction:
    reference: str
    status: str
    amount_minor: int
    currency: str


class PaymentGateway(ABC):
    @abstractmethod
    def fetch_transaction(self, reference: str) -> GatewayTransaction: ...


class PaystackGateway(PaymentGateway):
    def __init__(
        self,
        secret_key: str,
        *,
        base_url: str = "https://api.paystack.co",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_config(cls, config) -> "PaystackGateway":
        return cls(
            config.get("PAYSTACK_SECRET_KEY", ""),
            base_url=config.get("PAYSTACK_BASE_URL", "https://api.paystack.co"),
            timeout=float(config.get("PAYSTACK_TIMEOUT_SECONDS", 10)),
        )

    def fetch_transaction(self, reference: str) -> GatewayTransaction:
        if not self.secret_key:
            raise GatewayUnavailable("Payment provider is not configured")

        try:
            with httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                response = client.get(
                    f"/transaction/verify/{quote(reference, safe='')}",
                    headers={"Authorization": f"Bearer {self.secret_key}"},
                )
        except httpx.TimeoutException as exc:
            raise GatewayUnavailable("Payment provider timed out") from exc
        except httpx.HTTPError as exc:
            raise GatewayUnavailable("Payment provider unreachable") from exc

        if response.status_code >= 500:
            raise GatewayUnavailable("Payment provider error")
        if response.status_code != 200:
            raise VerificationFailed("Paystack verification failed")

        try:
            payload = response.json()
        except ValueError:
            raise VerificationFailed("Invalid Paystack response")
        if not isinstance(payload, dict) or not payload.get("status"):
            raise VerificationFailed("Invalid Paystack response")

        data = payload.get("data") or {}
        if not isinstance(data, dict):
            raise VerificationFailed("Invalid Paystack response")
        try:
            amount = int(data.get("amount"))
        except (TypeError, ValueError):
            raise VerificationFailed("Invalid Paystack response")

        return GatewayTransaction(
            reference=str(data.get("reference") or reference),
            status=str(data.get("status") or ""),
            amount_minor=amount,
            currency=str(data.get("currency") or ""),
        )


def get_gateway() -> PaymentGateway:
    """The gateway installed on the app by create_app (tests swap in a fake)."""
    gateway = current_app.extensions.get("payment_gateway")
    if gateway is None:
        gateway = PaystackGateway.from_config(current_app.config)
        current_app.extensions["payment_gateway"] = gateway
    return gateway
