# Overview: Card terminal integration used by sales_service.

"""
Payment Gateway

WHY: Card sales are authorized on a physical terminal at the till. The
sale flow only needs two calls: charge an amount for an order id, and
give it back when the sale could not be persisted afterwards.

IMPLEMENTATIONS:
- SimulatedTerminal: approves every charge locally. Default for dev/tests.
- HttpTerminal: talks JSON to a terminal bridge over HTTP (httpx).

ERROR CONTRACT:
- A declined charge is a normal PaymentResult with success=False.
- Connectivity problems and timeouts raise PaymentGatewayUnavailableError.
"""
from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime

import httpx
from flask import current_app

from ..errors import PaymentGatewayUnavailableError
from ..time_utils import parse_iso_datetime, utcnow


@dataclass
class PaymentResult:
    success: bool
    authorization_code: str | None = None
    amount: int | None = None
    response_code: str | None = None
    transaction_date: datetime | None = None
    message: str | None = None


class SimulatedTerminal:
    """Approves every charge with a random authorization code."""

    name = "simulated"

    def __init__(self):
        self.refunds: list[tuple[int, str]] = []

    def sale(self, amount: int, order_id: str) -> PaymentResult:
        return PaymentResult(
            success=True,
            authorization_code=f"{secrets.randbelow(1_000_000):06d}",
            amount=amount,
            response_code="0",
            transaction_date=utcnow(),
        )

    def refund(self, amount: int, order_id: str) -> PaymentResult:
        self.refunds.append((amount, order_id))
        return PaymentResult(success=True, amount=amount, response_code="0", transaction_date=utcnow())


class HttpTerminal:
    """
    Client for a terminal bridge exposing:

        POST {base_url}/sale    {"amount", "order_id"}
        POST {base_url}/refund  {"amount", "order_id"}

    Both answer {"success", "authorization_code", "amount",
    "response_code", "transaction_date", "message"}.
    """

    name = "http"

    def __init__(self, base_url: str, timeout: float, transport: httpx.BaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _post(self, path: str, payload: dict) -> PaymentResult:
        try:
            with httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
                response = client.post(path, json=payload)
        except httpx.TimeoutException as exc:
            raise PaymentGatewayUnavailableError(
                "Card terminal did not respond in time",
                details={"reason": str(exc)},
            )
        except httpx.HTTPError as exc:
            raise PaymentGatewayUnavailableError(
                "Error connecting to card terminal",
                details={"reason": str(exc)},
            )

        # Declines come back as 200 with success=false; any other status is a bridge fault
        if not response.is_success:
            raise PaymentGatewayUnavailableError(
                "Card terminal bridge error",
                details={"status": response.status_code},
            )

        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            raise PaymentGatewayUnavailableError(
                "Card terminal returned an unreadable response",
                details={"status": response.status_code},
            )

        try:
            transaction_date = parse_iso_datetime(body.get("transaction_date")) or utcnow()
        except (AttributeError, TypeError, ValueError):
            transaction_date = utcnow()

        return PaymentResult(
            success=bool(body.get("success")),
            authorization_code=body.get("authorization_code"),
            amount=body.get("amount"),
            response_code=None if body.get("response_code") is None else str(body.get("response_code")),
            transaction_date=transaction_date,
            message=body.get("message"),
        )

    def sale(self, amount: int, order_id: str) -> PaymentResult:
        return self._post("/sale", {"amount": amount, "order_id": order_id})

    def refund(self, amount: int, order_id: str) -> PaymentResult:
        return self._post("/refund", {"amount": amount, "order_id": order_id})


def build_payment_gateway(config) -> SimulatedTerminal | HttpTerminal:
    kind = (config.get("PAYMENT_GATEWAY") or "simulated").lower()
    if kind == "simulated":
        return SimulatedTerminal()
    if kind == "http":
        return HttpTerminal(
            base_url=config["PAYMENT_GATEWAY_URL"],
            timeout=float(config.get("PAYMENT_TIMEOUT_SECONDS", 60)),
        )
    raise ValueError(f"Unknown PAYMENT_GATEWAY: {kind}")


def init_payment_gateway(app) -> None:
    app.extensions["payment_gateway"] = build_payment_gateway(app.config)


def get_payment_gateway():
    return current_app.extensions["payment_gateway"]
