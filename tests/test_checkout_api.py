"""Tests for the trusted payment functions client."""
from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any, Optional

import aiohttp
import pytest

from membership.clients.checkout_api import CheckoutApiClient
from membership.config import CheckoutSettings
from membership.errors import CheckoutError, ErrorCode


class FakeResponse:
    def __init__(self, status: int, data: Any):
        self.status = status
        self._data = data

    async def json(self, content_type: Optional[str] = None) -> Any:
        if isinstance(self._data, Exception):
            raise self._data
        return self._data

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, *exc) -> None:
        return None


class FakeSession:
    def __init__(self, status: int = 200, data: Any = None, error: Optional[Exception] = None):
        self.closed = False
        self.status = status
        self.data = data
        self.error = error
        self.calls: list[dict] = []

    def post(self, url: str, json: Any = None, headers: Optional[dict] = None) -> FakeResponse:
        self.calls.append({"url": url, "json": json, "headers": headers})
        if self.error is not None:
            raise self.error
        return FakeResponse(self.status, self.data)

    async def close(self) -> None:
        self.closed = True


SETTINGS = CheckoutSettings(
    client_id="client-id",
    api_base_url="https://api.example.com/functions/v1/",
    public_base_url="https://bot.example.com/",
)


def test_create_checkout_sends_only_package_id() -> None:
    session = FakeSession(data={
        "order_id": "ORDER-9",
        "payment_id": "pay-9",
        "package_name": "Golden Premium",
        "amount": "400.00",
        "approval_url": "https://paypal.example/approve",
    })
    client = CheckoutApiClient(SETTINGS, session=session)

    result = asyncio.run(client.create_checkout("token-1", "golden_premium"))

    assert result["order_id"] == "ORDER-9"
    assert result["amount"] == Decimal("400.00")
    call = session.calls[0]
    assert call["url"] == "https://api.example.com/functions/v1/secure-paypal-checkout"
    assert call["json"] == {"package_id": "golden_premium"}
    assert call["headers"]["Authorization"] == "Bearer token-1"
    assert call["headers"]["Origin"] == "https://bot.example.com"


def test_server_error_message_is_passed_through() -> None:
    session = FakeSession(status=400, data={"error": "Downgrade is not allowed"})
    client = CheckoutApiClient(SETTINGS, session=session)

    with pytest.raises(CheckoutError) as exc:
        asyncio.run(client.create_checkout("token-1", "premium"))

    assert exc.value.code == ErrorCode.PROVIDER_REJECTED
    assert exc.value.message == "Downgrade is not allowed"


def test_error_key_in_successful_response_is_rejection() -> None:
    session = FakeSession(status=200, data={"error": "Payment capture failed"})
    client = CheckoutApiClient(SETTINGS, session=session)

    with pytest.raises(CheckoutError) as exc:
        asyncio.run(client.capture_payment("token-1", "ORDER-1", "pay-1"))

    assert exc.value.code == ErrorCode.PROVIDER_REJECTED
    assert exc.value.message == "Payment capture failed"


def test_non_json_error_body_uses_default_message() -> None:
    session = FakeSession(status=502, data=ValueError("not json"))
    client = CheckoutApiClient(SETTINGS, session=session)

    with pytest.raises(CheckoutError) as exc:
        asyncio.run(client.cancel_payment("token-1", "pay-1"))

    assert exc.value.code == ErrorCode.PROVIDER_REJECTED
    assert exc.value.message


@pytest.mark.parametrize("error", [aiohttp.ClientConnectionError("refused"), asyncio.TimeoutError()])
def test_transport_failures_are_network_errors(error: Exception) -> None:
    client = CheckoutApiClient(SETTINGS, session=FakeSession(error=error))

    with pytest.raises(CheckoutError) as exc:
        asyncio.run(client.capture_payment("token-1", "ORDER-1", "pay-1"))

    assert exc.value.code == ErrorCode.NETWORK_ERROR


def test_create_checkout_without_ids_is_rejected() -> None:
    client = CheckoutApiClient(SETTINGS, session=FakeSession(data={"approval_url": "x"}))

    with pytest.raises(CheckoutError) as exc:
        asyncio.run(client.create_checkout("token-1", "premium"))

    assert exc.value.code == ErrorCode.PROVIDER_REJECTED


def test_capture_reporting_failure_is_rejected() -> None:
    client = CheckoutApiClient(SETTINGS, session=FakeSession(data={"success": False, "message": "Instrument declined"}))

    with pytest.raises(CheckoutError) as exc:
        asyncio.run(client.capture_payment("token-1", "ORDER-1", "pay-1"))

    assert exc.value.message == "Instrument declined"


def test_close_leaves_injected_session_open() -> None:
    session = FakeSession()
    client = CheckoutApiClient(SETTINGS, session=session)

    asyncio.run(client.close())

    assert not session.closed
