"""Tests for the chat screen, its keyboards and provider redirects."""
from __future__ import annotations

import asyncio
from datetime import datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

from aiohttp import web
from aiohttp.test_utils import make_mocked_request

from membership.models.session import PaymentSession, SessionState
from membership.services.membership import build_snapshot
from membership.services.screens import ScreenRegistry, overview_keyboard, session_keyboard
from membership.utils.text import format_price, render_history, render_overview, split_message
from membership.webhook.paypal_webhook import SCREENS_KEY, handle_error, handle_return

PACKAGES = [
    {"id": "premium", "name": "Premium", "price": Decimal("100"), "features": ["Ads off"], "is_lifetime": True, "sort_order": 1},
    {"id": "vip_premium", "name": "VIP", "price": Decimal("200"), "features": [], "is_lifetime": True, "sort_order": 2},
    {"id": "golden_premium", "name": "Golden", "price": Decimal("500"), "features": [], "is_lifetime": True, "sort_order": 3},
]


def record(record_id: str, package_type: str, status: str) -> dict:
    return {
        "id": record_id,
        "user_id": "user-1",
        "package_type": package_type,
        "package_name": package_type,
        "amount": Decimal("100"),
        "status": status,
        "payment_details": [],
        "complaints": [],
        "created_at": datetime(2024, 1, 1),
        "updated_at": None,
    }


def callbacks(markup) -> list[str]:
    return [button.callback_data for row in markup.inline_keyboard for button in row if button.callback_data]


def test_overview_keyboard_offers_upgrades_only() -> None:
    snapshot = build_snapshot("user-1", PACKAGES, [record("1", "premium", "completed")])

    data = callbacks(overview_keyboard(snapshot))

    assert "pay:premium" not in data
    assert "pay:vip_premium" in data
    assert "pay:golden_premium" in data
    assert "refresh" in data and "payments" in data


def test_pending_payment_hides_checkout_and_offers_complaint() -> None:
    snapshot = build_snapshot("user-1", PACKAGES, [record("1", "golden_premium", "pending")])

    data = callbacks(overview_keyboard(snapshot))

    assert "complain:golden_premium" in data
    assert not [d for d in data if d.startswith("pay:")]
    assert "⚠️" in render_overview(snapshot)


def test_session_keyboard_only_for_live_sessions() -> None:
    session = PaymentSession("ORDER-1", "pay-1", "premium", "Premium", Decimal("100"), approval_url="https://paypal.example")

    assert session_keyboard(session) is not None
    session.transition(SessionState.CANCELLED)
    assert session_keyboard(session) is None


def test_text_helpers() -> None:
    assert format_price(Decimal("100")) == "$100"
    assert format_price(Decimal("99.5")) == "$99.50"
    assert render_history([]) == "🧾 Платежей пока нет."
    assert "2024-01-01" in render_history([record("1", "premium", "completed")])
    assert split_message("a" * 10, max_length=4) == ["aaaa", "aaaa", "aa"]


def test_history_is_split_on_line_boundaries() -> None:
    lines = [f"🟢 2024-01-01 • Tom &amp; Jerry {i} • $100 • completed" for i in range(200)]
    text = "\n".join(lines)

    chunks = split_message(text, max_length=1000)

    assert len(chunks) > 1
    assert all(len(chunk) <= 1000 for chunk in chunks)
    assert "\n".join(chunks) == text
    for chunk in chunks:
        assert set(chunk.split("\n")) <= set(lines)


def make_registry() -> ScreenRegistry:
    bot = MagicMock()
    bot.send_message = AsyncMock(return_value=MagicMock(message_id=7))
    bot.edit_message_text = AsyncMock()
    membership = MagicMock()
    membership.load_snapshot = AsyncMock(side_effect=lambda user_id: build_snapshot(user_id, PACKAGES, []))
    accounts = MagicMock()
    accounts.get_access_token = AsyncMock(return_value="token-1")
    api = MagicMock()
    api.create_checkout = AsyncMock(return_value={
        "order_id": "ORDER-1", "payment_id": "pay-1", "package_name": "Premium",
        "amount": Decimal("100"), "approval_url": None,
    })
    api.cancel_payment = AsyncMock()
    return ScreenRegistry(bot, membership, accounts, api, poll_interval=3600)


def test_reopening_screen_cancels_live_session_of_previous_one() -> None:
    registry = make_registry()

    async def scenario() -> None:
        first = await registry.open(100, 1, "user-1")
        await first.checkout.initiate("premium")
        assert registry.find_by_order("ORDER-1") is first

        second = await registry.open(100, 1, "user-1")
        assert registry.get(100) is second
        assert not first.sync.running
        assert first.checkout.session.state == SessionState.CANCELLED
        assert registry.find_by_order("ORDER-1") is None

        await registry.close_all()
        assert len(registry) == 0

    asyncio.run(scenario())

    registry.api.cancel_payment.assert_awaited_once_with("token-1", "pay-1")
    registry.accounts.get_access_token.assert_awaited_with(1)


def test_render_skips_unchanged_text() -> None:
    registry = make_registry()

    async def scenario() -> None:
        screen = await registry.open(100, 1, "user-1")
        await screen.sync.refresh("again")
        await registry.close_all()

    asyncio.run(scenario())

    registry.bot.send_message.assert_awaited_once()
    registry.bot.edit_message_text.assert_not_awaited()


def mocked_request(path: str, screens) -> web.Request:
    app = web.Application()
    app[SCREENS_KEY] = screens
    return make_mocked_request("GET", path, app=app)


def test_return_with_payer_id_approves() -> None:
    session = PaymentSession("ORDER-1", "pay-1", "premium", "Premium", Decimal("100"))
    session.state = SessionState.COMPLETED
    screen = MagicMock()
    screen.checkout.on_approve = AsyncMock(return_value=session)
    screen.show_session = AsyncMock()
    screens = MagicMock()
    screens.find_by_order.return_value = screen

    response = asyncio.run(handle_return(mocked_request("/membership?token=ORDER-1&PayerID=PAYER", screens)))

    assert response.status == 200
    screen.checkout.on_approve.assert_awaited_once_with("ORDER-1")
    screen.show_session.assert_awaited_once_with(session)


def test_return_without_payer_id_cancels() -> None:
    screen = MagicMock()
    screen.checkout.on_cancel = AsyncMock(return_value=None)
    screens = MagicMock()
    screens.find_by_order.return_value = screen

    response = asyncio.run(handle_return(mocked_request("/membership?token=ORDER-1", screens)))

    assert response.status == 404
    screen.checkout.on_cancel.assert_awaited_once_with()


def test_return_for_unknown_order() -> None:
    screens = MagicMock()
    screens.find_by_order.return_value = None

    assert asyncio.run(handle_return(mocked_request("/membership?token=GONE", screens))).status == 404
    assert asyncio.run(handle_return(mocked_request("/membership", screens))).status == 400


def test_provider_error_fails_session() -> None:
    screen = MagicMock()
    screen.checkout.on_error = AsyncMock(return_value=None)
    screens = MagicMock()
    screens.find_by_order.return_value = screen

    response = asyncio.run(handle_error(mocked_request("/membership/error?token=ORDER-1&message=declined", screens)))

    assert response.status == 200
    screen.checkout.on_error.assert_awaited_once_with("declined")
