"""Tests for change notification routing."""
from __future__ import annotations

import json
from unittest.mock import MagicMock

from membership.db.listener import ChangeListener


def test_notification_reaches_only_matching_subscription() -> None:
    listener = ChangeListener("postgresql://unused")
    mine = MagicMock()
    other = MagicMock()
    listener.subscribe({"payment_records"}, "user-1", mine)
    listener.subscribe({"payment_records"}, "user-2", other)

    payload = {"table": "payment_records", "event": "update", "user_id": "user-1"}
    listener._on_notify(None, 1, "membership_changes", json.dumps(payload))

    mine.assert_called_once_with("payment_records", "UPDATE", payload)
    other.assert_not_called()


def test_event_filter_and_numeric_user_id() -> None:
    listener = ChangeListener("postgresql://unused")
    callback = MagicMock()
    listener.subscribe({"user_packages"}, "42", callback, events={"insert"})

    listener.dispatch("user_packages", "DELETE", "42", {})
    listener._on_notify(None, 1, "membership_changes", json.dumps(
        {"table": "user_packages", "event": "INSERT", "user_id": 42}
    ))

    callback.assert_called_once()


def test_malformed_payloads_are_ignored() -> None:
    listener = ChangeListener("postgresql://unused")
    callback = MagicMock()
    listener.subscribe({"payment_records"}, "user-1", callback)

    listener._on_notify(None, 1, "membership_changes", "not json")
    listener._on_notify(None, 1, "membership_changes", json.dumps({"event": "UPDATE"}))
    listener._on_notify(None, 1, "membership_changes", json.dumps(["payment_records"]))

    callback.assert_not_called()


def test_failing_callback_does_not_block_others() -> None:
    listener = ChangeListener("postgresql://unused")
    broken = MagicMock(side_effect=RuntimeError("boom"))
    healthy = MagicMock()
    listener.subscribe({"payment_records"}, "user-1", broken)
    listener.subscribe({"payment_records"}, "user-1", healthy)

    listener.dispatch("payment_records", "INSERT", "user-1", {})

    healthy.assert_called_once()


def test_unsubscribe_is_idempotent() -> None:
    listener = ChangeListener("postgresql://unused")
    callback = MagicMock()
    sub = listener.subscribe({"payment_records"}, "user-1", callback)

    sub.unsubscribe()
    sub.unsubscribe()
    listener.dispatch("payment_records", "INSERT", "user-1", {})

    assert listener.subscription_count == 0
    callback.assert_not_called()
