"""Tests for attaching complaints to payment records."""
from __future__ import annotations

import asyncio
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from membership.errors import ErrorCode, MembershipError
from membership.services.complaints import ComplaintService


def make_payments(pending: Optional[dict] = None, latest: Optional[dict] = None) -> MagicMock:
    async def get_latest_for_package(user_id: str, package_type: str, status: Optional[str] = None):
        return pending if status == "pending" else latest

    payments = MagicMock()
    payments.get_latest_for_package = AsyncMock(side_effect=get_latest_for_package)
    payments.update_complaints = AsyncMock()
    return payments


def test_complaint_goes_to_pending_record_first() -> None:
    pending = {"id": "rec-pending", "complaints": [{"package_type": "golden_premium", "message": "old", "created_at": "x"}]}
    latest = {"id": "rec-latest", "complaints": []}
    payments = make_payments(pending=pending, latest=latest)

    complaint = asyncio.run(ComplaintService(payments).attach("user-1", "golden_premium", "  Charged twice  "))

    assert complaint["message"] == "Charged twice"
    assert complaint["package_type"] == "golden_premium"
    record_id, complaints = payments.update_complaints.await_args.args
    assert record_id == "rec-pending"
    assert [c["message"] for c in complaints] == ["old", "Charged twice"]
    # исходный список записи не мутируется
    assert len(pending["complaints"]) == 1


def test_complaint_falls_back_to_latest_record() -> None:
    payments = make_payments(latest={"id": "rec-latest", "complaints": None})

    asyncio.run(ComplaintService(payments).attach("user-1", "premium", "Not activated"))

    record_id, complaints = payments.update_complaints.await_args.args
    assert record_id == "rec-latest"
    assert len(complaints) == 1


def test_complaint_without_records_is_not_found() -> None:
    payments = make_payments()

    with pytest.raises(MembershipError) as exc:
        asyncio.run(ComplaintService(payments).attach("user-1", "vip_premium", "Where is my tier?"))

    assert exc.value.code == ErrorCode.NOT_FOUND
    payments.update_complaints.assert_not_awaited()


def test_blank_complaint_is_rejected_before_lookup() -> None:
    payments = make_payments(latest={"id": "rec", "complaints": []})

    with pytest.raises(ValueError):
        asyncio.run(ComplaintService(payments).attach("user-1", "premium", "   "))

    payments.get_latest_for_package.assert_not_awaited()
    payments.update_complaints.assert_not_awaited()
