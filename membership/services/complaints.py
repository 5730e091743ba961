from datetime import datetime, timezone
import logging

from membership.constants import STATUS_PENDING
from membership.db.repositories.payments import PaymentRepository
from membership.errors import ErrorCode, MembershipError
from membership.models.payment import Complaint, PaymentRecord

logger = logging.getLogger(__name__)


class ComplaintService:
    """Жалобы на платежи по тарифу"""

    def __init__(self, payments: PaymentRepository):
        self.payments = payments

    async def find_target(self, user_id: str, package_type: str) -> PaymentRecord:
        """Последний ожидающий платеж по тарифу, иначе последний любой"""
        record = await self.payments.get_latest_for_package(user_id, package_type, STATUS_PENDING)
        if record is None:
            record = await self.payments.get_latest_for_package(user_id, package_type)
        if record is None:
            raise MembershipError(ErrorCode.NOT_FOUND)
        return record

    async def attach(self, user_id: str, package_type: str, message: str) -> Complaint:
        """
        Добавляет жалобу к самому подходящему платежу

        Чтение и запись не в транзакции: жалобы только дописываются,
        в худшем случае теряется одна из одновременных.

        Raises:
            ValueError: пустой текст жалобы
            MembershipError(NOT_FOUND): по тарифу нет ни одного платежа
        """
        text = (message or "").strip()
        if not text:
            raise ValueError("Текст жалобы пуст")

        record = await self.find_target(user_id, package_type)

        complaint: Complaint = {
            'package_type': package_type,
            'message': text,
            'created_at': datetime.now(timezone.utc).isoformat(),
        }
        complaints = list(record.get('complaints') or [])
        complaints.append(complaint)
        await self.payments.update_complaints(record['id'], complaints)

        logger.info(f"📝 Жалоба по тарифу {package_type} добавлена к платежу {record['id']}")
        return complaint
