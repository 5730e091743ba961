from decimal import Decimal
from html import escape
from typing import Iterable

from membership.constants import MAX_MESSAGE_LENGTH, STATUS_COMPLETED, STATUS_PENDING
from membership.models.membership import Classification, MembershipSnapshot
from membership.models.payment import PaymentRecord
from membership.models.session import PaymentSession, SessionState
from membership.utils.parsing import parse_timestamp

STATUS_ICONS = {
    STATUS_COMPLETED: "🟢",
    STATUS_PENDING: "🟠",
}

SESSION_TEXT = {
    SessionState.CREATED: "💳 Заказ создан, ожидает оплаты",
    SessionState.CAPTURING: "⏳ Подтверждаем оплату...",
    SessionState.COMPLETED: "✅ Оплата прошла успешно!",
    SessionState.CANCELLED: "❌ Оплата отменена",
    SessionState.FAILED: "❌ Оплата не прошла",
}


def split_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """
    Разбивает длинное сообщение на части по границам строк

    HTML-сущности и теги не переносятся между частями. Режется посимвольно
    только строка, которая сама длиннее max_length.
    """
    if len(text) <= max_length:
        return [text]

    chunks = []
    current: list[str] = []
    size = 0
    for line in text.split("\n"):
        extra = len(line) + 1 if current else len(line)
        if current and size + extra > max_length:
            chunks.append("\n".join(current))
            current, size, extra = [], 0, len(line)

        while len(line) > max_length:
            chunks.append(line[:max_length])
            line = line[max_length:]
            extra = len(line)

        current.append(line)
        size += extra

    if current:
        chunks.append("\n".join(current))

    # Telegram не принимает пустые сообщения
    return [chunk for chunk in chunks if chunk]


def format_price(amount: Decimal) -> str:
    """$100 или $0.50"""
    if amount == amount.to_integral_value():
        return f"${amount.quantize(Decimal(1))}"
    return f"${amount.quantize(Decimal('0.01'))}"


def offer_label(classification: Classification, payable: Decimal) -> str:
    if classification == Classification.CURRENT:
        return "✅ Текущий тариф"
    if classification == Classification.PENDING:
        return "⏳ Платеж ожидает подтверждения"
    if classification == Classification.DOWNGRADE:
        return "⬇️ Ниже текущего тарифа"
    if classification == Classification.UPGRADE:
        return f"⬆️ Повышение за {format_price(payable)}"
    return f"💳 Покупка за {format_price(payable)}"


def render_overview(snapshot: MembershipSnapshot) -> str:
    """Текст экрана тарифов"""
    lines = ["👑 <b>Тарифы</b>", ""]

    for offer in snapshot['offers']:
        pkg = offer['package']
        eligibility = offer['eligibility']
        lifetime = " • навсегда" if pkg['is_lifetime'] else ""
        lines.append(f"<b>{escape(pkg['name'])}</b> — {format_price(pkg['price'])}{lifetime}")
        lines.append(offer_label(eligibility.classification, eligibility.payable_amount))
        for feature in pkg['features']:
            lines.append(f"  • {escape(feature)}")
        lines.append("")

    if snapshot['checkout_blocked']:
        lines.append("⚠️ Есть платеж в обработке. Новые оплаты будут доступны после его подтверждения.")

    return "\n".join(lines).strip()


def render_history(records: Iterable[PaymentRecord]) -> str:
    """История платежей, новые первыми"""
    records = list(records)
    if not records:
        return "🧾 Платежей пока нет."

    lines = ["🧾 <b>История платежей</b>", ""]
    for r in records:
        created = parse_timestamp(r.get('created_at'))
        date = created.strftime("%Y-%m-%d") if created else "—"
        icon = STATUS_ICONS.get(r['status'], "🔴")
        name = escape(r.get('package_name') or r.get('package_type') or "—")
        lines.append(f"{icon} {date} • {name} • {format_price(r['amount'])} • {r['status']}")
    return "\n".join(lines)


def render_session(session: PaymentSession) -> str:
    """Текст о состоянии текущей оплаты"""
    text = (
        f"{SESSION_TEXT[session.state]}\n\n"
        f"📅 Тариф: {escape(session.package_name)}\n"
        f"💵 Сумма: {format_price(session.amount)}"
    )
    if session.error and session.state == SessionState.FAILED:
        text += f"\n\n{escape(session.error)}"
    return text
