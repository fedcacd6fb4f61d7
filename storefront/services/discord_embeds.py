"""Discord message payloads for the audit channels.

Every builder returns a plain ``{"content": ..., "embeds": [...]}`` dict so
the payload can be serialised onto the task queue and posted as-is to the
channel messages endpoint.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from storefront.core.config import settings

FIELD_VALUE_LIMIT = 1024
TITLE_LIMIT = 256
CONTENT_LIMIT = 2000
IST = timezone(timedelta(hours=5, minutes=30))

COLOR_LOGIN = 0x9B59B6
COLOR_ORDER = 0x3498DB
COLOR_PENDING = 0xF1C40F
COLOR_SUCCESS = 0x2ECC71
COLOR_FAILURE = 0xE74C3C
COLOR_NEUTRAL = 0x95A5A6

DELIVERY_STYLES = {
    "shipped": (0x3498DB, "Order Shipped", "📦"),
    "out_for_delivery": (0xF39C12, "Out for Delivery", "🛵"),
    "delivered": (0x2ECC71, "Order Delivered", "🎉"),
    "failed": (0xE74C3C, "Delivery Failed", "⚠️"),
}
DEFAULT_DELIVERY_STYLE = (COLOR_NEUTRAL, "Delivery Update", "📋")

PAYMENT_STYLES = {
    "completed": (COLOR_SUCCESS, "✅ Payment Completed"),
    "failed": (COLOR_FAILURE, "❌ Payment Failed"),
}
DEFAULT_PAYMENT_STYLE = (COLOR_PENDING, "⏳ Payment Pending")


def _truncate(value: Any, limit: int = FIELD_VALUE_LIMIT) -> str:
    text = str(value) if value not in (None, "") else "N/A"
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


def _field(name: str, value: Any, inline: bool = True) -> Dict[str, Any]:
    return {"name": name, "value": _truncate(value), "inline": inline}


def _local_time(moment: Optional[datetime] = None) -> str:
    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(IST).strftime("%d/%m/%Y, %I:%M:%S %p")


def _avatar(discord_id: str, avatar: Optional[str]) -> Optional[Dict[str, str]]:
    if not avatar:
        return None
    return {"url": f"https://cdn.discordapp.com/avatars/{discord_id}/{avatar}.png"}


def _money(amount: float) -> str:
    return f"{settings.CURRENCY}{amount:,.2f}"


def _embed(
    title: str,
    color: int,
    fields: Iterable[Dict[str, Any]],
    footer: str,
    thumbnail: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    embed = {
        "title": _truncate(title, TITLE_LIMIT),
        "color": color,
        "fields": list(fields)[:25],
        "footer": {"text": footer},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if thumbnail:
        embed["thumbnail"] = thumbnail
    return embed


def _message(embed: Dict[str, Any], content: Optional[str] = None) -> Dict[str, Any]:
    message: Dict[str, Any] = {"embeds": [embed]}
    if content:
        message["content"] = _truncate(content, CONTENT_LIMIT)
    return message


def tracking_url(order_number: str) -> str:
    return f"{settings.BASE_URL.rstrip('/')}/track/{order_number}"


def login_message(user, ip: Optional[str] = None, user_agent: Optional[str] = None) -> Dict[str, Any]:
    embed = _embed(
        title=f"🌙 New Login - {settings.MERCHANT_NAME}",
        color=COLOR_LOGIN,
        thumbnail=_avatar(user.discord_id, user.avatar),
        fields=[
            _field("User", f"<@{user.discord_id}>"),
            _field("Username", user.username),
            _field("Discord ID", user.discord_id),
            _field("IP Address", ip or "Unknown"),
            _field("Time", _local_time()),
            _field("User Agent", user_agent or "Web Browser"),
        ],
        footer=f"{settings.MERCHANT_NAME} • Login Log",
    )
    return _message(embed)


def _items_list(items) -> str:
    lines = [
        f"• **{item.product_name}** - {_money(item.unit_price)} x{item.quantity}"
        for item in items
    ]
    return "\n".join(lines) or "No items"


def order_message(order) -> Dict[str, Any]:
    user = order.user
    embed = _embed(
        title="📦 New Order Placed",
        color=COLOR_ORDER,
        thumbnail=_avatar(user.discord_id, user.avatar),
        fields=[
            _field("Order Number", order.order_number),
            _field("Customer", f"<@{user.discord_id}>"),
            _field("Full Name", order.full_name),
            _field("Phone", order.phone),
            _field("Amount", _money(order.total_amount)),
            _field("Payment Method", (order.payment_method.value if order.payment_method else "").upper()),
            _field("Address", f"{order.address}, {order.pincode}", inline=False),
            _field("Items", _items_list(order.items), inline=False),
            _field("Track Order", f"[Click Here]({tracking_url(order.order_number)})"),
        ],
        footer=f"Order ID: {order.id} • {_local_time()}",
    )
    return _message(embed, content=f"🆕 **New Order from {order.full_name}**")


def payment_message(order) -> Dict[str, Any]:
    payment = order.payment
    status = payment.payment_status.value
    color, title = PAYMENT_STYLES.get(status, DEFAULT_PAYMENT_STYLE)
    user = order.user
    fields: List[Dict[str, Any]] = [
        _field("Order Number", order.order_number),
        _field("Customer", f"<@{user.discord_id}>"),
        _field("Amount", _money(payment.amount)),
        _field("Payment Method", payment.payment_method.value.upper()),
        _field("Status", status),
        _field("Transaction ID", payment.transaction_id),
        _field("Payment Time", _local_time(payment.verified_at or payment.created_at)),
    ]
    if payment.utr_number:
        fields.append(_field("UTR Number", payment.utr_number))
    if payment.proof_path:
        fields.append(_field("Proof", "Uploaded (see admin panel)"))
    if payment.failure_reason:
        fields.append(_field("Reason", payment.failure_reason, inline=False))

    embed = _embed(
        title=title,
        color=color,
        thumbnail=_avatar(user.discord_id, user.avatar),
        fields=fields,
        footer=f"{settings.MERCHANT_NAME} • Payment Log",
    )
    return _message(embed)


def delivery_message(order, reason: Optional[str] = None) -> Dict[str, Any]:
    status = order.delivery_status.value
    color, title, emoji = DELIVERY_STYLES.get(status, DEFAULT_DELIVERY_STYLE)
    user = order.user
    fields: List[Dict[str, Any]] = [
        _field("Order Number", order.order_number),
        _field("Customer", f"<@{user.discord_id}>"),
        _field("Full Name", order.full_name),
        _field("Phone", order.phone),
        _field("Delivery Status", status),
        _field("Address", f"{order.address}, {order.pincode}", inline=False),
    ]
    if order.tracking_id:
        fields.append(_field("Tracking ID", order.tracking_id))
    if order.courier_name:
        fields.append(_field("Courier", order.courier_name))
    if order.estimated_delivery_date:
        fields.append(_field("Estimated Delivery", order.estimated_delivery_date.strftime("%d/%m/%Y")))
    if order.delivered_at:
        fields.append(_field("Delivered At", _local_time(order.delivered_at)))
    if reason:
        fields.append(_field("Reason", reason, inline=False))

    embed = _embed(
        title=f"{emoji} {title}",
        color=color,
        thumbnail=_avatar(user.discord_id, user.avatar),
        fields=fields,
        footer=f"Updated: {_local_time()}",
    )
    return _message(embed, content=f"{emoji} **Delivery Update for Order {order.order_number}**")


def admin_message(admin, action: str, details: str, target_user=None) -> Dict[str, Any]:
    fields = [
        _field("Admin", f"<@{admin.discord_id}>"),
        _field("Action", action),
        _field("Time", _local_time()),
        _field("Details", details, inline=False),
    ]
    if target_user is not None:
        fields.append(_field("Target User", f"<@{target_user.discord_id}> ({target_user.username})"))

    embed = _embed(
        title="🔧 Admin Action",
        color=COLOR_FAILURE,
        thumbnail=_avatar(admin.discord_id, admin.avatar),
        fields=fields,
        footer=f"{settings.MERCHANT_NAME} • Admin Log",
    )
    return _message(embed)


def address_confirmation_message(order) -> Dict[str, Any]:
    embed = _embed(
        title="📍 Address Confirmed",
        color=COLOR_ORDER,
        fields=[
            _field("Order", order.order_number),
            _field("Customer", f"<@{order.user.discord_id}>"),
            _field("Full Name", order.full_name),
            _field("Phone", order.phone),
            _field("Address", order.address, inline=False),
            _field("Pincode", order.pincode),
            _field("Verified At", _local_time()),
        ],
        footer="Address verification completed",
    )
    return _message(embed)
