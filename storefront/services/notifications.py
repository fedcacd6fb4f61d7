"""Fan-out of storefront events to the audit log and Discord channels.

Each event is written to its structlog audit channel first. The Discord
payload is built here, while the ORM objects are still attached to the
session, and handed to Celery so workers never need the database.

Customer-driven events are mirrored to the admin channel. Changes made by
an admin are not, since ``notify_admin_action`` already reports them there.
"""
from typing import Optional

import structlog

from storefront.core.logging_config import get_audit_logger
from storefront.services import discord_embeds
from storefront.tasks.notification_tasks import grant_customer_role, post_channel_message

logger = structlog.get_logger()


def _dispatch(channel: str, message: dict, mirror_to_admin: bool = True) -> None:
    channels = [channel]
    if mirror_to_admin and channel != "admin":
        channels.append("admin")

    for target in channels:
        try:
            post_channel_message.delay(target, message)
        except Exception as exc:
            logger.error("discord_notification_queue_failed", channel=target, error=str(exc))


def notify_login(user, ip: Optional[str] = None, user_agent: Optional[str] = None) -> None:
    get_audit_logger("login").info(
        "user_login",
        user_id=user.id,
        discord_id=user.discord_id,
        username=user.username,
        ip=ip,
        user_agent=user_agent,
    )
    _dispatch("login", discord_embeds.login_message(user, ip=ip, user_agent=user_agent), mirror_to_admin=False)


def notify_order_created(order) -> None:
    get_audit_logger("orders").info(
        "order_created",
        order_id=order.id,
        order_number=order.order_number,
        user_id=order.user_id,
        amount=order.total_amount,
        payment_method=order.payment_method.value if order.payment_method else None,
        items=len(order.items),
    )
    _dispatch("orders", discord_embeds.order_message(order))
    _dispatch("deliveries", discord_embeds.address_confirmation_message(order), mirror_to_admin=False)


def notify_payment_changed(order, actor_id: Optional[int] = None) -> None:
    payment = order.payment
    get_audit_logger("payments").info(
        "payment_status_changed",
        order_id=order.id,
        order_number=order.order_number,
        payment_method=payment.payment_method.value,
        payment_status=payment.payment_status.value,
        transaction_id=payment.transaction_id,
        reason=payment.failure_reason,
        actor_id=actor_id,
    )
    _dispatch("payments", discord_embeds.payment_message(order), mirror_to_admin=actor_id is None)


def notify_delivery_changed(order, old_status: Optional[str], actor_id: Optional[int] = None,
                            reason: Optional[str] = None) -> None:
    get_audit_logger("deliveries").info(
        "delivery_status_changed",
        order_id=order.id,
        order_number=order.order_number,
        old_status=old_status,
        new_status=order.delivery_status.value,
        tracking_id=order.tracking_id,
        courier_name=order.courier_name,
        actor_id=actor_id,
    )
    message = discord_embeds.delivery_message(order, reason=reason)
    _dispatch("deliveries", message, mirror_to_admin=actor_id is None)


def notify_admin_action(admin, action: str, details: str, target_user=None) -> None:
    get_audit_logger("admin").info(
        "admin_action",
        admin_id=admin.id,
        discord_id=admin.discord_id,
        action=action,
        details=details,
        target_user_id=target_user.id if target_user is not None else None,
    )
    _dispatch("admin", discord_embeds.admin_message(admin, action, details, target_user=target_user))


def grant_customer_role_for(user) -> None:
    try:
        grant_customer_role.delay(user.discord_id)
    except Exception as exc:
        logger.error("discord_role_queue_failed", user_id=user.id, error=str(exc))
