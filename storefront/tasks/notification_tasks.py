from typing import Any, Dict

from celery import Task
from celery.utils.log import get_task_logger

from storefront.core.celery_app import celery_app
from storefront.core.config import settings
from storefront.services.discord_client import DiscordBotClient, resolve_channel_id

logger = get_task_logger(__name__)


# -------------------------------
# Base Task (Retry-safe)
# -------------------------------
class DiscordTask(Task):
    """
    Base Discord task with retries and backoff.
    Keeps audit messages from being lost on temporary API failures.
    """
    autoretry_for = (Exception,)
    retry_kwargs = {"max_retries": 3}
    retry_backoff = True
    retry_backoff_max = 600  # 10 minutes
    retry_jitter = True
    acks_late = True  # retry if worker crashes


# -------------------------------
# Channel Messages
# -------------------------------
@celery_app.task(base=DiscordTask, bind=True)
def post_channel_message(self, channel: str, message: Dict[str, Any]):
    client = DiscordBotClient()
    channel_id = resolve_channel_id(channel)

    if not client.configured or not channel_id:
        logger.info("Discord %s notification skipped: bot or channel not configured", channel)
        return {"sent": False, "channel": channel}

    message_id = client.send_message(channel_id, message)
    logger.info("Discord %s notification sent (message %s)", channel, message_id)
    return {"sent": True, "channel": channel, "message_id": message_id}


# -------------------------------
# Customer Role
# -------------------------------
@celery_app.task(base=DiscordTask, bind=True)
def grant_customer_role(self, discord_user_id: str):
    client = DiscordBotClient()

    if not client.configured or not settings.DISCORD_GUILD_ID or not settings.AUTO_ROLE_ID:
        logger.info("Customer role grant skipped for %s: guild or role not configured", discord_user_id)
        return {"granted": False}

    client.add_member_role(settings.DISCORD_GUILD_ID, discord_user_id, settings.AUTO_ROLE_ID)
    logger.info("Customer role granted to %s", discord_user_id)
    return {"granted": True}
