from datetime import datetime

import httpx
import pytest

from storefront.core.config import settings
from storefront.models.order import DeliveryStatus, Order, OrderItem
from storefront.models.payment import Payment, PaymentMethod, PaymentStatus
from storefront.models.user import User
from storefront.services import discord_client, discord_embeds, notifications
from storefront.tasks import notification_tasks


def _order(delivery_status: DeliveryStatus = DeliveryStatus.PENDING,
           payment_status: PaymentStatus = PaymentStatus.PENDING) -> Order:
    user = User(id=7, discord_id="123456789012345678", username="moonfan", avatar="abc123")
    order = Order(
        id=42,
        order_number="MP20260101ABCDEFGH",
        user_id=7,
        full_name="Asha Rao",
        phone="9876543210",
        address="12 Lantern Street, Pune",
        pincode="411001",
        subtotal=899.98,
        total_amount=899.98,
        delivery_status=delivery_status,
    )
    order.user = user
    order.items.append(
        OrderItem(product_id=1, product_name="Starlight Promise Dress", quantity=2,
                  unit_price=449.99, total_price=899.98)
    )
    order.payment = Payment(
        payment_method=PaymentMethod.MANUAL,
        payment_status=payment_status,
        amount=899.98,
        currency="INR",
        utr_number="123456789012",
        created_at=datetime(2026, 1, 1, 10, 0, 0),
    )
    return order


def _fields(message: dict) -> dict:
    return {field["name"]: field["value"] for field in message["embeds"][0]["fields"]}


def test_truncate_limits_field_values():
    assert discord_embeds._truncate(None) == "N/A"
    assert discord_embeds._truncate("") == "N/A"
    long_value = discord_embeds._truncate("x" * 2000)
    assert len(long_value) == 1024
    assert long_value.endswith("…")


def test_order_message_lists_items_and_tracking_link():
    message = discord_embeds.order_message(_order())

    assert message["content"] == "🆕 **New Order from Asha Rao**"
    embed = message["embeds"][0]
    assert embed["color"] == discord_embeds.COLOR_ORDER
    assert embed["thumbnail"]["url"].endswith("/123456789012345678/abc123.png")
    fields = _fields(message)
    assert fields["Order Number"] == "MP20260101ABCDEFGH"
    assert fields["Payment Method"] == "MANUAL"
    assert "**Starlight Promise Dress**" in fields["Items"]
    assert "x2" in fields["Items"]
    assert fields["Track Order"].endswith(f"{settings.BASE_URL}/track/MP20260101ABCDEFGH)")


@pytest.mark.parametrize(
    "status,color",
    [
        (PaymentStatus.PENDING, discord_embeds.COLOR_PENDING),
        (PaymentStatus.COMPLETED, discord_embeds.COLOR_SUCCESS),
        (PaymentStatus.FAILED, discord_embeds.COLOR_FAILURE),
    ],
)
def test_payment_message_colour_follows_status(status, color):
    message = discord_embeds.payment_message(_order(payment_status=status))

    assert message["embeds"][0]["color"] == color
    assert _fields(message)["UTR Number"] == "123456789012"
    assert _fields(message)["Transaction ID"] == "N/A"


def test_delivery_message_includes_reason_for_failures():
    order = _order(delivery_status=DeliveryStatus.FAILED)
    order.tracking_id = "TRK1"

    message = discord_embeds.delivery_message(order, reason="Customer unreachable")

    assert message["embeds"][0]["title"] == "⚠️ Delivery Failed"
    assert message["content"] == "⚠️ **Delivery Update for Order MP20260101ABCDEFGH**"
    fields = _fields(message)
    assert fields["Reason"] == "Customer unreachable"
    assert fields["Tracking ID"] == "TRK1"


def test_admin_message_names_target_user():
    admin = User(id=1, discord_id="900000000000000001", username="owner")
    target = User(id=2, discord_id="123456789012345678", username="moonfan")

    message = discord_embeds.admin_message(admin, "Payment approved", "Order MP1", target_user=target)

    fields = _fields(message)
    assert fields["Admin"] == "<@900000000000000001>"
    assert fields["Target User"] == "<@123456789012345678> (moonfan)"
    assert "thumbnail" not in message["embeds"][0]


def test_resolve_channel_id(monkeypatch):
    monkeypatch.setattr(settings, "ORDER_LOG_CHANNEL", "111")
    monkeypatch.setattr(settings, "PAYMENT_LOG_CHANNEL", "")

    assert discord_client.resolve_channel_id("orders") == "111"
    assert discord_client.resolve_channel_id("payments") is None
    with pytest.raises(ValueError):
        discord_client.resolve_channel_id("secrets")


def test_post_channel_message_skips_without_bot_token():
    result = notification_tasks.post_channel_message.apply(args=("orders", {"content": "hi"})).get()

    assert result == {"sent": False, "channel": "orders"}


def test_post_channel_message_sends_when_configured(monkeypatch):
    sent = []

    class FakeClient:
        configured = True

        def send_message(self, channel_id, message):
            sent.append((channel_id, message))
            return "msg-1"

    monkeypatch.setattr(notification_tasks, "DiscordBotClient", FakeClient)
    monkeypatch.setattr(settings, "ORDER_LOG_CHANNEL", "555")

    result = notification_tasks.post_channel_message.apply(args=("orders", {"content": "hi"})).get()

    assert result == {"sent": True, "channel": "orders", "message_id": "msg-1"}
    assert sent == [("555", {"content": "hi"})]


def test_grant_customer_role_skips_without_guild():
    result = notification_tasks.grant_customer_role.apply(args=("123456789012345678",)).get()

    assert result == {"granted": False}


def test_bot_client_posts_to_channel_endpoint(monkeypatch):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"id": "987"})

    real_client = httpx.Client
    monkeypatch.setattr(
        discord_client.httpx,
        "Client",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )

    client = discord_client.DiscordBotClient(token="bot-token", api_base="https://discord.test/api")
    message_id = client.send_message("555", {"content": "hello"})

    assert message_id == "987"
    assert requests[0].url.path == "/api/channels/555/messages"
    assert requests[0].headers["Authorization"] == "Bot bot-token"


def test_bot_client_raises_on_api_errors(monkeypatch):
    real_client = httpx.Client
    monkeypatch.setattr(
        discord_client.httpx,
        "Client",
        lambda **kwargs: real_client(
            transport=httpx.MockTransport(lambda request: httpx.Response(403, text="Missing Access")),
            **kwargs,
        ),
    )

    client = discord_client.DiscordBotClient(token="bot-token", api_base="https://discord.test/api")

    with pytest.raises(discord_client.DiscordAPIError) as exc_info:
        client.add_member_role("1", "2", "3")
    assert exc_info.value.status_code == 403


def test_events_are_mirrored_to_admin_channel(monkeypatch):
    queued = []

    class FakeTask:
        @staticmethod
        def delay(channel, message):
            queued.append(channel)

    monkeypatch.setattr(notifications, "post_channel_message", FakeTask)

    notifications.notify_order_created(_order())
    notifications.notify_login(_order().user, ip="1.2.3.4")

    assert queued == ["orders", "admin", "deliveries", "login"]


def test_queue_failures_do_not_propagate(monkeypatch):
    class BrokenTask:
        @staticmethod
        def delay(channel, message):
            raise ConnectionError("broker down")

    monkeypatch.setattr(notifications, "post_channel_message", BrokenTask)

    notifications.notify_payment_changed(_order())


def test_grant_customer_role_adds_role_when_configured(monkeypatch):
    granted = []

    class FakeClient:
        configured = True

        def add_member_role(self, guild_id, user_id, role_id):
            granted.append((guild_id, user_id, role_id))

    monkeypatch.setattr(notification_tasks, "DiscordBotClient", FakeClient)
    monkeypatch.setattr(settings, "DISCORD_GUILD_ID", "111")
    monkeypatch.setattr(settings, "AUTO_ROLE_ID", "222")

    result = notification_tasks.grant_customer_role.apply(args=("123456789012345678",)).get()

    assert result == {"granted": True}
    assert granted == [("111", "123456789012345678", "222")]


def test_bot_client_adds_member_role(monkeypatch):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(204)

    real_client = httpx.Client
    monkeypatch.setattr(
        discord_client.httpx,
        "Client",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )

    client = discord_client.DiscordBotClient(token="bot-token", api_base="https://discord.test/api")
    client.add_member_role("1", "2", "3")

    assert len(requests) == 1
    assert requests[0].method == "PUT"
    assert requests[0].url.path == "/api/guilds/1/members/2/roles/3"


def test_admin_changes_are_not_mirrored_twice(monkeypatch):
    queued = []

    class FakeTask:
        @staticmethod
        def delay(channel, message):
            queued.append(channel)

    monkeypatch.setattr(notifications, "post_channel_message", FakeTask)

    notifications.notify_payment_changed(_order())
    assert queued == ["payments", "admin"]

    queued.clear()
    notifications.notify_payment_changed(_order(), actor_id=1)
    notifications.notify_delivery_changed(_order(DeliveryStatus.CONFIRMED), "pending", actor_id=1)
    assert queued == ["payments", "deliveries"]
