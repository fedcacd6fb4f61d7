from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from storefront.core.security import create_access_token
from storefront.models.category import Category
from storefront.models.delivery_log import DeliveryLog
from storefront.models.order import DeliveryStatus, Order, OrderItem
from storefront.models.payment import Payment, PaymentMethod, PaymentStatus
from storefront.models.product import Product
from storefront.models.user import User
from storefront.services import notifications, order_service

ADMIN_DISCORD_ID = "900000000000000001"


def _create_user(db: Session, discord_id: str, username: str) -> User:
    user = User(discord_id=discord_id, username=username)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _login(client: TestClient, user: User) -> None:
    client.cookies.set("access_token", create_access_token({"sub": str(user.id)}))


def _create_order(db: Session, user: User, method: PaymentMethod, phone_verified: bool = None,
                  payment_status: PaymentStatus = PaymentStatus.PENDING,
                  delivery_status: DeliveryStatus = DeliveryStatus.PENDING) -> Order:
    category = db.query(Category).first()
    if not category:
        category = Category(name="Dress", slug="dress")
        db.add(category)
        db.flush()
    product = Product(
        category_id=category.id,
        name="Firefly Evening Gown",
        slug=f"firefly-evening-gown-{db.query(Product).count()}",
        price=349.99,
    )
    db.add(product)
    db.flush()

    if phone_verified is None:
        phone_verified = method == PaymentMethod.COD
    order = Order(
        order_number=order_service.generate_order_number(db),
        user_id=user.id,
        full_name="Asha Rao",
        phone="9876543210",
        address="12 Lantern Street, Pune",
        pincode="411001",
        phone_verified=phone_verified,
        subtotal=349.99,
        total_amount=349.99,
        delivery_status=delivery_status,
    )
    order.items.append(
        OrderItem(product_id=product.id, product_name=product.name, quantity=1,
                  unit_price=349.99, total_price=349.99)
    )
    order.payment = Payment(payment_method=method, payment_status=payment_status, amount=349.99)
    order.delivery_logs.append(DeliveryLog(old_status=None, new_status="pending", notes="Order placed"))
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


@pytest.fixture()
def admin(client: TestClient, db_session: Session) -> User:
    admin_user = _create_user(db_session, ADMIN_DISCORD_ID, "owner")
    _login(client, admin_user)
    return admin_user


@pytest.fixture()
def customer(db_session: Session) -> User:
    return _create_user(db_session, "123456789012345678", "moonfan")


@pytest.fixture()
def role_grants(monkeypatch) -> list:
    granted = []
    monkeypatch.setattr(notifications, "grant_customer_role_for", lambda user: granted.append(user.discord_id))
    return granted


def _advance(client: TestClient, order: Order, status: str, **extra):
    return client.put(f"/api/v1/admin/orders/{order.id}/delivery", json={"status": status, **extra})


@pytest.mark.parametrize(
    "current,target,allowed",
    [
        (DeliveryStatus.PENDING, DeliveryStatus.SHIPPED, True),
        (DeliveryStatus.PENDING, DeliveryStatus.DELIVERED, False),
        (DeliveryStatus.SHIPPED, DeliveryStatus.OUT_FOR_DELIVERY, True),
        (DeliveryStatus.SHIPPED, DeliveryStatus.FAILED, True),
        (DeliveryStatus.OUT_FOR_DELIVERY, DeliveryStatus.DELIVERED, True),
        (DeliveryStatus.DELIVERED, DeliveryStatus.PENDING, False),
        (DeliveryStatus.FAILED, DeliveryStatus.SHIPPED, False),
    ],
)
def test_delivery_transition_table(current, target, allowed):
    assert order_service.can_transition_delivery(current, target) is allowed


def test_payment_transitions_are_terminal():
    assert order_service.can_transition_payment(PaymentStatus.PENDING, PaymentStatus.COMPLETED)
    assert order_service.can_transition_payment(PaymentStatus.PENDING, PaymentStatus.FAILED)
    assert not order_service.can_transition_payment(PaymentStatus.COMPLETED, PaymentStatus.FAILED)
    assert not order_service.can_transition_payment(PaymentStatus.FAILED, PaymentStatus.COMPLETED)


def test_manual_order_cannot_ship_before_payment(client: TestClient, db_session: Session, admin, customer):
    order = _create_order(db_session, customer, PaymentMethod.MANUAL)

    response = _advance(client, order, "shipped")

    assert response.status_code == 409
    assert response.json()["message"] == "Payment must be verified before shipping"
    db_session.refresh(order)
    assert order.delivery_status == DeliveryStatus.PENDING


def test_manual_payment_approval_then_shipping(client: TestClient, db_session: Session, admin, customer):
    order = _create_order(db_session, customer, PaymentMethod.MANUAL)

    approved = client.post(
        f"/api/v1/admin/orders/{order.id}/payment",
        json={"action": "approve", "transaction_id": "UPI-778899"},
    )
    assert approved.status_code == 200
    assert approved.json()["message"] == "Payment approved"
    assert approved.json()["data"]["payment"]["payment_status"] == "completed"

    payment = db_session.query(Payment).filter(Payment.order_id == order.id).one()
    assert payment.verified_by == admin.id
    assert payment.verified_at is not None
    assert payment.transaction_id == "UPI-778899"

    shipped = _advance(client, order, "shipped", tracking_id="TRK123", courier_name="BlueDart")
    assert shipped.status_code == 200
    assert shipped.json()["data"]["tracking_id"] == "TRK123"
    assert shipped.json()["data"]["courier_name"] == "BlueDart"


def test_rejected_payment_is_final(client: TestClient, db_session: Session, admin, customer):
    order = _create_order(db_session, customer, PaymentMethod.MANUAL)

    rejected = client.post(
        f"/api/v1/admin/orders/{order.id}/payment",
        json={"action": "reject", "reason": "Screenshot unreadable"},
    )
    assert rejected.status_code == 200
    assert rejected.json()["data"]["payment"]["failure_reason"] == "Screenshot unreadable"

    again = client.post(f"/api/v1/admin/orders/{order.id}/payment", json={"action": "approve"})
    assert again.status_code == 409
    assert again.json()["message"] == "Cannot change payment status from failed to completed"


def test_cod_payment_cannot_be_verified_manually(client: TestClient, db_session: Session, admin, customer):
    order = _create_order(db_session, customer, PaymentMethod.COD)

    response = client.post(f"/api/v1/admin/orders/{order.id}/payment", json={"action": "approve"})

    assert response.status_code == 409
    assert response.json()["message"] == "COD payments are settled on delivery"


def test_cod_requires_verified_phone_to_ship(client: TestClient, db_session: Session, admin, customer):
    order = _create_order(db_session, customer, PaymentMethod.COD, phone_verified=False)

    response = _advance(client, order, "shipped")

    assert response.status_code == 409
    assert response.json()["message"] == "Phone number must be verified before shipping a COD order"


def test_cod_delivery_completes_payment(client: TestClient, db_session: Session, admin, customer):
    order = _create_order(db_session, customer, PaymentMethod.COD)

    for status in ("shipped", "out_for_delivery", "delivered"):
        response = _advance(client, order, status)
        assert response.status_code == 200, response.json()

    db_session.refresh(order)
    assert order.delivery_status == DeliveryStatus.DELIVERED
    assert order.delivered_at is not None
    assert order.payment.payment_status == PaymentStatus.COMPLETED
    assert order.payment.verified_by == admin.id

    history = [(log.old_status, log.new_status) for log in order.delivery_logs]
    assert history == [
        (None, "pending"),
        ("pending", "shipped"),
        ("shipped", "out_for_delivery"),
        ("out_for_delivery", "delivered"),
    ]
    assert all(log.changed_by == admin.id for log in order.delivery_logs[1:])


def test_cod_failed_delivery_fails_payment(client: TestClient, db_session: Session, admin, customer):
    order = _create_order(db_session, customer, PaymentMethod.COD)
    _advance(client, order, "shipped")

    response = _advance(client, order, "failed", notes="Customer unreachable")

    assert response.status_code == 200
    db_session.refresh(order)
    assert order.payment.payment_status == PaymentStatus.FAILED
    assert order.payment.failure_reason == "Customer unreachable"


def test_invalid_delivery_transition_rejected(client: TestClient, db_session: Session, admin, customer):
    order = _create_order(db_session, customer, PaymentMethod.COD)

    response = _advance(client, order, "delivered")

    assert response.status_code == 409
    assert response.json()["message"] == "Cannot change delivery status from pending to delivered"
    assert db_session.query(DeliveryLog).filter(DeliveryLog.order_id == order.id).count() == 1


def test_customer_tracking_shows_history(client: TestClient, db_session: Session, admin, customer):
    order = _create_order(db_session, customer, PaymentMethod.COD)
    _advance(client, order, "shipped", tracking_id="TRK9", courier_name="Delhivery")

    _login(client, customer)
    response = client.get(f"/api/v1/orders/{order.order_number}/tracking")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["delivery_status"] == "shipped"
    assert data["payment_method"] == "cod"
    assert data["tracking_id"] == "TRK9"
    assert [entry["new_status"] for entry in data["history"]] == ["pending", "shipped"]
    assert data["history"][1]["changer_name"] == "owner"
    assert data["history"][0]["changer_name"] is None


def test_tracking_hidden_from_other_customers(client: TestClient, db_session: Session, customer):
    order = _create_order(db_session, customer, PaymentMethod.COD)
    stranger = _create_user(db_session, "555555555555555555", "stranger")
    _login(client, stranger)

    tracking = client.get(f"/api/v1/orders/{order.order_number}/tracking")
    detail = client.get(f"/api/v1/orders/{order.order_number}")

    assert tracking.status_code == 404
    assert detail.status_code == 404


def test_customer_order_list(client: TestClient, db_session: Session, customer):
    _create_order(db_session, customer, PaymentMethod.COD)
    _create_order(db_session, customer, PaymentMethod.MANUAL)
    _login(client, customer)

    response = client.get("/api/v1/orders")

    assert response.status_code == 200
    assert response.json()["meta"]["total"] == 2
    methods = {order["payment"]["payment_method"] for order in response.json()["data"]}
    assert methods == {"cod", "manual"}


def test_order_numbers_have_expected_shape(db_session: Session):
    number = order_service.generate_order_number(db_session)

    assert number.startswith("MP" + datetime.utcnow().strftime("%Y%m%d"))
    assert len(number) == 18


def test_approved_payment_grants_customer_role(client: TestClient, db_session: Session, admin, customer,
                                               role_grants):
    order = _create_order(db_session, customer, PaymentMethod.MANUAL)

    response = client.post(f"/api/v1/admin/orders/{order.id}/payment", json={"action": "approve"})

    assert response.status_code == 200
    assert role_grants == [customer.discord_id]


def test_rejected_payment_grants_no_role(client: TestClient, db_session: Session, admin, customer, role_grants):
    order = _create_order(db_session, customer, PaymentMethod.MANUAL)

    response = client.post(
        f"/api/v1/admin/orders/{order.id}/payment",
        json={"action": "reject", "reason": "Amount mismatch"},
    )

    assert response.status_code == 200
    assert role_grants == []


def test_cod_delivery_grants_customer_role_once(client: TestClient, db_session: Session, admin, customer,
                                                role_grants):
    order = _create_order(db_session, customer, PaymentMethod.COD)

    for status in ("shipped", "out_for_delivery"):
        _advance(client, order, status)
        assert role_grants == []

    response = _advance(client, order, "delivered")

    assert response.status_code == 200
    assert role_grants == [customer.discord_id]


def test_cod_failed_delivery_grants_no_role(client: TestClient, db_session: Session, admin, customer, role_grants):
    order = _create_order(db_session, customer, PaymentMethod.COD)
    _advance(client, order, "shipped")

    response = _advance(client, order, "failed", notes="Address not found")

    assert response.status_code == 200
    assert role_grants == []
