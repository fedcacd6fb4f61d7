import random
import string
from datetime import datetime
from typing import Dict, Optional, Set

import structlog
from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.core.exceptions import EmptyCart, InvalidStatusTransition, OrderNotFound
from storefront.models.cart import CartItem
from storefront.models.delivery_log import DeliveryLog
from storefront.models.order import DeliveryStatus, Order, OrderItem
from storefront.models.payment import Payment, PaymentMethod, PaymentStatus
from storefront.models.user import User
from storefront.schemas.order import ShippingDetails
from storefront.schemas.order_tracking import DeliveryStatusUpdate, PaymentDecision
from storefront.services import notifications
from storefront.services.otp_service import OTPService
from storefront.services.payment_service import build_upi_link, ensure_utr_unused

logger = structlog.get_logger()

ORDER_NUMBER_PREFIX = "MP"
ORDER_NUMBER_ATTEMPTS = 10

PAYMENT_TRANSITIONS: Dict[PaymentStatus, Set[PaymentStatus]] = {
    PaymentStatus.PENDING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED},
    PaymentStatus.COMPLETED: set(),
    PaymentStatus.FAILED: set(),
}

DELIVERY_TRANSITIONS: Dict[DeliveryStatus, Set[DeliveryStatus]] = {
    DeliveryStatus.PENDING: {DeliveryStatus.SHIPPED},
    DeliveryStatus.SHIPPED: {DeliveryStatus.OUT_FOR_DELIVERY, DeliveryStatus.FAILED},
    DeliveryStatus.OUT_FOR_DELIVERY: {DeliveryStatus.DELIVERED, DeliveryStatus.FAILED},
    DeliveryStatus.DELIVERED: set(),
    DeliveryStatus.FAILED: set(),
}


def can_transition_payment(current: PaymentStatus, target: PaymentStatus) -> bool:
    return target in PAYMENT_TRANSITIONS.get(current, set())


def can_transition_delivery(current: DeliveryStatus, target: DeliveryStatus) -> bool:
    return target in DELIVERY_TRANSITIONS.get(current, set())


def generate_order_number(db: Session) -> str:
    """Generate a unique order number with bounded retries."""
    for _ in range(ORDER_NUMBER_ATTEMPTS):
        timestamp = datetime.utcnow().strftime("%Y%m%d")
        random_part = "".join(
            random.choices(string.ascii_uppercase + string.digits, k=8)
        )
        order_number = f"{ORDER_NUMBER_PREFIX}{timestamp}{random_part}"

        existing = db.query(Order.id).filter(Order.order_number == order_number).first()
        if not existing:
            return order_number

    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Failed to generate order number",
    )


def get_order_or_404(db: Session, order_id: int) -> Order:
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise OrderNotFound()
    return order


def place_order(
    db: Session,
    user: User,
    details: ShippingDetails,
    payment_method: PaymentMethod,
    proof_path: Optional[str] = None,
    utr_number: Optional[str] = None,
) -> Order:
    """
    Turn the user's cart into one order in a single transaction.

    COD orders consume the phone's verified OTP; manual orders carry the
    stored payment proof and optional UTR. The cart is emptied and the
    customer's shipping profile updated on success.
    """
    cart_items = (
        db.query(CartItem)
        .filter(CartItem.user_id == user.id)
        .order_by(CartItem.id)
        .all()
    )
    if not cart_items:
        raise EmptyCart()

    for item in cart_items:
        if not item.product or not item.product.is_active:
            name = item.product.name if item.product else f"#{item.product_id}"
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Product {name} is no longer available",
            )

    phone_verified = False
    if payment_method == PaymentMethod.COD:
        OTPService.consume_verified_phone(db, details.phone)
        phone_verified = True
    else:
        ensure_utr_unused(db, utr_number)

    subtotal = round(sum(item.product.price * item.quantity for item in cart_items), 2)
    order_number = generate_order_number(db)

    order = Order(
        order_number=order_number,
        user_id=user.id,
        full_name=details.full_name,
        phone=details.phone,
        address=details.address,
        pincode=details.pincode,
        customer_notes=details.customer_notes,
        phone_verified=phone_verified,
        subtotal=subtotal,
        total_amount=subtotal,
        delivery_status=DeliveryStatus.PENDING,
    )
    for item in cart_items:
        order.items.append(
            OrderItem(
                product_id=item.product_id,
                product_name=item.product.name,
                quantity=item.quantity,
                unit_price=item.product.price,
                total_price=round(item.product.price * item.quantity, 2),
            )
        )

    order.payment = Payment(
        payment_method=payment_method,
        payment_status=PaymentStatus.PENDING,
        amount=subtotal,
        currency="INR",
        proof_path=proof_path,
        utr_number=utr_number,
        upi_link=(
            build_upi_link(subtotal, f"Order {order_number}")
            if payment_method == PaymentMethod.MANUAL
            else None
        ),
    )
    order.delivery_logs.append(
        DeliveryLog(
            old_status=None,
            new_status=DeliveryStatus.PENDING.value,
            notes="Order placed",
        )
    )

    user.full_name = details.full_name
    user.phone = details.phone
    user.address = details.address
    user.pincode = details.pincode

    db.add(order)
    for item in cart_items:
        db.delete(item)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning("order_create_conflict", user_id=user.id, order_number=order_number)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Order could not be placed. Please try again.",
        )
    db.refresh(order)

    logger.info(
        "order_created",
        order_id=order.id,
        order_number=order.order_number,
        user_id=user.id,
        payment_method=payment_method.value,
        amount=order.total_amount,
    )

    notifications.notify_order_created(order)
    if payment_method == PaymentMethod.MANUAL:
        notifications.notify_payment_changed(order)
    return order


def _settle_payment(payment: Payment, target: PaymentStatus, actor: Optional[User],
                    transaction_id: Optional[str] = None, reason: Optional[str] = None) -> None:
    if not can_transition_payment(payment.payment_status, target):
        raise InvalidStatusTransition("payment", payment.payment_status.value, target.value)

    payment.payment_status = target
    if target == PaymentStatus.COMPLETED:
        payment.verified_by = actor.id if actor else None
        payment.verified_at = datetime.utcnow()
        if transaction_id:
            payment.transaction_id = transaction_id
    else:
        payment.failure_reason = reason or "Payment rejected"


def verify_payment(db: Session, order_id: int, decision: PaymentDecision, admin: User) -> Order:
    """Approve or reject a manual payment."""
    order = get_order_or_404(db, order_id)
    payment = order.payment
    if not payment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")

    if payment.payment_method != PaymentMethod.MANUAL:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="COD payments are settled on delivery",
        )

    target = PaymentStatus.COMPLETED if decision.action == "approve" else PaymentStatus.FAILED
    _settle_payment(
        payment,
        target,
        admin,
        transaction_id=decision.transaction_id,
        reason=decision.reason,
    )
    db.commit()
    db.refresh(order)

    logger.info(
        "payment_verified",
        order_id=order.id,
        payment_status=target.value,
        admin_user_id=admin.id,
    )

    notifications.notify_payment_changed(order, actor_id=admin.id)
    if target == PaymentStatus.COMPLETED:
        notifications.grant_customer_role_for(order.user)
    notifications.notify_admin_action(
        admin,
        "Payment approved" if target == PaymentStatus.COMPLETED else "Payment rejected",
        f"Order {order.order_number}: {target.value}",
        target_user=order.user,
    )
    return order


def _ensure_can_ship(order: Order) -> None:
    payment = order.payment
    if order.payment_method == PaymentMethod.MANUAL:
        if payment.payment_status != PaymentStatus.COMPLETED:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Payment must be verified before shipping",
            )
    else:
        if not order.phone_verified:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Phone number must be verified before shipping a COD order",
            )
        if payment.payment_status == PaymentStatus.FAILED:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Cannot ship an order whose payment has failed",
            )


def update_delivery_status(db: Session, order_id: int, update: DeliveryStatusUpdate, admin: User) -> Order:
    """Advance the delivery state machine and settle COD payments on the final step."""
    order = get_order_or_404(db, order_id)
    current = order.delivery_status
    target = update.status

    if not can_transition_delivery(current, target):
        raise InvalidStatusTransition("delivery", current.value, target.value)

    if target == DeliveryStatus.SHIPPED:
        _ensure_can_ship(order)

    order.delivery_status = target
    if update.tracking_id:
        order.tracking_id = update.tracking_id
    if update.courier_name:
        order.courier_name = update.courier_name
    if update.estimated_delivery_date:
        order.estimated_delivery_date = update.estimated_delivery_date
    if target == DeliveryStatus.DELIVERED:
        order.delivered_at = datetime.utcnow()

    payment_settled = False
    payment = order.payment
    if (
        order.payment_method == PaymentMethod.COD
        and target in (DeliveryStatus.DELIVERED, DeliveryStatus.FAILED)
        and payment.payment_status == PaymentStatus.PENDING
    ):
        if target == DeliveryStatus.DELIVERED:
            _settle_payment(payment, PaymentStatus.COMPLETED, admin)
        else:
            _settle_payment(payment, PaymentStatus.FAILED, admin, reason=update.notes or "Delivery failed")
        payment_settled = True

    db.add(
        DeliveryLog(
            order_id=order.id,
            old_status=current.value,
            new_status=target.value,
            changed_by=admin.id,
            tracking_id=update.tracking_id,
            courier_name=update.courier_name,
            notes=update.notes,
        )
    )
    db.commit()
    db.refresh(order)

    logger.info(
        "delivery_status_updated",
        order_id=order.id,
        old_status=current.value,
        new_status=target.value,
        admin_user_id=admin.id,
    )

    reason = update.notes if target == DeliveryStatus.FAILED else None
    notifications.notify_delivery_changed(order, current.value, actor_id=admin.id, reason=reason)
    if payment_settled:
        notifications.notify_payment_changed(order, actor_id=admin.id)
        if payment.payment_status == PaymentStatus.COMPLETED:
            notifications.grant_customer_role_for(order.user)
    notifications.notify_admin_action(
        admin,
        "Delivery status updated",
        f"Order {order.order_number}: {current.value} -> {target.value}",
        target_user=order.user,
    )
    return order


def dashboard_summary(db: Session) -> dict:
    delivery_counts = {
        status_value.value: 0 for status_value in DeliveryStatus
    }
    for delivery_status, count in (
        db.query(Order.delivery_status, func.count(Order.id))
        .group_by(Order.delivery_status)
        .all()
    ):
        delivery_counts[delivery_status.value] = count

    awaiting_verification = (
        db.query(func.count(Payment.id))
        .filter(
            Payment.payment_method == PaymentMethod.MANUAL,
            Payment.payment_status == PaymentStatus.PENDING,
        )
        .scalar()
    )
    revenue = (
        db.query(func.coalesce(func.sum(Payment.amount), 0.0))
        .filter(Payment.payment_status == PaymentStatus.COMPLETED)
        .scalar()
    )

    return {
        "total_users": db.query(func.count(User.id)).scalar(),
        "total_orders": db.query(func.count(Order.id)).scalar(),
        "payments_awaiting_verification": awaiting_verification,
        "orders_by_delivery_status": delivery_counts,
        "revenue": float(revenue or 0.0),
    }
