from sqlalchemy.orm import Session
from fastapi import HTTPException, status
from typing import List

from storefront.core.exceptions import OrderNotFound
from storefront.models.delivery_log import DeliveryLog
from storefront.models.order import Order
from storefront.models.user import User
from storefront.schemas.order_tracking import DeliveryLogResponse, OrderTrackingResponse


class OrderTrackingService:

    @staticmethod
    def _history(db: Session, order_id: int) -> List[DeliveryLogResponse]:
        history = db.query(DeliveryLog, User.username.label("changer_name")).outerjoin(
            User, DeliveryLog.changed_by == User.id
        ).filter(DeliveryLog.order_id == order_id).order_by(DeliveryLog.id).all()

        return [
            DeliveryLogResponse(
                id=h.DeliveryLog.id,
                old_status=h.DeliveryLog.old_status,
                new_status=h.DeliveryLog.new_status,
                changed_by=h.DeliveryLog.changed_by,
                changer_name=h.changer_name,
                tracking_id=h.DeliveryLog.tracking_id,
                courier_name=h.DeliveryLog.courier_name,
                notes=h.DeliveryLog.notes,
                created_at=h.DeliveryLog.created_at,
            ) for h in history
        ]

    @staticmethod
    def get_order_tracking(db: Session, order_number: str, user: User, is_admin: bool = False) -> OrderTrackingResponse:
        """Tracking for one order. Customers only see their own orders, admins see all."""
        order = db.query(Order).filter(Order.order_number == order_number).first()
        if not order:
            raise OrderNotFound()

        if order.user_id != user.id and not is_admin:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Order not found"
            )

        return OrderTrackingResponse(
            order_id=order.id,
            order_number=order.order_number,
            payment_method=order.payment_method.value if order.payment_method else None,
            payment_status=order.payment_status.value if order.payment_status else None,
            delivery_status=order.delivery_status.value,
            tracking_id=order.tracking_id,
            courier_name=order.courier_name,
            estimated_delivery_date=order.estimated_delivery_date,
            delivered_at=order.delivered_at,
            history=OrderTrackingService._history(db, order.id),
        )
