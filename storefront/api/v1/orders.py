from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.deps import get_current_user
from storefront.core.config import settings
from storefront.core.exceptions import OrderNotFound
from storefront.db.session import get_db
from storefront.models.order import Order
from storefront.models.user import User
from storefront.schemas.order import OrderResponse
from storefront.services.order_tracking_service import OrderTrackingService
from storefront.utils.response import paginated_response, success

router = APIRouter()


@router.get("", response_model=dict)
@router.get("/", response_model=dict)
def get_my_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(Order).filter(Order.user_id == current_user.id)
    total = query.count()
    orders = (
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return paginated_response(
        items=[OrderResponse.from_order(order) for order in orders],
        total=total,
        page=page,
        limit=limit,
        message="Orders retrieved",
    )


@router.get("/{order_number}", response_model=dict)
def get_order(
    order_number: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    order = db.query(Order).filter(
        Order.order_number == order_number,
        Order.user_id == current_user.id,
    ).first()
    if not order:
        raise OrderNotFound()

    return success(data=OrderResponse.from_order(order), message="Order retrieved")


@router.get("/{order_number}/tracking", response_model=dict)
def track_order(
    order_number: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Current payment and delivery status with the delivery history."""
    tracking = OrderTrackingService.get_order_tracking(
        db,
        order_number,
        current_user,
        is_admin=settings.is_admin_discord_id(current_user.discord_id),
    )
    return success(data=tracking, message="Order tracking retrieved")
