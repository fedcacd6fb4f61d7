import logging
from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Form, Query, Request
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session
from typing import Optional
from pydantic import BaseModel
from slugify import slugify

from storefront.api.deps import require_admin
from storefront.core.exceptions import CategoryNotFound, ProductNotFound
from storefront.core.logging_config import AUDIT_CHANNELS, read_recent_log_lines
from storefront.core.rate_limiter import limiter
from storefront.db.session import get_db
from storefront.models.category import Category
from storefront.models.order import DeliveryStatus, Order
from storefront.models.payment import Payment, PaymentStatus
from storefront.models.product import Product
from storefront.models.user import User
from storefront.schemas.category import CategoryCreate, CategoryResponse
from storefront.schemas.order import AdminOrderResponse
from storefront.schemas.order_tracking import DeliveryStatusUpdate, PaymentDecision
from storefront.schemas.user import UserResponse
from storefront.services import backup_service, notifications, order_service
from storefront.services.otp_service import OTPService
from storefront.utils.image_upload import delete_uploaded_file, resolve_payment_proof, save_product_image
from storefront.utils.response import paginated_response, success

router = APIRouter()
logger = logging.getLogger(__name__)


class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None
    display_order: Optional[int] = None
    is_active: Optional[bool] = None


def _normalize_slug(value: str) -> str:
    normalized = slugify(value)
    if not normalized:
        raise HTTPException(status_code=400, detail="Slug cannot be empty")
    return normalized


def _require_existing_category(db: Session, category_id: int) -> Category:
    category = db.query(Category).filter(Category.id == category_id).first()
    if not category:
        raise HTTPException(status_code=400, detail=f"Invalid category_id: {category_id}")
    return category


def _unique_product_slug(db: Session, name: str, exclude_id: Optional[int] = None) -> str:
    base = _normalize_slug(name)
    slug = base
    suffix = 2
    while True:
        query = db.query(Product.id).filter(Product.slug == slug)
        if exclude_id is not None:
            query = query.filter(Product.id != exclude_id)
        if not query.first():
            return slug
        slug = f"{base}-{suffix}"
        suffix += 1


def _validate_price(price: float) -> float:
    if price <= 0:
        raise HTTPException(status_code=400, detail="Price must be greater than zero")
    return round(price, 2)


# ============= DASHBOARD =============

@router.get("/dashboard")
def get_dashboard(
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Admin: Storefront totals"""
    return success(data=order_service.dashboard_summary(db), message="Dashboard data")


@router.get("/users")
def get_users(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    query = db.query(User).order_by(User.created_at.desc(), User.id.desc())
    total = query.count()
    users = query.offset((page - 1) * limit).limit(limit).all()
    return paginated_response(
        items=[UserResponse.model_validate(user) for user in users],
        total=total,
        page=page,
        limit=limit,
        message="Users retrieved",
    )


# ============= ORDER MANAGEMENT =============

@router.get("/orders")
def get_orders(
    payment_status: Optional[PaymentStatus] = None,
    delivery_status: Optional[DeliveryStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Admin: All orders, newest first"""
    query = db.query(Order)
    if payment_status:
        query = query.join(Payment, Payment.order_id == Order.id).filter(Payment.payment_status == payment_status)
    if delivery_status:
        query = query.filter(Order.delivery_status == delivery_status)

    total = query.count()
    orders = (
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return paginated_response(
        items=[AdminOrderResponse.from_order(order) for order in orders],
        total=total,
        page=page,
        limit=limit,
        message="Orders retrieved",
    )


@router.get("/orders/{order_id}")
def get_order(
    order_id: int,
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    order = order_service.get_order_or_404(db, order_id)
    return success(data=AdminOrderResponse.from_order(order), message="Order retrieved")


@router.get("/orders/{order_id}/proof")
def get_payment_proof(
    order_id: int,
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Admin: Download the uploaded payment screenshot"""
    order = order_service.get_order_or_404(db, order_id)
    path = resolve_payment_proof(order.payment.proof_path if order.payment else None)
    if not path:
        raise HTTPException(status_code=404, detail="Payment proof not found")
    return FileResponse(path)


@router.post("/orders/{order_id}/payment")
@limiter.limit("30/minute")
def verify_payment(
    request: Request,
    order_id: int,
    decision: PaymentDecision,
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Admin: Approve or reject a manual payment"""
    order = order_service.verify_payment(db, order_id, decision, current_admin)
    message = "Payment approved" if decision.action == "approve" else "Payment rejected"
    return success(data=AdminOrderResponse.from_order(order), message=message)


@router.put("/orders/{order_id}/delivery")
@limiter.limit("30/minute")
def update_delivery(
    request: Request,
    order_id: int,
    update: DeliveryStatusUpdate,
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Admin: Advance the delivery status"""
    order = order_service.update_delivery_status(db, order_id, update, current_admin)
    return success(data=AdminOrderResponse.from_order(order), message="Delivery status updated")


# ============= PRODUCT MANAGEMENT =============

@router.post("/products", status_code=201)
@limiter.limit("30/minute")
def create_product(
    request: Request,
    name: str = Form(...),
    category_id: int = Form(...),
    price: float = Form(...),
    description: Optional[str] = Form(None),
    is_featured: bool = Form(False),
    image_url: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Admin: Create new product"""
    _require_existing_category(db, category_id)

    if image_url and not image_url.startswith("/static/"):
        raise HTTPException(status_code=400, detail="image_url must start with /static/")

    product = Product(
        name=name.strip(),
        slug=_unique_product_slug(db, name),
        category_id=category_id,
        description=description,
        price=_validate_price(price),
        is_featured=is_featured,
        image_url=image_url,
    )
    if image is not None and image.filename:
        product.image_url = save_product_image(image)

    db.add(product)
    db.commit()
    db.refresh(product)

    notifications.notify_admin_action(current_admin, "Product created", f"{product.name} ({product.slug})")
    return success(
        data={"product_id": product.id, "slug": product.slug, "image_url": product.image_url},
        message="Product created successfully",
    )


@router.put("/products/{product_id}")
@limiter.limit("30/minute")
def update_product(
    request: Request,
    product_id: int,
    name: Optional[str] = Form(None),
    category_id: Optional[int] = Form(None),
    price: Optional[float] = Form(None),
    description: Optional[str] = Form(None),
    is_featured: Optional[bool] = Form(None),
    is_active: Optional[bool] = Form(None),
    image: Optional[UploadFile] = File(None),
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Admin: Update product"""
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise ProductNotFound()

    if name:
        product.name = name.strip()
        product.slug = _unique_product_slug(db, name, exclude_id=product.id)

    if category_id is not None:
        _require_existing_category(db, category_id)
        product.category_id = category_id

    if price is not None:
        product.price = _validate_price(price)

    if description is not None:
        product.description = description

    if is_featured is not None:
        product.is_featured = is_featured

    if is_active is not None:
        product.is_active = is_active

    if image is not None and image.filename:
        old_image = product.image_url
        product.image_url = save_product_image(image)
        if old_image and old_image.startswith("/static/uploads/"):
            delete_uploaded_file(old_image)

    db.commit()

    notifications.notify_admin_action(current_admin, "Product updated", f"{product.name} ({product.slug})")
    return success(data={"product_id": product.id, "slug": product.slug}, message="Product updated successfully")


@router.delete("/products/{product_id}")
@limiter.limit("20/minute")
def delete_product(
    request: Request,
    product_id: int,
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Admin: Delete product (soft delete)"""
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise ProductNotFound()

    product.is_active = False
    db.commit()

    notifications.notify_admin_action(current_admin, "Product deactivated", f"{product.name} ({product.slug})")
    return success(message="Product deleted successfully")


# ============= CATEGORY MANAGEMENT =============

@router.get("/categories")
def list_categories(
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    categories = db.query(Category).order_by(Category.display_order, Category.name).all()
    data = []
    for category in categories:
        item = CategoryResponse.model_validate(category).model_dump()
        item["is_active"] = bool(category.is_active)
        item["product_count"] = db.query(Product).filter(Product.category_id == category.id).count()
        data.append(item)
    return success(data=data, message="Categories retrieved")


@router.post("/categories", status_code=201)
def create_category(
    payload: CategoryCreate,
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    slug = _normalize_slug(payload.slug or payload.name)
    existing = db.query(Category).filter(
        (Category.slug == slug) | (Category.name == payload.name.strip())
    ).first()
    if existing:
        raise HTTPException(status_code=409, detail="Category already exists")

    category = Category(
        name=payload.name.strip(),
        slug=slug,
        description=payload.description,
        display_order=payload.display_order,
        is_active=payload.is_active,
    )
    db.add(category)
    db.commit()
    db.refresh(category)

    notifications.notify_admin_action(current_admin, "Category created", f"{category.name} ({category.slug})")
    return success(data=CategoryResponse.model_validate(category), message="Category created successfully")


@router.put("/categories/{category_id}")
def update_category(
    category_id: int,
    payload: CategoryUpdate,
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    category = db.query(Category).filter(Category.id == category_id).first()
    if not category:
        raise CategoryNotFound()

    updates = payload.model_dump(exclude_unset=True)
    if "slug" in updates or "name" in updates:
        slug = _normalize_slug(updates.get("slug") or updates.get("name") or category.slug)
        clash = db.query(Category).filter(Category.slug == slug, Category.id != category.id).first()
        if clash:
            raise HTTPException(status_code=409, detail="Category slug already in use")
        category.slug = slug
    if updates.get("name"):
        category.name = updates["name"].strip()
    for field in ("description", "display_order", "is_active"):
        if field in updates and updates[field] is not None:
            setattr(category, field, updates[field])

    db.commit()
    db.refresh(category)

    notifications.notify_admin_action(current_admin, "Category updated", f"{category.name} ({category.slug})")
    return success(data=CategoryResponse.model_validate(category), message="Category updated successfully")


@router.delete("/categories/{category_id}")
def delete_category(
    category_id: int,
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    category = db.query(Category).filter(Category.id == category_id).first()
    if not category:
        raise CategoryNotFound()

    product_count = db.query(Product).filter(Product.category_id == category.id).count()
    if product_count:
        raise HTTPException(
            status_code=409,
            detail=f"Category has {product_count} products. Deactivate it instead.",
        )

    db.delete(category)
    db.commit()

    notifications.notify_admin_action(current_admin, "Category deleted", category.name)
    return success(message="Category deleted successfully")


# ============= MAINTENANCE =============

@router.post("/maintenance/cleanup-otps")
def cleanup_otps(
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    deleted = OTPService.cleanup_expired_otps(db)
    logger.info("Admin %s removed %s OTP requests", current_admin.id, deleted)
    return success(data={"deleted": deleted}, message="Expired OTPs removed")


@router.post("/maintenance/backup")
@limiter.limit("5/minute")
def create_backup(
    request: Request,
    current_admin: User = Depends(require_admin),
):
    try:
        path = backup_service.backup_database()
    except backup_service.BackupError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    notifications.notify_admin_action(current_admin, "Database backup", path)
    return success(data={"path": path}, message="Backup created")


@router.get("/logs/{channel}")
def get_logs(
    channel: str,
    lines: int = Query(100, ge=1, le=1000),
    current_admin: User = Depends(require_admin),
):
    if channel not in AUDIT_CHANNELS:
        raise HTTPException(status_code=404, detail="Unknown log channel")
    return success(
        data={"channel": channel, "lines": read_recent_log_lines(channel, lines)},
        message="Logs retrieved",
    )
