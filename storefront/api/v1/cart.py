from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from storefront.api.deps import get_current_user
from storefront.core.config import settings
from storefront.core.exceptions import ProductNotFound
from storefront.db.session import get_db
from storefront.models.cart import CartItem
from storefront.models.product import Product
from storefront.models.user import User
from storefront.schemas.cart import CartItemCreate, CartItemUpdate
from storefront.utils.response import success

router = APIRouter()


def cart_summary(db: Session, user: User) -> dict:
    cart_items = (
        db.query(CartItem)
        .filter(CartItem.user_id == user.id)
        .order_by(CartItem.id)
        .all()
    )

    items_response = []
    subtotal = 0.0
    for item in cart_items:
        product = item.product
        total_price = round(product.price * item.quantity, 2)
        subtotal += total_price
        items_response.append({
            "id": item.id,
            "product_id": product.id,
            "product_name": product.name,
            "product_slug": product.slug,
            "product_image": product.image_url,
            "is_available": bool(product.is_active),
            "quantity": item.quantity,
            "unit_price": product.price,
            "total_price": total_price,
        })

    return {
        "items": items_response,
        "subtotal": round(subtotal, 2),
        "total_items": sum(item.quantity for item in cart_items),
    }


def _get_own_item(db: Session, item_id: int, user: User) -> CartItem:
    cart_item = db.query(CartItem).filter(
        CartItem.id == item_id,
        CartItem.user_id == user.id
    ).first()

    if not cart_item:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Cart item not found"
        )
    return cart_item


@router.get("", response_model=dict)
@router.get("/", response_model=dict)
def get_cart(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get user's cart"""
    return success(data=cart_summary(db, current_user), message="Cart retrieved")


@router.post("/items", status_code=status.HTTP_201_CREATED)
def add_to_cart(
    cart_item: CartItemCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Add item to cart; adding a product already in the cart raises its quantity."""
    product = db.query(Product).filter(
        Product.id == cart_item.product_id,
        Product.is_active == True
    ).first()

    if not product:
        raise ProductNotFound()

    existing_item = db.query(CartItem).filter(
        CartItem.user_id == current_user.id,
        CartItem.product_id == cart_item.product_id,
    ).first()

    if existing_item:
        existing_item.quantity = min(existing_item.quantity + cart_item.quantity, settings.MAX_CART_QUANTITY)
        db.commit()
        db.refresh(existing_item)
        return success(
            data={"cart_item_id": existing_item.id, "quantity": existing_item.quantity},
            message="Cart updated",
        )

    new_cart_item = CartItem(
        user_id=current_user.id,
        product_id=cart_item.product_id,
        quantity=min(cart_item.quantity, settings.MAX_CART_QUANTITY),
    )

    db.add(new_cart_item)
    db.commit()
    db.refresh(new_cart_item)

    return success(
        data={"cart_item_id": new_cart_item.id, "quantity": new_cart_item.quantity},
        message="Item added to cart",
    )


@router.put("/items/{item_id}")
def update_cart_item(
    item_id: int,
    update_data: CartItemUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Update cart item quantity"""
    cart_item = _get_own_item(db, item_id, current_user)
    cart_item.quantity = min(update_data.quantity, settings.MAX_CART_QUANTITY)
    db.commit()

    return success(data={"cart_item_id": cart_item.id, "quantity": cart_item.quantity}, message="Cart item updated")


@router.delete("/items/{item_id}")
def remove_from_cart(
    item_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Remove item from cart"""
    cart_item = _get_own_item(db, item_id, current_user)
    db.delete(cart_item)
    db.commit()

    return success(message="Item removed from cart")


@router.delete("", response_model=dict)
@router.delete("/", response_model=dict)
def clear_cart(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Clear entire cart"""
    db.query(CartItem).filter(CartItem.user_id == current_user.id).delete()
    db.commit()

    return success(message="Cart cleared")
