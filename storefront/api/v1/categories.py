from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from storefront.core.rate_limiter import limiter
from storefront.db.session import get_db
from storefront.models.category import Category
from storefront.schemas.category import CategoryResponse
from storefront.utils.response import success

router = APIRouter()


@router.get("", response_model=dict)
@router.get("/", response_model=dict)
@limiter.limit("100/minute")
def get_public_categories(request: Request, db: Session = Depends(get_db)):
    """Public: active categories in navigation order."""
    categories = (
        db.query(Category)
        .filter(Category.is_active == True)
        .order_by(Category.display_order, Category.name)
        .all()
    )
    return success(
        data=[CategoryResponse.model_validate(category) for category in categories],
        message="Categories retrieved",
    )
