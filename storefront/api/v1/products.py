from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session, selectinload
from sqlalchemy import or_
from typing import Optional

from storefront.db.session import get_db
from storefront.models.product import Product
from storefront.models.category import Category
from storefront.schemas.product import ProductListResponse, ProductDetailResponse
from storefront.core.exceptions import ProductNotFound
from storefront.utils.response import success, paginated_response
from storefront.core.rate_limiter import limiter

router = APIRouter()
FEATURED_LIMIT = 4


def _active_products(db: Session):
    return (
        db.query(Product)
        .options(selectinload(Product.category))
        .filter(Product.is_active == True)
    )


@router.get("", response_model=dict)
@router.get("/", response_model=dict)
@limiter.limit("100/minute")
def get_products(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    category: Optional[str] = None,
    search: Optional[str] = Query(None, max_length=100),
    featured: Optional[bool] = None,
    db: Session = Depends(get_db)
):
    """
    Get products with filtering and pagination, newest first.

    ``category`` is a category slug; ``all`` (or nothing) lists everything.
    """
    query = _active_products(db)

    if category and category != "all":
        query = query.join(Category, Product.category_id == Category.id).filter(Category.slug == category)

    if search:
        search_term = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Product.name.ilike(search_term),
                Product.description.ilike(search_term)
            )
        )

    if featured:
        query = query.filter(Product.is_featured == True)

    total = query.count()
    products = (
        query.order_by(Product.created_at.desc(), Product.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return paginated_response(
        items=[ProductListResponse.model_validate(product) for product in products],
        total=total,
        page=page,
        limit=limit,
        message="Products retrieved",
    )


@router.get("/featured", response_model=dict)
@limiter.limit("100/minute")
def get_featured_products(request: Request, db: Session = Depends(get_db)):
    """Latest products for the home page."""
    products = (
        _active_products(db)
        .order_by(Product.created_at.desc(), Product.id.desc())
        .limit(FEATURED_LIMIT)
        .all()
    )
    return success(
        data=[ProductListResponse.model_validate(product) for product in products],
        message="Featured products retrieved",
    )


@router.get("/{id_or_slug}", response_model=dict)
@limiter.limit("100/minute")
def get_product(request: Request, id_or_slug: str, db: Session = Depends(get_db)):
    query = _active_products(db)
    if id_or_slug.isdigit():
        product = query.filter(Product.id == int(id_or_slug)).first()
    else:
        product = query.filter(Product.slug == id_or_slug).first()

    if not product:
        raise ProductNotFound()

    return success(data=ProductDetailResponse.model_validate(product), message="Product retrieved")
