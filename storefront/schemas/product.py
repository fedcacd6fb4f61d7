from pydantic import BaseModel
from typing import Optional
from datetime import datetime

from storefront.schemas.category import CategoryResponse


class ProductListResponse(BaseModel):
    id: int
    name: str
    slug: str
    price: float
    image_url: Optional[str] = None
    is_featured: bool
    category: CategoryResponse

    class Config:
        from_attributes = True


class ProductDetailResponse(ProductListResponse):
    description: Optional[str] = None
    created_at: Optional[datetime] = None
