from sqlalchemy import Column, Integer, String, Boolean
from sqlalchemy.orm import relationship
from storefront.db.base_class import Base


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False, index=True)
    slug = Column(String(100), unique=True, nullable=False, index=True)
    description = Column(String(500))
    is_active = Column(Boolean, default=True)
    display_order = Column(Integer, default=0)

    # Relationships
    products = relationship("Product", back_populates="category")
