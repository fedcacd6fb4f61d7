from sqlalchemy.orm import Session
import logging
from slugify import slugify

from storefront.models.category import Category
from storefront.models.product import Product

logger = logging.getLogger(__name__)

CATEGORIES_DATA = [
    {"name": "Dress", "description": "Evening gowns and dresses"},
    {"name": "Wedding", "description": "Bridal collections"},
    {"name": "Couple", "description": "Matching outfits for two"},
    {"name": "Fantasy", "description": "Storybook-inspired designs"},
]

PRODUCTS_DATA = [
    ("Midnight Enchantment Gown", 299.99,
     "A flowing gown that shimmers like moonlight on water, perfect for romantic evenings.", "dress"),
    ("Starlight Promise Dress", 399.99,
     "Hand-stitched with glowing particles that catch the light like distant stars.", "dress"),
    ("Eternal Vow Collection", 599.99,
     "Complete bridal set with flowing train and crystal details.", "wedding"),
    ("Firefly Evening Gown", 349.99,
     "Pastel purple and pink design with magical floating fabric effects.", "dress"),
    ("Moonlit Romance Set", 449.99,
     "Matching couple outfits with ethereal glow-in-the-dark elements.", "couple"),
    ("Fantasy Dream Dress", 279.99,
     "Storybook-inspired design with soft, dreamy layers and magical dust sparkles.", "fantasy"),
]


def init_db(db: Session) -> None:
    """Seed default categories and, on an empty catalogue, the sample products"""
    categories = {}
    for order, cat_data in enumerate(CATEGORIES_DATA):
        slug = slugify(cat_data["name"])
        category = db.query(Category).filter(Category.slug == slug).first()
        if not category:
            category = Category(
                name=cat_data["name"],
                slug=slug,
                description=cat_data["description"],
                display_order=order,
            )
            db.add(category)
            logger.info("category_created name=%s", cat_data["name"])
        categories[slug] = category
    db.flush()

    if db.query(Product).count() == 0:
        for name, price, description, category_slug in PRODUCTS_DATA:
            db.add(
                Product(
                    name=name,
                    slug=slugify(name),
                    price=price,
                    description=description,
                    category_id=categories[category_slug].id,
                    is_featured=True,
                )
            )
        logger.info("sample_products_created count=%s", len(PRODUCTS_DATA))

    db.commit()
    logger.info("database_initialized")


if __name__ == "__main__":
    from storefront.db.base import Base
    from storefront.db.session import SessionLocal, engine

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        init_db(db)
    finally:
        db.close()
