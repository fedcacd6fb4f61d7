from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.core.security import create_access_token
from storefront.models.cart import CartItem
from storefront.models.category import Category
from storefront.models.product import Product
from storefront.models.user import User


def _create_user(db: Session, discord_id: str = "111111111111111111") -> User:
    user = User(discord_id=discord_id, username=f"user-{discord_id[-4:]}")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _login(client: TestClient, user: User) -> None:
    client.cookies.set("access_token", create_access_token({"sub": str(user.id)}))


def _create_product(db: Session, name: str = "Starlight Promise Dress", price: float = 399.99,
                    is_active: bool = True) -> Product:
    category = db.query(Category).filter(Category.slug == "dress").first()
    if not category:
        category = Category(name="Dress", slug="dress")
        db.add(category)
        db.flush()
    product = Product(
        category_id=category.id,
        name=name,
        slug=name.lower().replace(" ", "-"),
        price=price,
        is_active=is_active,
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


def test_cart_requires_login(client: TestClient):
    response = client.get("/api/v1/cart")

    assert response.status_code == 401


def test_add_item_and_view_cart(client: TestClient, db_session: Session):
    user = _create_user(db_session)
    product = _create_product(db_session, price=399.99)
    _login(client, user)

    added = client.post("/api/v1/cart/items", json={"product_id": product.id, "quantity": 2})
    assert added.status_code == 201
    assert added.json()["message"] == "Item added to cart"

    response = client.get("/api/v1/cart")
    cart = response.json()["data"]
    assert len(cart["items"]) == 1
    assert cart["items"][0]["total_price"] == 799.98
    assert cart["subtotal"] == 799.98
    assert cart["total_items"] == 2


def test_adding_same_product_increments_and_caps_quantity(client: TestClient, db_session: Session):
    user = _create_user(db_session)
    product = _create_product(db_session)
    _login(client, user)

    client.post("/api/v1/cart/items", json={"product_id": product.id, "quantity": 8})
    response = client.post("/api/v1/cart/items", json={"product_id": product.id, "quantity": 5})

    assert response.json()["message"] == "Cart updated"
    assert response.json()["data"]["quantity"] == settings.MAX_CART_QUANTITY
    assert db_session.query(CartItem).filter(CartItem.user_id == user.id).count() == 1


def test_inactive_product_cannot_be_added(client: TestClient, db_session: Session):
    user = _create_user(db_session)
    product = _create_product(db_session, is_active=False)
    _login(client, user)

    response = client.post("/api/v1/cart/items", json={"product_id": product.id})

    assert response.status_code == 404
    assert response.json()["message"] == "Product not found"


def test_update_and_remove_item(client: TestClient, db_session: Session):
    user = _create_user(db_session)
    product = _create_product(db_session)
    _login(client, user)
    item_id = client.post("/api/v1/cart/items", json={"product_id": product.id}).json()["data"]["cart_item_id"]

    updated = client.put(f"/api/v1/cart/items/{item_id}", json={"quantity": 3})
    assert updated.status_code == 200
    assert updated.json()["data"]["quantity"] == 3

    removed = client.delete(f"/api/v1/cart/items/{item_id}")
    assert removed.status_code == 200
    assert db_session.query(CartItem).count() == 0


def test_users_cannot_touch_other_carts(client: TestClient, db_session: Session):
    owner = _create_user(db_session, "111111111111111111")
    intruder = _create_user(db_session, "222222222222222222")
    product = _create_product(db_session)
    item = CartItem(user_id=owner.id, product_id=product.id, quantity=1)
    db_session.add(item)
    db_session.commit()
    _login(client, intruder)

    response = client.delete(f"/api/v1/cart/items/{item.id}")

    assert response.status_code == 404
    assert response.json()["message"] == "Cart item not found"
    assert client.get("/api/v1/cart").json()["data"]["items"] == []


def test_clear_cart(client: TestClient, db_session: Session):
    user = _create_user(db_session)
    _login(client, user)
    client.post("/api/v1/cart/items", json={"product_id": _create_product(db_session, "Gown A").id})
    client.post("/api/v1/cart/items", json={"product_id": _create_product(db_session, "Gown B").id})

    response = client.delete("/api/v1/cart")

    assert response.status_code == 200
    assert db_session.query(CartItem).filter(CartItem.user_id == user.id).count() == 0
