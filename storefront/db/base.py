from storefront.db.base_class import Base


# IMPORT ALL MODELS HERE (THIS REGISTERS THEM WITH Base.metadata)
from storefront.models.user import User
from storefront.models.category import Category
from storefront.models.product import Product
from storefront.models.cart import CartItem
from storefront.models.order import Order, OrderItem
from storefront.models.payment import Payment
from storefront.models.otp import OTPRequest
from storefront.models.delivery_log import DeliveryLog
from storefront.models.token_blacklist import TokenBlacklist
