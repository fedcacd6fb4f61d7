from storefront.models.user import User
from storefront.models.category import Category
from storefront.models.product import Product
from storefront.models.cart import CartItem
from storefront.models.order import Order, OrderItem, DeliveryStatus
from storefront.models.payment import Payment, PaymentStatus, PaymentMethod
from storefront.models.otp import OTPRequest
from storefront.models.delivery_log import DeliveryLog
from storefront.models.token_blacklist import TokenBlacklist
