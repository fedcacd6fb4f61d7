from typing import List, Optional
from datetime import datetime
import re

from pydantic import BaseModel, field_validator

from storefront.schemas.user import clean_text, validate_indian_phone, validate_pincode

UTR_RE = re.compile(r"^\d{12}$")


class ShippingDetails(BaseModel):
    full_name: str
    phone: str
    address: str
    pincode: str
    customer_notes: Optional[str] = None

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, value: str) -> str:
        cleaned = clean_text(value, 100, "Full name")
        if not cleaned:
            raise ValueError("Full name is required")
        return cleaned

    @field_validator("address")
    @classmethod
    def validate_address(cls, value: str) -> str:
        cleaned = clean_text(value, 500, "Address")
        if not cleaned:
            raise ValueError("Address is required")
        return cleaned

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, value: str) -> str:
        return validate_indian_phone(value)

    @field_validator("pincode")
    @classmethod
    def validate_pin(cls, value: str) -> str:
        return validate_pincode(value)

    @field_validator("customer_notes")
    @classmethod
    def validate_notes(cls, value: Optional[str]) -> Optional[str]:
        return clean_text(value, 500, "Notes")


class CODCheckout(ShippingDetails):
    pass


class ManualCheckout(ShippingDetails):
    utr_number: Optional[str] = None

    @field_validator("utr_number")
    @classmethod
    def validate_utr(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip()
        if not value:
            return None
        if not UTR_RE.match(value):
            raise ValueError("Invalid UTR number format")
        return value


class OrderItemResponse(BaseModel):
    id: int
    product_id: int
    product_name: str
    quantity: int
    unit_price: float
    total_price: float

    class Config:
        from_attributes = True


class PaymentSummary(BaseModel):
    payment_method: str
    payment_status: str
    amount: float
    currency: str
    utr_number: Optional[str] = None
    upi_link: Optional[str] = None
    transaction_id: Optional[str] = None
    failure_reason: Optional[str] = None
    verified_at: Optional[datetime] = None
    has_proof: bool = False

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: int
    order_number: str
    full_name: str
    phone: str
    address: str
    pincode: str
    phone_verified: bool
    customer_notes: Optional[str] = None
    subtotal: float
    total_amount: float
    delivery_status: str
    tracking_id: Optional[str] = None
    courier_name: Optional[str] = None
    estimated_delivery_date: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: datetime
    items: List[OrderItemResponse]
    payment: Optional[PaymentSummary] = None

    class Config:
        from_attributes = True

    @classmethod
    def from_order(cls, order) -> "OrderResponse":
        payment = order.payment
        return cls(
            id=order.id,
            order_number=order.order_number,
            full_name=order.full_name,
            phone=order.phone,
            address=order.address,
            pincode=order.pincode,
            phone_verified=order.phone_verified,
            customer_notes=order.customer_notes,
            subtotal=order.subtotal,
            total_amount=order.total_amount,
            delivery_status=order.delivery_status.value,
            tracking_id=order.tracking_id,
            courier_name=order.courier_name,
            estimated_delivery_date=order.estimated_delivery_date,
            delivered_at=order.delivered_at,
            created_at=order.created_at,
            items=[OrderItemResponse.model_validate(item) for item in order.items],
            payment=PaymentSummary(
                payment_method=payment.payment_method.value,
                payment_status=payment.payment_status.value,
                amount=payment.amount,
                currency=payment.currency,
                utr_number=payment.utr_number,
                upi_link=payment.upi_link,
                transaction_id=payment.transaction_id,
                failure_reason=payment.failure_reason,
                verified_at=payment.verified_at,
                has_proof=bool(payment.proof_path),
            ) if payment else None,
        )


class AdminOrderResponse(OrderResponse):
    user_id: int
    customer_discord_id: Optional[str] = None
    customer_username: Optional[str] = None
    admin_notes: Optional[str] = None

    @classmethod
    def from_order(cls, order) -> "AdminOrderResponse":
        base = OrderResponse.from_order(order).model_dump()
        return cls(
            **base,
            user_id=order.user_id,
            customer_discord_id=order.user.discord_id if order.user else None,
            customer_username=order.user.username if order.user else None,
            admin_notes=order.admin_notes,
        )
