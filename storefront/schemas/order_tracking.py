from pydantic import BaseModel, field_validator
from typing import Literal, Optional, List
from datetime import datetime
from storefront.models.order import DeliveryStatus
from storefront.schemas.user import clean_text


class DeliveryStatusUpdate(BaseModel):
    status: DeliveryStatus
    tracking_id: Optional[str] = None
    courier_name: Optional[str] = None
    estimated_delivery_date: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, value):
        return clean_text(value, 500, "Notes")


class PaymentDecision(BaseModel):
    action: Literal["approve", "reject"]
    transaction_id: Optional[str] = None
    reason: Optional[str] = None

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, value):
        return clean_text(value, 500, "Reason")


class DeliveryLogResponse(BaseModel):
    id: int
    old_status: Optional[str]
    new_status: str
    changed_by: Optional[int]
    changer_name: Optional[str]
    tracking_id: Optional[str]
    courier_name: Optional[str]
    notes: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class OrderTrackingResponse(BaseModel):
    order_id: int
    order_number: str
    payment_method: Optional[str]
    payment_status: Optional[str]
    delivery_status: str
    tracking_id: Optional[str]
    courier_name: Optional[str]
    estimated_delivery_date: Optional[datetime]
    delivered_at: Optional[datetime]
    history: List[DeliveryLogResponse]

    class Config:
        from_attributes = True
