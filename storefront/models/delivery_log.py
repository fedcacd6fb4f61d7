from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text
from sqlalchemy.orm import relationship
from datetime import datetime
from storefront.db.base_class import Base


class DeliveryLog(Base):
    __tablename__ = "delivery_logs"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)

    old_status = Column(String(50), nullable=True)  # Null for the initial entry
    new_status = Column(String(50), nullable=False)

    changed_by = Column(Integer, ForeignKey("users.id"), nullable=True)  # Admin who changed it, null for system
    tracking_id = Column(String(100), nullable=True)
    courier_name = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    order = relationship("Order", back_populates="delivery_logs")
    changer = relationship("User")
