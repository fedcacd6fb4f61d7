from sqlalchemy import Boolean, Column, Integer, String, DateTime, Text
from sqlalchemy.orm import relationship
from datetime import datetime
from storefront.db.base_class import Base


class User(Base):
    """Customer identity, keyed by the Discord account that logged in."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    discord_id = Column(String(32), unique=True, index=True, nullable=False)
    username = Column(String(100), nullable=False)
    avatar = Column(String(100), nullable=True)

    # Filled in at checkout
    full_name = Column(String(100), nullable=True)
    phone = Column(String(15), nullable=True, index=True)
    address = Column(Text, nullable=True)
    pincode = Column(String(10), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    cart_items = relationship("CartItem", back_populates="user", cascade="all, delete-orphan")
    orders = relationship("Order", back_populates="user")

    @property
    def avatar_url(self):
        if not self.avatar:
            return None
        return f"https://cdn.discordapp.com/avatars/{self.discord_id}/{self.avatar}.png"
