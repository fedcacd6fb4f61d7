from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String

from storefront.db.base_class import Base


class TokenBlacklist(Base):
    """Revoked session tokens (by JTI) that must no longer be accepted."""

    __tablename__ = "token_blacklist"

    id = Column(Integer, primary_key=True, index=True)
    jti = Column(String(64), unique=True, nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    reason = Column(String(50), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
