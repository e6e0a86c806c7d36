"""Local mirror of the identity provider's users."""

from datetime import datetime, UTC
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.orm import relationship

from economy.core.base_model import Base


class UserRole:
    USER = "user"
    ADMIN = "admin"


class User(Base):
    """
    SQLAlchemy model representing a platform user.

    Attributes:
        id (str): Identifier issued by the identity provider.
        email (str): Email address.
        role (str): "user" or "admin".
        is_verified (bool): Whether the email address has been verified.
    """
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), unique=True, index=True, nullable=True)
    name = Column(String(100), nullable=True)
    role = Column(String(20), default=UserRole.USER, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))

    credit_account = relationship("CreditAccount", back_populates="user", uselist=False, passive_deletes=True)
    point_account = relationship("PointAccount", back_populates="user", uselist=False, passive_deletes=True)
    vip_status = relationship("VipStatus", back_populates="user", uselist=False, passive_deletes=True)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
