"""
User model
"""

from sqlalchemy import Column, String, Enum as SQLEnum
import enum
from escrow_core.core.common.base_model import BaseModel
from escrow_core.core.security.models import Role


class UserStatus(str, enum.Enum):
    """User status enum"""
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"


class User(BaseModel):
    """
    User model - local mirror of an identity-service principal

    Rows are provisioned on first authenticated request; credentials are never
    stored or verified here. The escrow core uses the row to resolve parties
    (e.g. the release sweep skips transactions whose wholesaler is unknown).
    """

    __tablename__ = "users"

    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    role = Column(SQLEnum(Role, name="user_role"), nullable=False, index=True)
    status = Column(SQLEnum(UserStatus, name="user_status"), nullable=False, default=UserStatus.ACTIVE)

    # Identity-service subject (JWT 'sub')
    external_subject = Column(String(255), nullable=True, unique=True, index=True)

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE
