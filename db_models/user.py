# db_models/user.py
"""
User model consumed as the identity collaborator for cycle administration.

Roles:
- ADMIN: Can create cycles and move them through their lifecycle
- VERIFIER: Reviews uploaded material while a cycle is in verification
- TEACHER: Uploads material while a cycle accepts uploads
"""
from datetime import datetime
from enum import Enum

from sqlalchemy import String, Boolean, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from db_base import Base


class UserRole(str, Enum):
    """User roles for authorization."""
    ADMIN = "ADMIN"
    VERIFIER = "VERIFIER"
    TEACHER = "TEACHER"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )

    full_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # Role-based access control
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=UserRole.TEACHER.value,
    )

    # Account status
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        onupdate=func.now(),
    )

    def can_manage_cycles(self) -> bool:
        """Only ADMIN can create cycles or change their state."""
        return self.role == UserRole.ADMIN.value
