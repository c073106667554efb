"""
User Model
----------

Accounts seeded alongside content. Natural key is the lower-cased email.
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from datetime import datetime
from typing import Optional

# --- Third party ---
from sqlalchemy import Boolean, CheckConstraint, DateTime, Enum as SQLEnum, String
from sqlalchemy.orm import Mapped, mapped_column

# --- Local imports ---
from .base import Base, TimestampMixin
from .enums import UserRole


class User(TimestampMixin, Base):
    """
    A user account.

    Attributes:
        id: Primary key
        email: Lower-cased email (unique)
        name: Display name
        role: Account role
        image: Avatar public path
        password_hash: PBKDF2 hash ("pbkdf2_sha256$<iterations>$<salt>$<hash>")
        email_verified: Verification time, if verified
        status: Whether the account is active
    """

    __tablename__ = "users"
    __table_args__ = (CheckConstraint("email != ''", name="ck_user_non_empty_email"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=UserRole.USER,
    )
    image: Mapped[str] = mapped_column(String(1000), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    email_verified: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    status: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r})>"
