"""
User model with ULID primary keys.

Only the columns the permission core reads are modelled here; account
management lives outside this service.
"""
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, generate_ulid


DEFAULT_ROLE = "User"


class User(Base, TimestampMixin):
    """
    User model representing platform accounts.

    ``role`` is a free-form label ("User", "Instructor", "Admin",
    "SuperAdmin") that selects the baseline permissions from
    ``role_permissions``.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)

    role: Mapped[str] = mapped_column(String(50), nullable=False, default=DEFAULT_ROLE, index=True)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r}, role={self.role!r})>"
