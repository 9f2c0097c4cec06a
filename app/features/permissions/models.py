"""
Permission catalog, role policy and user override tables.

- ``permissions``: the catalog of known permission names
- ``role_permissions``: baseline permissions conferred by a role label
- ``user_permissions``: per-user overrides, at most one per (user, permission)
"""
import enum
from sqlalchemy import String, ForeignKey, Table, Column, Text, Enum
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, generate_ulid


class OverrideType(str, enum.Enum):
    GRANT = "grant"
    REVOKE = "revoke"


# Role-Permission relationship. Roles are plain labels, not rows.
role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role", String(50), primary_key=True),
    Column("permission_id", String(26), ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)

# Composite primary key keeps a single override per user and permission
user_permissions = Table(
    "user_permissions",
    Base.metadata,
    Column("user_id", String(26), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True),
    Column("permission_id", String(26), ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "type",
        Enum(OverrideType, values_callable=lambda e: [m.value for m in e], native_enum=False, length=10),
        nullable=False,
    ),
)


class Permission(Base, TimestampMixin):
    """
    A named capability, e.g. ``create_quiz`` or ``view_students``.

    ``name`` is the external identifier; ``id`` is only used for joins.
    """
    __tablename__ = "permissions"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Permission(id={self.id}, name={self.name!r})>"
