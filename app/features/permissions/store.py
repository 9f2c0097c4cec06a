"""
Storage collaborator for the permission core.

``PermissionStore`` is the only way the resolver, mutator and role policy
manager touch persistence. The request-scoped implementation wraps an
``AsyncSession``; tests substitute an in-memory store.
"""
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import List, Optional, Tuple

from sqlalchemy import select, delete, insert, update, func, and_
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.exc import OperationalError, InterfaceError, TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.permissions.exceptions import StorageUnavailableError
from app.features.permissions.models import (
    OverrideType,
    Permission,
    role_permissions,
    user_permissions,
)
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)

# Dialects with a native single-statement upsert
_DIALECT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
    "mysql": mysql.insert,
    "mariadb": mysql.insert,
}


@dataclass(frozen=True)
class PermissionRecord:
    id: str
    name: str
    description: Optional[str] = None


class PermissionStore(ABC):
    """
    Persistence operations required by the permission core.

    Reads may happen anywhere; writes are only issued inside
    ``transaction()`` so a mutation is committed or discarded as a whole.
    """

    @abstractmethod
    def transaction(self):
        """Async context manager committing on success, rolling back on error."""

    # Catalog

    @abstractmethod
    async def list_permissions(self) -> List[PermissionRecord]:
        ...

    @abstractmethod
    async def list_permissions_by_names(self, names: Iterable[str]) -> List[PermissionRecord]:
        """Return the catalog entries for ``names``; unknown names are absent."""

    @abstractmethod
    async def list_permissions_by_ids(self, permission_ids: Iterable[str]) -> List[PermissionRecord]:
        ...

    # Role policy

    @abstractmethod
    async def get_role_permission_names(self, role: str) -> List[str]:
        ...

    @abstractmethod
    async def replace_role_permissions(self, role: str, permission_ids: Iterable[str]) -> None:
        ...

    @abstractmethod
    async def count_users_with_role(self, role: str) -> int:
        ...

    # Users and overrides

    @abstractmethod
    async def get_user_role(self, user_id: str) -> Optional[str]:
        """Return the user's role, or None when the user is unknown."""

    @abstractmethod
    async def get_user_overrides(self, user_id: str) -> List[Tuple[str, OverrideType]]:
        """Return ``(permission_name, type)`` pairs for the user."""

    @abstractmethod
    async def upsert_user_overrides(
        self,
        user_id: str,
        permission_ids: Iterable[str],
        override_type: OverrideType
    ) -> None:
        """Set ``override_type`` for every pair, replacing any existing type."""

    async def upsert_user_override(self, user_id: str, permission_id: str, override_type: OverrideType) -> None:
        await self.upsert_user_overrides(user_id, [permission_id], override_type)

    @abstractmethod
    async def delete_user_override(self, user_id: str, permission_id: str) -> None:
        ...

    @abstractmethod
    async def delete_all_user_overrides(self, user_id: str) -> None:
        ...


class SqlAlchemyPermissionStore(PermissionStore):
    """
    ``PermissionStore`` backed by the application's relational database.

    Connectivity failures surface as ``StorageUnavailableError``; integrity
    and programming errors propagate unchanged.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    @property
    def dialect_name(self) -> str:
        return self.db.get_bind().dialect.name

    async def _execute(self, stmt, params=None):
        try:
            if params is None:
                return await self.db.execute(stmt)
            return await self.db.execute(stmt, params)
        except (OperationalError, InterfaceError, PoolTimeoutError) as e:
            log.error("Permission store unreachable: %s", e)
            raise StorageUnavailableError() from e

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        try:
            yield
        except Exception:
            await self.db.rollback()
            raise
        try:
            await self.db.commit()
        except (OperationalError, InterfaceError, PoolTimeoutError) as e:
            await self.db.rollback()
            log.error("Commit failed, permission store unreachable: %s", e)
            raise StorageUnavailableError() from e

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    @staticmethod
    def _record(permission: Permission) -> PermissionRecord:
        return PermissionRecord(id=permission.id, name=permission.name, description=permission.description)

    async def list_permissions(self) -> List[PermissionRecord]:
        result = await self._execute(select(Permission).order_by(Permission.name))
        return [self._record(p) for p in result.scalars().all()]

    async def list_permissions_by_names(self, names: Iterable[str]) -> List[PermissionRecord]:
        names = set(names)
        if not names:
            return []
        result = await self._execute(select(Permission).where(Permission.name.in_(names)))
        return [self._record(p) for p in result.scalars().all()]

    async def list_permissions_by_ids(self, permission_ids: Iterable[str]) -> List[PermissionRecord]:
        permission_ids = set(permission_ids)
        if not permission_ids:
            return []
        result = await self._execute(select(Permission).where(Permission.id.in_(permission_ids)))
        return [self._record(p) for p in result.scalars().all()]

    # ------------------------------------------------------------------
    # Role policy
    # ------------------------------------------------------------------

    async def get_role_permission_names(self, role: str) -> List[str]:
        stmt = (
            select(Permission.name)
            .join(role_permissions, role_permissions.c.permission_id == Permission.id)
            .where(role_permissions.c.role == role)
        )
        result = await self._execute(stmt)
        return list(result.scalars().all())

    async def replace_role_permissions(self, role: str, permission_ids: Iterable[str]) -> None:
        if self.dialect_name == "postgresql":
            # Serialize replaces of the same role until commit
            await self._execute(select(func.pg_advisory_xact_lock(func.hashtext(role))))

        await self._execute(delete(role_permissions).where(role_permissions.c.role == role))

        rows = [{"role": role, "permission_id": pid} for pid in sorted(set(permission_ids))]
        if rows:
            await self._execute(insert(role_permissions), rows)

    async def count_users_with_role(self, role: str) -> int:
        result = await self._execute(select(func.count()).select_from(User).where(User.role == role))
        return result.scalar_one()

    # ------------------------------------------------------------------
    # Users and overrides
    # ------------------------------------------------------------------

    async def get_user_role(self, user_id: str) -> Optional[str]:
        result = await self._execute(select(User.role).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_user_overrides(self, user_id: str) -> List[Tuple[str, OverrideType]]:
        stmt = (
            select(Permission.name, user_permissions.c.type)
            .join(user_permissions, user_permissions.c.permission_id == Permission.id)
            .where(user_permissions.c.user_id == user_id)
        )
        result = await self._execute(stmt)
        return [(name, OverrideType(override_type)) for name, override_type in result.all()]

    async def upsert_user_overrides(
        self,
        user_id: str,
        permission_ids: Iterable[str],
        override_type: OverrideType
    ) -> None:
        permission_ids = set(permission_ids)
        if not permission_ids:
            return

        dialect_insert = _DIALECT_INSERTS.get(self.dialect_name)
        if dialect_insert is None:
            log.debug("No native upsert for dialect %s, using lookup", self.dialect_name)
            await self._upsert_by_lookup(user_id, permission_ids, override_type)
            return

        # One statement; an existing pair takes the new type
        rows = [{"user_id": user_id, "permission_id": pid, "type": override_type} for pid in sorted(permission_ids)]
        stmt = dialect_insert(user_permissions)
        if self.dialect_name in ("mysql", "mariadb"):
            stmt = stmt.on_duplicate_key_update(type=stmt.inserted.type)
        else:
            stmt = stmt.on_conflict_do_update(
                index_elements=[user_permissions.c.user_id, user_permissions.c.permission_id],
                set_={"type": stmt.excluded.type}
            )
        await self._execute(stmt, rows)

    async def _upsert_by_lookup(self, user_id: str, permission_ids: set, override_type: OverrideType) -> None:
        # Update the pairs that exist, insert the rest
        result = await self._execute(
            select(user_permissions.c.permission_id).where(
                and_(
                    user_permissions.c.user_id == user_id,
                    user_permissions.c.permission_id.in_(permission_ids)
                )
            )
        )
        existing = set(result.scalars().all())

        if existing:
            await self._execute(
                update(user_permissions)
                .where(
                    and_(
                        user_permissions.c.user_id == user_id,
                        user_permissions.c.permission_id.in_(existing)
                    )
                )
                .values(type=override_type)
            )

        missing = sorted(permission_ids - existing)
        if missing:
            await self._execute(
                insert(user_permissions),
                [{"user_id": user_id, "permission_id": pid, "type": override_type} for pid in missing]
            )

    async def delete_user_override(self, user_id: str, permission_id: str) -> None:
        await self._execute(
            delete(user_permissions).where(
                and_(
                    user_permissions.c.user_id == user_id,
                    user_permissions.c.permission_id == permission_id
                )
            )
        )

    async def delete_all_user_overrides(self, user_id: str) -> None:
        await self._execute(delete(user_permissions).where(user_permissions.c.user_id == user_id))
