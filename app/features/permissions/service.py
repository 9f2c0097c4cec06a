"""
Permission resolution and override management.

Implements:
- Catalog lookups (permission names <-> ids)
- Effective permission resolution: (role baseline | grants) - revokes
- Bulk and single user override updates
- Role policy read / full replace
"""
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from app.features.permissions.exceptions import (
    OverrideValidationError,
    PermissionNotFoundError,
    UserNotFoundError,
)
from app.features.permissions.models import OverrideType
from app.features.permissions.store import PermissionRecord, PermissionStore
from app.features.users.models import DEFAULT_ROLE
from app.utils import get_logger


log = get_logger(__name__)

# Accepted on the single-update path; None and "clear" both reset the pair
CLEAR = "clear"
OverrideAction = Union[OverrideType, str, None]


@dataclass(frozen=True)
class EffectivePermissions:
    """Resolved view of a user's permissions with provenance."""
    user_id: str
    role: str
    role_permissions: frozenset[str] = frozenset()
    granted_permissions: frozenset[str] = frozenset()
    revoked_permissions: frozenset[str] = frozenset()

    @property
    def effective_permissions(self) -> frozenset[str]:
        # Union first, then difference: a revoke beats both baseline and grant
        return (self.role_permissions | self.granted_permissions) - self.revoked_permissions

    def __contains__(self, permission_name: str) -> bool:
        return permission_name in self.effective_permissions


@dataclass(frozen=True)
class AppliedOverrides:
    """Outcome of a bulk override update."""
    granted: frozenset[str] = frozenset()
    revoked: frozenset[str] = frozenset()
    ignored: frozenset[str] = frozenset()


@dataclass(frozen=True)
class RolePolicy:
    role: str
    permissions: frozenset[str] = field(default_factory=frozenset)
    user_count: int = 0


def parse_override_action(value: OverrideAction) -> Optional[OverrideType]:
    """
    Normalize a single-update ``type``.

    Returns None for a reset (missing type or ``"clear"``).

    Raises:
        OverrideValidationError: for anything other than grant/revoke/clear
    """
    if value is None or value == CLEAR:
        return None
    try:
        return OverrideType(value)
    except ValueError:
        raise OverrideValidationError(f"Invalid override type: {value!r}")


class PermissionCatalog:
    """Read-only access to the known permissions."""

    def __init__(self, store: PermissionStore):
        self.store = store

    async def list_permissions(self) -> List[PermissionRecord]:
        return await self.store.list_permissions()

    async def ids_by_name(self, names: Iterable[str]) -> Dict[str, str]:
        """
        Map each known name in ``names`` to its id.

        Unknown names are left out of the result rather than reported.
        """
        records = await self.store.list_permissions_by_names(set(names))
        return {record.name: record.id for record in records}

    async def get(
        self,
        permission_id: Optional[str] = None,
        permission_name: Optional[str] = None
    ) -> PermissionRecord:
        """
        Look up one permission, preferring ``permission_id`` when both are given.

        Raises:
            OverrideValidationError: if neither identifier is supplied
            PermissionNotFoundError: if the permission is not in the catalog
        """
        if permission_id:
            records = await self.store.list_permissions_by_ids([permission_id])
        elif permission_name:
            records = await self.store.list_permissions_by_names([permission_name])
        else:
            raise OverrideValidationError("permissionId or permissionName is required")

        if not records:
            log.info("Permission not found: id=%s name=%s", permission_id, permission_name)
            raise PermissionNotFoundError()
        return records[0]


class PermissionResolver:
    """
    Computes effective permissions. Read-only, holds no state of its own.

    ``default_role`` is applied to users without a role record. When it is
    None unknown users raise ``UserNotFoundError`` instead.
    """

    def __init__(self, store: PermissionStore, default_role: Optional[str] = DEFAULT_ROLE):
        self.store = store
        self.default_role = default_role

    async def resolve_role(self, user_id: str) -> str:
        role = await self.store.get_user_role(user_id)
        if role is not None:
            return role
        if self.default_role is None:
            raise UserNotFoundError(f"User {user_id} not found")
        log.debug("User %s has no role record, using default role %s", user_id, self.default_role)
        return self.default_role

    async def resolve(self, user_id: str, role: Optional[str] = None) -> EffectivePermissions:
        if role is None:
            role = await self.resolve_role(user_id)

        role_permissions = frozenset(await self.store.get_role_permission_names(role))
        overrides = await self.store.get_user_overrides(user_id)

        view = EffectivePermissions(
            user_id=user_id,
            role=role,
            role_permissions=role_permissions,
            granted_permissions=frozenset(name for name, t in overrides if t == OverrideType.GRANT),
            revoked_permissions=frozenset(name for name, t in overrides if t == OverrideType.REVOKE),
        )
        log.debug(
            "Resolved user %s (role %s): %d effective permissions",
            user_id, role, len(view.effective_permissions)
        )
        return view

    async def has_permission(self, user_id: str, permission_name: str) -> bool:
        return permission_name in await self.resolve(user_id)


class OverrideMutator:
    """
    Sole writer of user permission overrides.

    Bulk updates drop names missing from the catalog; the single update
    path treats an unknown permission as ``PermissionNotFoundError``.
    """

    def __init__(self, store: PermissionStore):
        self.store = store
        self.catalog = PermissionCatalog(store)

    async def apply_overrides(
        self,
        user_id: str,
        grant_names: Optional[Iterable[str]] = None,
        revoke_names: Optional[Iterable[str]] = None
    ) -> AppliedOverrides:
        """
        Upsert grant and revoke overrides for ``user_id`` in one transaction.

        A name present in both lists ends up revoked. Permissions not named
        keep whatever override they had; nothing is deleted.
        """
        grant_names = set(grant_names or ())
        revoke_names = set(revoke_names or ())
        requested = grant_names | revoke_names

        async with self.store.transaction():
            ids = await self.catalog.ids_by_name(requested) if requested else {}

            granted = {name for name in grant_names - revoke_names if name in ids}
            revoked = {name for name in revoke_names if name in ids}

            if granted:
                await self.store.upsert_user_overrides(user_id, [ids[n] for n in granted], OverrideType.GRANT)
            if revoked:
                await self.store.upsert_user_overrides(user_id, [ids[n] for n in revoked], OverrideType.REVOKE)

        ignored = requested - ids.keys()
        if ignored:
            log.warning("Ignoring unknown permissions for user %s: %s", user_id, sorted(ignored))
        log.info("Updated overrides for user %s: %d granted, %d revoked", user_id, len(granted), len(revoked))

        return AppliedOverrides(
            granted=frozenset(granted),
            revoked=frozenset(revoked),
            ignored=frozenset(ignored),
        )

    async def apply_override(
        self,
        user_id: str,
        permission_id: Optional[str] = None,
        permission_name: Optional[str] = None,
        override_type: OverrideAction = None
    ) -> PermissionRecord:
        """
        Set or clear a single override.

        With no ``override_type`` (or ``"clear"``) the override row is
        deleted, returning the permission to its role baseline. Deleting a
        missing row is not an error.
        """
        action = parse_override_action(override_type)
        if not permission_id and not permission_name:
            raise OverrideValidationError("permissionId or permissionName is required")

        async with self.store.transaction():
            permission = await self.catalog.get(permission_id, permission_name)
            if action is None:
                await self.store.delete_user_override(user_id, permission.id)
            else:
                await self.store.upsert_user_override(user_id, permission.id, action)

        log.info(
            "Override for user %s on %s set to %s",
            user_id, permission.name, action.value if action else CLEAR
        )
        return permission

    async def grant(
        self,
        user_id: str,
        permission_id: Optional[str] = None,
        permission_name: Optional[str] = None
    ) -> PermissionRecord:
        return await self.apply_override(user_id, permission_id, permission_name, OverrideType.GRANT)

    async def revoke(
        self,
        user_id: str,
        permission_id: Optional[str] = None,
        permission_name: Optional[str] = None
    ) -> PermissionRecord:
        return await self.apply_override(user_id, permission_id, permission_name, OverrideType.REVOKE)

    async def reset_overrides(self, user_id: str) -> None:
        """Remove every override for ``user_id``. Succeeds when there are none."""
        async with self.store.transaction():
            await self.store.delete_all_user_overrides(user_id)
        log.info("Reset all overrides for user %s", user_id)


class RolePolicyManager:
    """Reads and replaces the baseline permissions of a role."""

    def __init__(self, store: PermissionStore):
        self.store = store
        self.catalog = PermissionCatalog(store)

    async def get_role_permissions(self, role: str) -> frozenset[str]:
        return frozenset(await self.store.get_role_permission_names(role))

    async def describe_role(self, role: str) -> RolePolicy:
        return RolePolicy(
            role=role,
            permissions=await self.get_role_permissions(role),
            user_count=await self.store.count_users_with_role(role),
        )

    async def set_role_permissions(self, role: str, names: Iterable[str]) -> frozenset[str]:
        """
        Replace the role's permissions with ``names``.

        Not incremental: anything not listed is removed. Unknown names are
        dropped. Delete and insert commit together.

        Returns:
            The permission names now assigned to the role
        """
        names = set(names)

        async with self.store.transaction():
            ids = await self.catalog.ids_by_name(names) if names else {}
            await self.store.replace_role_permissions(role, ids.values())

        ignored = names - ids.keys()
        if ignored:
            log.warning("Ignoring unknown permissions for role %s: %s", role, sorted(ignored))
        log.info("Role %s now has %d permissions", role, len(ids))

        return frozenset(ids)
