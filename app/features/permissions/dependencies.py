"""
FastAPI dependencies wiring the permission core to the request's session.
"""
from typing import Annotated
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.database.engine import get_db
from app.features.permissions.service import (
    OverrideMutator,
    PermissionCatalog,
    PermissionResolver,
    RolePolicyManager,
)
from app.features.permissions.store import PermissionStore, SqlAlchemyPermissionStore


async def get_permission_store(
    db: Annotated[AsyncSession, Depends(get_db)]
) -> PermissionStore:
    """
    Request-scoped permission store.

    Override this dependency to run the routes against another store:
        app.dependency_overrides[get_permission_store] = lambda: InMemoryPermissionStore()
    """
    return SqlAlchemyPermissionStore(db)


def get_permission_catalog(
    store: Annotated[PermissionStore, Depends(get_permission_store)]
) -> PermissionCatalog:
    return PermissionCatalog(store)


def get_permission_resolver(
    store: Annotated[PermissionStore, Depends(get_permission_store)]
) -> PermissionResolver:
    return PermissionResolver(store, default_role=config.DEFAULT_USER_ROLE)


def get_override_mutator(
    store: Annotated[PermissionStore, Depends(get_permission_store)]
) -> OverrideMutator:
    return OverrideMutator(store)


def get_role_policy_manager(
    store: Annotated[PermissionStore, Depends(get_permission_store)]
) -> RolePolicyManager:
    return RolePolicyManager(store)
