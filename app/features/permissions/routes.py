"""
Permission management API routes.

Provides endpoints for the permission catalog, per-user overrides and role
policies. Domain errors are rendered by the app-level exception handlers.
"""
from typing import Annotated, Any, Dict, List
from fastapi import APIRouter, Body, Depends

from app.features.permissions.dependencies import (
    get_override_mutator,
    get_permission_catalog,
    get_permission_resolver,
    get_role_policy_manager,
)
from app.features.permissions.schemas import (
    ApiResponse,
    AppliedOverridesResponse,
    BulkOverrideUpdate,
    EffectivePermissionsResponse,
    PermissionReference,
    PermissionResponse,
    RolePermissionsResponse,
    RolePermissionsUpdate,
    SingleOverrideUpdate,
    parse_legacy_update,
)
from app.features.permissions.service import (
    OverrideMutator,
    PermissionCatalog,
    PermissionResolver,
    RolePolicyManager,
)
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()

Catalog = Annotated[PermissionCatalog, Depends(get_permission_catalog)]
Resolver = Annotated[PermissionResolver, Depends(get_permission_resolver)]
Mutator = Annotated[OverrideMutator, Depends(get_override_mutator)]
RolePolicies = Annotated[RolePolicyManager, Depends(get_role_policy_manager)]


# ============================================================================
# Catalog
# ============================================================================

@router.get("/permissions", response_model=ApiResponse[List[PermissionResponse]], response_model_exclude_none=True)
async def list_permissions(catalog: Catalog):
    """List every known permission."""
    permissions = await catalog.list_permissions()
    return ApiResponse(data=[PermissionResponse.model_validate(p) for p in permissions])


# ============================================================================
# User Overrides
# ============================================================================

@router.get(
    "/users/{user_id}/permissions",
    response_model=ApiResponse[EffectivePermissionsResponse],
    response_model_exclude_none=True,
)
async def get_user_permissions(user_id: str, resolver: Resolver):
    """Effective permissions for a user, with role, granted and revoked views."""
    view = await resolver.resolve(user_id)
    return ApiResponse(data=EffectivePermissionsResponse.from_view(view))


@router.put(
    "/users/{user_id}/permissions",
    response_model=ApiResponse[AppliedOverridesResponse],
    response_model_exclude_none=True,
)
async def bulk_update_user_permissions(user_id: str, update: BulkOverrideUpdate, mutator: Mutator):
    """Grant and revoke lists of permissions. Unknown names are ignored."""
    result = await mutator.apply_overrides(user_id, update.grant_permissions, update.revoke_permissions)
    return ApiResponse(data=AppliedOverridesResponse.from_result(result), message="User permissions updated")


@router.patch("/users/{user_id}/permissions", response_model=ApiResponse[Any], response_model_exclude_none=True)
async def update_user_permission(user_id: str, update: SingleOverrideUpdate, mutator: Mutator):
    """Set one override, or reset it to the role baseline when ``type`` is omitted."""
    await mutator.apply_override(user_id, update.permission_id, update.permission_name, update.type)
    return ApiResponse(message="User permission updated")


@router.post("/users/{user_id}/permissions", response_model=ApiResponse[Any], response_model_exclude_none=True)
async def legacy_update_user_permissions(
    user_id: str,
    mutator: Mutator,
    body: Annotated[Dict[str, Any], Body()],
):
    """
    Combined endpoint for older clients: bulk when the body carries
    ``grantPermissions``/``revokePermissions``, single update otherwise.
    """
    update = parse_legacy_update(body)
    log.debug("Legacy permission update for user %s handled as %s", user_id, type(update).__name__)
    if isinstance(update, BulkOverrideUpdate):
        return await bulk_update_user_permissions(user_id, update, mutator)
    return await update_user_permission(user_id, update, mutator)


@router.post("/users/{user_id}/permissions/grant", response_model=ApiResponse[Any], response_model_exclude_none=True)
async def grant_user_permission(user_id: str, permission: PermissionReference, mutator: Mutator):
    await mutator.grant(user_id, permission.permission_id, permission.permission_name)
    return ApiResponse(message="User permission updated")


@router.post("/users/{user_id}/permissions/revoke", response_model=ApiResponse[Any], response_model_exclude_none=True)
async def revoke_user_permission(user_id: str, permission: PermissionReference, mutator: Mutator):
    await mutator.revoke(user_id, permission.permission_id, permission.permission_name)
    return ApiResponse(message="User permission updated")


@router.delete("/users/{user_id}/permissions", response_model=ApiResponse[Any], response_model_exclude_none=True)
async def reset_user_permissions(user_id: str, mutator: Mutator):
    """Drop every override so the user falls back to their role's permissions."""
    await mutator.reset_overrides(user_id)
    return ApiResponse(message="User permissions reset")


# ============================================================================
# Role Policy
# ============================================================================

@router.get(
    "/roles/{role}/permissions",
    response_model=ApiResponse[RolePermissionsResponse],
    response_model_exclude_none=True,
)
async def get_role_permissions(role: str, policies: RolePolicies):
    policy = await policies.describe_role(role)
    return ApiResponse(data=RolePermissionsResponse.from_policy(policy))


@router.put(
    "/roles/{role}/permissions",
    response_model=ApiResponse[RolePermissionsResponse],
    response_model_exclude_none=True,
)
async def update_role_permissions(role: str, update: RolePermissionsUpdate, policies: RolePolicies):
    """Replace the role's permissions with exactly the given list."""
    await policies.set_role_permissions(role, update.permissions)
    policy = await policies.describe_role(role)
    return ApiResponse(data=RolePermissionsResponse.from_policy(policy), message="Role permissions updated")
