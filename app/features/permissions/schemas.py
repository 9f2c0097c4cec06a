"""
Pydantic schemas for permission management.

JSON keys are camelCase; every response is wrapped in ``ApiResponse``.
"""
from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar, Union
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from app.features.permissions.exceptions import OverrideValidationError
from app.features.permissions.service import AppliedOverrides, EffectivePermissions, RolePolicy


DataT = TypeVar("DataT")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ApiResponse(CamelModel, Generic[DataT]):
    """Uniform response envelope."""
    success: bool = True
    data: Optional[DataT] = None
    message: Optional[str] = None


# ============================================================================
# Catalog
# ============================================================================

class PermissionResponse(CamelModel):
    id: str
    name: str
    description: Optional[str] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ============================================================================
# User Overrides
# ============================================================================

class EffectivePermissionsResponse(CamelModel):
    """Effective permissions together with where they came from."""
    user_id: str
    role: str
    effective_permissions: List[str] = []
    role_permissions: List[str] = []
    granted_permissions: List[str] = []
    revoked_permissions: List[str] = []

    @classmethod
    def from_view(cls, view: EffectivePermissions) -> "EffectivePermissionsResponse":
        return cls(
            user_id=view.user_id,
            role=view.role,
            effective_permissions=sorted(view.effective_permissions),
            role_permissions=sorted(view.role_permissions),
            granted_permissions=sorted(view.granted_permissions),
            revoked_permissions=sorted(view.revoked_permissions),
        )


class BulkOverrideUpdate(CamelModel):
    """Grant and revoke lists applied in one call. At least one list is required."""
    grant_permissions: Optional[List[str]] = Field(None, description="Permission names to grant")
    revoke_permissions: Optional[List[str]] = Field(None, description="Permission names to revoke")

    @model_validator(mode="after")
    def require_a_list(self) -> "BulkOverrideUpdate":
        if self.grant_permissions is None and self.revoke_permissions is None:
            raise ValueError("grantPermissions or revokePermissions is required")
        return self


class PermissionReference(CamelModel):
    """Identifies one permission by id or by name (id wins if both are set)."""
    permission_id: Optional[str] = None
    permission_name: Optional[str] = None

    @model_validator(mode="after")
    def require_identifier(self):
        if not self.permission_id and not self.permission_name:
            raise ValueError("permissionId or permissionName is required")
        return self


class SingleOverrideUpdate(PermissionReference):
    """Set one override; a missing ``type`` (or ``clear``) resets it."""
    type: Optional[Literal["grant", "revoke", "clear"]] = None

    @field_validator("type", mode="before")
    @classmethod
    def empty_type_is_reset(cls, v):
        return v or None


class AppliedOverridesResponse(CamelModel):
    granted: List[str] = []
    revoked: List[str] = []
    ignored: List[str] = []

    @classmethod
    def from_result(cls, result: AppliedOverrides) -> "AppliedOverridesResponse":
        return cls(
            granted=sorted(result.granted),
            revoked=sorted(result.revoked),
            ignored=sorted(result.ignored),
        )


def parse_legacy_update(body: Dict[str, Any]) -> Union[BulkOverrideUpdate, SingleOverrideUpdate]:
    """
    Pick the update shape for the combined legacy endpoint.

    A body carrying ``grantPermissions`` or ``revokePermissions`` is a bulk
    update; otherwise it must identify a single permission.

    Raises:
        OverrideValidationError: if the body matches neither shape
    """
    try:
        if body.get("grantPermissions") is not None or body.get("revokePermissions") is not None:
            return BulkOverrideUpdate.model_validate(body)
        if body.get("permissionId") or body.get("permissionName"):
            return SingleOverrideUpdate.model_validate(body)
    except ValidationError as e:
        raise OverrideValidationError(e.errors()[0]["msg"])
    raise OverrideValidationError(
        "Expected grantPermissions/revokePermissions or permissionId/permissionName"
    )


# ============================================================================
# Role Policy
# ============================================================================

class RolePermissionsUpdate(CamelModel):
    """Complete permission set for a role. ``permissionNames`` is the legacy key."""
    permissions: List[str] = Field(
        ...,
        validation_alias=AliasChoices("permissions", "permissionNames"),
        description="Permission names the role should have",
    )


class RolePermissionsResponse(CamelModel):
    role_id: str
    role_name: str
    permissions: List[str] = []
    user_count: int = 0

    @classmethod
    def from_policy(cls, policy: RolePolicy) -> "RolePermissionsResponse":
        return cls(
            role_id=policy.role,
            role_name=policy.role,
            permissions=sorted(policy.permissions),
            user_count=policy.user_count,
        )
