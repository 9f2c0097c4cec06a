"""
Permission management feature module.

Resolves a user's effective permissions from their role's baseline plus
per-user grant/revoke overrides, and manages both sides.
"""
