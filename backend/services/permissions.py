"""
Solar CRM - Permission System
Granular permission keys + role presets + FastAPI dependencies.
Permissions are the source of truth. Roles are presets only.
"""

import logging
from typing import Dict
from fastapi import Depends, HTTPException, Request

logger = logging.getLogger("permissions")

# ════════════════════════════════════════════════════════════════════════
# ALL PERMISSION KEYS
# ════════════════════════════════════════════════════════════════════════

ALL_PERMISSION_KEYS = [
    "alerts.view",
    "alerts.resolve",
    "settings.access",
]

# ════════════════════════════════════════════════════════════════════════
# ROLE PRESETS (defaults when a user document carries no permissions)
# ════════════════════════════════════════════════════════════════════════

_VIEW_ONLY = {"alerts.view": True, "alerts.resolve": False, "settings.access": False}
_RESOLVER = {"alerts.view": True, "alerts.resolve": True, "settings.access": False}

ROLE_PRESETS: Dict[str, Dict[str, bool]] = {
    "super_admin": {k: True for k in ALL_PERMISSION_KEYS},
    "admin": {k: True for k in ALL_PERMISSION_KEYS},
    "gerente_comercial": dict(_RESOLVER),
    "gerente_operacional": dict(_RESOLVER),
    "compras": dict(_RESOLVER),
    "estoque": dict(_RESOLVER),
    "vendedor": dict(_VIEW_ONLY),
    "tecnico": dict(_VIEW_ONLY),
    "financeiro": dict(_VIEW_ONLY),
    "visualizador": dict(_VIEW_ONLY),
}

VALID_ROLES = list(ROLE_PRESETS.keys())


def get_preset_permissions(role: str) -> Dict[str, bool]:
    """Returns the default permissions for a role."""
    return dict(ROLE_PRESETS.get(role, ROLE_PRESETS["visualizador"]))


# ════════════════════════════════════════════════════════════════════════
# PERMISSION CHECK HELPERS
# ════════════════════════════════════════════════════════════════════════

def user_has_permission(user: dict, key: str) -> bool:
    """Check if user has a specific permission."""
    if user.get("role") == "super_admin":
        return True
    perms = user.get("permissions") or get_preset_permissions(user.get("role", "visualizador"))
    return perms.get(key, False) is True


# ════════════════════════════════════════════════════════════════════════
# FASTAPI DEPENDENCIES
# ════════════════════════════════════════════════════════════════════════

def require_permission(permission_key: str):
    """
    FastAPI dependency factory.
    Usage: @router.get("/endpoint", dependencies=[Depends(require_permission("alerts.view"))])
    """
    from routes.auth import get_current_user

    async def _check(request: Request, user: dict = Depends(get_current_user)):
        if not user_has_permission(user, permission_key):
            logger.warning(
                f"[PERMISSION_DENIED] user={user.get('email')} "
                f"key={permission_key} role={user.get('role')}"
            )
            raise HTTPException(
                status_code=403,
                detail=f"Permission requise: {permission_key}"
            )
        return user

    return _check
