"""
Solar CRM - Routes Auth
Session lookup for sessions issued by the external auth provider.
"""

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from config import db, now_iso
from services.permissions import get_preset_permissions

router = APIRouter(prefix="/auth", tags=["Auth"])
security = HTTPBearer(auto_error=False)


# ==================== HELPERS ====================

async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)):
    """Récupère l'utilisateur connecté depuis le token."""
    if not credentials:
        raise HTTPException(status_code=401, detail="Non authentifié")

    token = credentials.credentials
    session = await db.sessions.find_one({
        "token": token,
        "expires_at": {"$gt": now_iso()}
    })

    if not session:
        raise HTTPException(status_code=401, detail="Session expirée")

    user = await db.users.find_one(
        {"id": session["user_id"]},
        {"_id": 0, "password": 0}
    )

    if not user:
        raise HTTPException(status_code=401, detail="Utilisateur non trouvé")

    if not user.get("is_active", user.get("active", True)):
        raise HTTPException(status_code=403, detail="Compte désactivé")

    # Ensure permissions exist (migration safety)
    if not user.get("permissions"):
        user["permissions"] = get_preset_permissions(user.get("role", "visualizador"))

    return user


# ==================== SESSION ====================

@router.get("/me")
async def me(user: dict = Depends(get_current_user)):
    """Utilisateur courant + permissions effectives."""
    return {"user": user}
