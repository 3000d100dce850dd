"""
Abeille Réunion - Routes Auth
Login / Logout / Session. Les comptes sont créés par le module adhésions.
"""

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from datetime import datetime, timezone, timedelta

from config import get_db, hash_password, generate_token, now_iso
from models.auth import UserLogin
from services.permissions import get_user_organismes, is_admin

router = APIRouter(prefix="/auth", tags=["Auth"])
security = HTTPBearer(auto_error=False)

SESSION_DAYS = 7


# ==================== HELPERS ====================

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db=Depends(get_db)
):
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

    if not user.get("isActive", True):
        raise HTTPException(status_code=401, detail="Compte désactivé")

    return user


async def require_admin(user: dict = Depends(get_current_user)):
    """Admin or super_admin access."""
    if not is_admin(user):
        raise HTTPException(status_code=403, detail="Accès refusé - Admin uniquement")
    return user


# ==================== LOGIN / LOGOUT ====================

@router.post("/login")
async def login(data: UserLogin, db=Depends(get_db)):
    """Connexion utilisateur."""
    user = await db.users.find_one(
        {"email": data.email.lower().strip()},
        {"_id": 0}
    )

    if not user or user.get("password") != hash_password(data.password):
        raise HTTPException(status_code=401, detail="Email ou mot de passe incorrect")

    if not user.get("isActive", True):
        raise HTTPException(status_code=401, detail="Compte désactivé")

    token = generate_token()
    expires_at = (datetime.now(timezone.utc) + timedelta(days=SESSION_DAYS)).isoformat()

    await db.sessions.insert_one({
        "token": token,
        "user_id": user["id"],
        "created_at": now_iso(),
        "expires_at": expires_at
    })

    return {
        "token": token,
        "user": {
            "id": user["id"],
            "email": user["email"],
            "prenom": user.get("prenom", ""),
            "nom": user.get("nom", ""),
            "role": user.get("role", "user"),
            "organismes": get_user_organismes(user),
        }
    }


@router.post("/logout")
async def logout(
    user: dict = Depends(get_current_user),
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db=Depends(get_db)
):
    if credentials:
        await db.sessions.delete_one({"token": credentials.credentials})
    return {"success": True}


@router.get("/me")
async def get_me(user: dict = Depends(get_current_user)):
    """Retourne l'utilisateur + ses organismes effectifs."""
    user["organismes"] = get_user_organismes(user)
    return user
