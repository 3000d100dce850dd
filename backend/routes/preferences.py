"""
Abeille Réunion - Routes Préférences de communication
"""

from fastapi import APIRouter, Depends

from config import get_db
from models.preference import PreferencesUpdate
from routes.auth import get_current_user
from services.preferences import get_or_create_preferences, update_preferences

router = APIRouter(prefix="/preferences", tags=["Préférences"])


@router.get("")
async def get_my_preferences(user: dict = Depends(get_current_user), db=Depends(get_db)):
    """Préférences de l'utilisateur connecté (créées avec les valeurs par défaut au besoin)"""
    return await get_or_create_preferences(db, user["id"])


@router.put("")
async def update_my_preferences(
    data: PreferencesUpdate,
    user: dict = Depends(get_current_user),
    db=Depends(get_db)
):
    preferences = await update_preferences(db, user["id"], data.communications.model_dump())
    return {"success": True, "preferences": preferences}
