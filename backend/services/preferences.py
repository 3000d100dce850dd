"""
Abeille Réunion - Service Préférences

Deux lectures:
- get_or_create_preferences: lecture par l'adhérent, crée les défauts si absent
- get_communication_flags: lecture pour le ciblage, absent = tout à False
"""

import logging
import uuid
from typing import Dict

from config import now_iso
from models.preference import DEFAULT_COMMUNICATIONS

logger = logging.getLogger("preferences")

FLAGS = ("mesGroupements", "autresGroupements", "alertesSanitaires")


async def get_or_create_preferences(db, user_id: str) -> Dict:
    """Préférences de l'utilisateur, créées avec les valeurs par défaut si absentes"""
    now = now_iso()
    await db.preferences.update_one(
        {"user": user_id},
        {"$setOnInsert": {
            "id": str(uuid.uuid4()),
            "user": user_id,
            "communications": dict(DEFAULT_COMMUNICATIONS),
            "created_at": now,
            "updated_at": now,
        }},
        upsert=True
    )
    return await db.preferences.find_one({"user": user_id}, {"_id": 0})


async def update_preferences(db, user_id: str, communications: Dict[str, bool]) -> Dict:
    """Remplace les drapeaux de communication (crée le document si besoin)"""
    now = now_iso()
    await db.preferences.update_one(
        {"user": user_id},
        {
            "$set": {
                "communications": {k: bool(communications.get(k, False)) for k in FLAGS},
                "updated_at": now,
            },
            "$setOnInsert": {
                "id": str(uuid.uuid4()),
                "user": user_id,
                "created_at": now,
            },
        },
        upsert=True
    )
    logger.info(f"Préférences mises à jour pour {user_id}")
    return await db.preferences.find_one({"user": user_id}, {"_id": 0})


async def get_communication_flags(db, user_id: str) -> Dict[str, bool]:
    """
    Drapeaux utilisés par le ciblage.
    Pas de document -> tous les drapeaux à False (l'utilisateur est exclu).
    """
    doc = await db.preferences.find_one({"user": user_id}, {"_id": 0, "communications": 1})
    communications = (doc or {}).get("communications") or {}
    return {k: communications.get(k) is True for k in FLAGS}
