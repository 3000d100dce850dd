"""
Abeille Réunion - Rôles & périmètre organisme
Deux organismes (SAR, AMAIR). Un super_admin a accès aux deux.
Un admin n'agit que sur les organismes qui lui sont rattachés.
"""

import logging
from typing import Optional, List
from fastapi import HTTPException

from config import ORGANISMES

logger = logging.getLogger("permissions")

ADMIN_ROLES = ("admin", "super_admin")


# ════════════════════════════════════════════════════════════════════════
# ORGANISMES D'UN UTILISATEUR
# ════════════════════════════════════════════════════════════════════════

def get_user_organismes(user: Optional[dict]) -> List[str]:
    """
    Organismes d'un utilisateur, ancien et nouveau format confondus.
    - super_admin: tous les organismes
    - organismes (liste) si renseigné
    - sinon organisme (champ unique historique)
    """
    if not user:
        return []

    if user.get("role") == "super_admin":
        return list(ORGANISMES)

    organismes = user.get("organismes") or []
    if organismes:
        return list(organismes)

    if user.get("organisme"):
        return [user["organisme"]]

    return []


def has_access_to_organisme(user: Optional[dict], organisme: Optional[str]) -> bool:
    if not user or not organisme:
        return False
    if user.get("role") == "super_admin":
        return True
    return organisme in get_user_organismes(user)


def is_admin(user: Optional[dict]) -> bool:
    return bool(user) and user.get("role") in ADMIN_ROLES


def build_organisme_filter(user: dict, field: str = "organisme") -> dict:
    """
    Filtre MongoDB limitant une requête aux organismes de l'utilisateur.
    super_admin -> aucun filtre
    aucun organisme -> ne retourne rien
    """
    if user.get("role") == "super_admin":
        return {}

    organismes = get_user_organismes(user)
    if not organismes:
        return {field: None}
    if len(organismes) == 1:
        return {field: organismes[0]}
    return {field: {"$in": organismes}}


def enforce_write_organisme(user: dict, provided_organisme: Optional[str] = None) -> str:
    """
    Détermine l'organisme d'une écriture.
    - Un seul organisme: toujours celui-là
    - Plusieurs (ou super_admin): organisme explicite obligatoire, et autorisé
    """
    if provided_organisme:
        provided_organisme = provided_organisme.upper()

    organismes = get_user_organismes(user)

    if len(organismes) == 1 and user.get("role") != "super_admin":
        if provided_organisme and provided_organisme != organismes[0]:
            raise HTTPException(
                status_code=403,
                detail=f"Accès refusé à l'organisme {provided_organisme}"
            )
        return organismes[0]

    if not organismes:
        raise HTTPException(status_code=403, detail="Aucun organisme rattaché à ce compte")

    if not provided_organisme:
        raise HTTPException(
            status_code=400,
            detail="Organisme explicite requis (SAR ou AMAIR)"
        )

    if provided_organisme not in ORGANISMES:
        raise HTTPException(status_code=400, detail=f"Organisme invalide: {provided_organisme}")

    if not has_access_to_organisme(user, provided_organisme):
        raise HTTPException(
            status_code=403,
            detail=f"Accès refusé à l'organisme {provided_organisme}"
        )

    return provided_organisme


# ════════════════════════════════════════════════════════════════════════
# CONTRÔLES D'ACCÈS
# ════════════════════════════════════════════════════════════════════════

def require_organisme_access(user: dict, organisme: str, action: str = "modifier"):
    """Lève 403 si l'utilisateur n'a pas accès à l'organisme"""
    if not has_access_to_organisme(user, organisme):
        logger.warning(
            f"[ORGANISME_DENIED] user={user.get('email')} organisme={organisme} action={action}"
        )
        raise HTTPException(
            status_code=403,
            detail=f"Non autorisé à {action} pour l'organisme {organisme}"
        )

