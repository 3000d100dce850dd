"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Abeille Réunion - Routes Communications (admin)                             ║
║                                                                              ║
║  Visibilité: alertes sanitaires + organisme de l'admin + tous_groupements    ║
║  Modification / suppression / envoi: brouillon uniquement, auteur uniquement ║
║  Envoi: réservation atomique via communication_state_machine                 ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, Query

from config import get_db, now_iso, to_iso, parse_date
from email_service import EmailService, EmailSettings
from models.communication import (
    CommunicationCreate,
    CommunicationUpdate,
    CommunicationStatut,
    Destinataires,
)
from routes.auth import require_admin
from services.batch_dispatcher import BatchDispatcher
from services.communication_state_machine import (
    envoyer_communication,
    CommunicationStateError,
    NoRecipientsError,
    BROUILLON,
)
from services.permissions import get_user_organismes, enforce_write_organisme
from services.recipient_resolver import RecipientResolver

logger = logging.getLogger("communications")

router = APIRouter(prefix="/communications", tags=["Communications"])


# ==================== DEPENDENCIES ====================

def get_dispatcher() -> BatchDispatcher:
    """Envoi réel via SendGrid (remplacé dans les tests)"""
    return BatchDispatcher(EmailService(EmailSettings.from_env()))


def get_resolver(db=Depends(get_db)) -> RecipientResolver:
    return RecipientResolver(db)


# ==================== HELPERS ====================

def build_visibility_filter(user: dict) -> dict:
    """Alertes sanitaires OU organisme de l'admin OU diffusées à tous les groupements"""
    if user.get("role") == "super_admin":
        return {}
    return {"$or": [
        {"estSanitaire": True},
        {"organisme": {"$in": get_user_organismes(user)}},
        {"destinataires": Destinataires.TOUS_GROUPEMENTS.value},
    ]}


def is_visible(communication: dict, user: dict) -> bool:
    if user.get("role") == "super_admin":
        return True
    return (
        bool(communication.get("estSanitaire"))
        or communication.get("organisme") in get_user_organismes(user)
        or communication.get("destinataires") == Destinataires.TOUS_GROUPEMENTS.value
    )


def check_date_programmee(statut: str, date_programmee: Optional[datetime]) -> Optional[str]:
    if statut != CommunicationStatut.PROGRAMME.value:
        return None
    if not date_programmee:
        raise HTTPException(status_code=400, detail="La date de programmation est requise")
    iso = to_iso(date_programmee)
    if iso <= to_iso(datetime.now(timezone.utc)):
        raise HTTPException(status_code=400, detail="La date de programmation doit être dans le futur")
    return iso


async def get_editable_communication(db, communication_id: str, user: dict, action: str) -> dict:
    """404 si absente, 400 si déjà partie, 403 si l'appelant n'est pas l'auteur"""
    communication = await db.communications.find_one({"id": communication_id}, {"_id": 0})
    if not communication:
        raise HTTPException(status_code=404, detail="Communication non trouvée")

    if communication.get("statut") != BROUILLON:
        raise HTTPException(
            status_code=400,
            detail=f"Impossible de {action} une communication déjà envoyée ou programmée"
        )

    if communication.get("auteur") != user["id"]:
        raise HTTPException(status_code=403, detail=f"Seul l'auteur peut {action} cette communication")

    return communication


# ==================== CRUD ====================

@router.get("")
async def list_communications(
    statut: Optional[str] = Query(None),
    user: dict = Depends(require_admin),
    db=Depends(get_db)
):
    query = build_visibility_filter(user)
    if statut:
        query["statut"] = statut

    communications = await db.communications.find(query, {"_id": 0}).sort("created_at", -1).to_list(500)
    return {"communications": communications, "count": len(communications)}


@router.post("")
async def create_communication(
    data: CommunicationCreate,
    user: dict = Depends(require_admin),
    db=Depends(get_db)
):
    organisme = enforce_write_organisme(user, data.organisme.value if data.organisme else None)
    date_programmee = check_date_programmee(data.statut.value, data.dateProgrammee)

    now = now_iso()
    communication = {
        "id": str(uuid.uuid4()),
        "titre": data.titre,
        "contenu": data.contenu,
        "estSanitaire": data.estSanitaire,
        "criteresDestinataires": [c.model_dump(mode="json") for c in data.criteresDestinataires],
        "destinataires": (data.destinataires or Destinataires.MON_GROUPEMENT).value,
        "organisme": organisme,
        "auteur": user["id"],
        "statut": data.statut.value,
        "dateProgrammee": date_programmee,
        "emailsEnvoyes": 0,
        "emailsEchoues": 0,
        "erreurs": [],
        "created_at": now,
        "updated_at": now,
    }

    await db.communications.insert_one(communication)
    communication.pop("_id", None)

    logger.info(
        f"[COMMUNICATION] created id={communication['id']} organisme={organisme} "
        f"statut={communication['statut']} by={user.get('email')}"
    )
    return {"success": True, "communication": communication}


@router.get("/{communication_id}")
async def get_communication(
    communication_id: str,
    user: dict = Depends(require_admin),
    db=Depends(get_db)
):
    communication = await db.communications.find_one({"id": communication_id}, {"_id": 0})
    if not communication:
        raise HTTPException(status_code=404, detail="Communication non trouvée")

    if not is_visible(communication, user):
        raise HTTPException(status_code=403, detail="Non autorisé à voir cette communication")

    return communication


@router.put("/{communication_id}")
async def update_communication(
    communication_id: str,
    data: CommunicationUpdate,
    user: dict = Depends(require_admin),
    db=Depends(get_db)
):
    communication = await get_editable_communication(db, communication_id, user, "modifier")

    update = data.model_dump(exclude_unset=True, exclude_none=True, mode="json")
    update.pop("dateProgrammee", None)

    statut = update.get("statut", communication["statut"])
    date_programmee = data.dateProgrammee or communication.get("dateProgrammee")
    update["dateProgrammee"] = check_date_programmee(statut, parse_date(date_programmee))
    update["updated_at"] = now_iso()

    await db.communications.update_one({"id": communication_id}, {"$set": update})
    updated = await db.communications.find_one({"id": communication_id}, {"_id": 0})
    return {"success": True, "communication": updated}


@router.delete("/{communication_id}")
async def delete_communication(
    communication_id: str,
    user: dict = Depends(require_admin),
    db=Depends(get_db)
):
    await get_editable_communication(db, communication_id, user, "supprimer")
    await db.communications.delete_one({"id": communication_id})
    logger.info(f"[COMMUNICATION] deleted id={communication_id} by={user.get('email')}")
    return {"success": True, "message": "Communication supprimée"}


# ==================== ENVOI ====================

@router.get("/{communication_id}/destinataires")
async def preview_destinataires(
    communication_id: str,
    user: dict = Depends(require_admin),
    db=Depends(get_db),
    resolver: RecipientResolver = Depends(get_resolver)
):
    """Aperçu des destinataires, sans envoi"""
    communication = await db.communications.find_one({"id": communication_id}, {"_id": 0})
    if not communication:
        raise HTTPException(status_code=404, detail="Communication non trouvée")
    if not is_visible(communication, user):
        raise HTTPException(status_code=403, detail="Non autorisé à voir cette communication")

    destinataires = await resolver.resolve(communication)
    return {
        "count": len(destinataires),
        "emails": [d.get("email") for d in destinataires],
    }


@router.post("/{communication_id}/send")
async def send_communication(
    communication_id: str,
    user: dict = Depends(require_admin),
    db=Depends(get_db),
    resolver: RecipientResolver = Depends(get_resolver),
    dispatcher: BatchDispatcher = Depends(get_dispatcher)
):
    await get_editable_communication(db, communication_id, user, "envoyer")

    try:
        communication = await envoyer_communication(
            db, communication_id, resolver, dispatcher, from_statut=BROUILLON
        )
    except NoRecipientsError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CommunicationStateError as e:
        raise HTTPException(status_code=409, detail=str(e))

    logger.info(
        f"[COMMUNICATION] sent id={communication_id} by={user.get('email')} "
        f"envoyes={communication.get('emailsEnvoyes')} echoues={communication.get('emailsEchoues')}"
    )
    return {
        "success": True,
        "communication": communication,
        "message": f"Communication envoyée à {communication.get('emailsEnvoyes', 0)} adhérent(s)",
    }
