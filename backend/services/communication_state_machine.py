"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Abeille Réunion - Communication State Machine                               ║
║                                                                              ║
║  SEUL CE MODULE peut marquer une communication comme "envoye"                ║
║                                                                              ║
║  brouillon -> programme | envoi_en_cours                                     ║
║  programme -> brouillon | envoi_en_cours                                     ║
║  envoi_en_cours -> envoye | brouillon | programme (libération)               ║
║  envoye: TERMINAL                                                            ║
║                                                                              ║
║  Le passage en envoi_en_cours est une mise à jour conditionnelle sur le      ║
║  statut courant: un seul déclencheur (manuel ou scheduler) peut gagner.      ║
║                                                                              ║
║  Une réservation plus vieille que SEND_CLAIM_TIMEOUT_MINUTES (processus      ║
║  arrêté en cours d'envoi) repasse en brouillon avec derniereErreur.          ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
from datetime import datetime, timezone, timedelta
from typing import Dict, List, Optional

from config import now_iso, SEND_CLAIM_TIMEOUT_MINUTES
from models.communication import CommunicationStatut

logger = logging.getLogger("communication_state_machine")

BROUILLON = CommunicationStatut.BROUILLON.value
PROGRAMME = CommunicationStatut.PROGRAMME.value
ENVOI_EN_COURS = CommunicationStatut.ENVOI_EN_COURS.value
ENVOYE = CommunicationStatut.ENVOYE.value

VALID_COMMUNICATION_TRANSITIONS = {
    BROUILLON: [PROGRAMME, ENVOI_EN_COURS],
    PROGRAMME: [BROUILLON, ENVOI_EN_COURS],
    ENVOI_EN_COURS: [ENVOYE, BROUILLON, PROGRAMME],
    ENVOYE: [],
}


class CommunicationStateError(Exception):
    """Transition de statut interdite ou perdue face à un autre déclencheur"""
    pass


class NoRecipientsError(Exception):
    """Aucun destinataire: rien n'est envoyé"""
    pass


def validate_transition(communication_id: str, from_statut: str, to_statut: str) -> bool:
    valid_next = VALID_COMMUNICATION_TRANSITIONS.get(from_statut, [])
    if to_statut not in valid_next:
        raise CommunicationStateError(
            f"Transition interdite: communication {communication_id} "
            f"ne peut pas passer de '{from_statut}' à '{to_statut}'"
        )
    return True


async def claim_for_sending(db, communication_id: str, from_statut: str, extra_filter: Optional[Dict] = None) -> Dict:
    """
    Passe atomiquement la communication de from_statut à envoi_en_cours.
    Raises CommunicationStateError si le statut a changé entre-temps.
    """
    validate_transition(communication_id, from_statut, ENVOI_EN_COURS)

    query = {"id": communication_id, "statut": from_statut}
    if extra_filter:
        query.update(extra_filter)

    result = await db.communications.update_one(
        query,
        {"$set": {"statut": ENVOI_EN_COURS, "envoiDemarreLe": now_iso(), "updated_at": now_iso()}}
    )
    if result.modified_count != 1:
        raise CommunicationStateError(
            f"Communication {communication_id} déjà prise en charge ou plus en statut '{from_statut}'"
        )

    logger.info(f"[STATE_MACHINE] Communication {communication_id} {from_statut} -> {ENVOI_EN_COURS}")
    return await db.communications.find_one({"id": communication_id}, {"_id": 0})


async def release_claim(db, communication_id: str, to_statut: str, erreur: Optional[str] = None):
    """Rend la main: envoi_en_cours -> brouillon/programme"""
    validate_transition(communication_id, ENVOI_EN_COURS, to_statut)
    update = {"statut": to_statut, "updated_at": now_iso()}
    if erreur:
        update["derniereErreur"] = erreur
    await db.communications.update_one(
        {"id": communication_id, "statut": ENVOI_EN_COURS},
        {"$set": update, "$unset": {"envoiDemarreLe": ""}}
    )
    logger.info(f"[STATE_MACHINE] Communication {communication_id} {ENVOI_EN_COURS} -> {to_statut}")


async def mark_sent(db, communication_id: str, resultat: Dict) -> Dict:
    """
    🔒 SEULE FONCTION AUTORISÉE pour marquer une communication comme "envoye".
    Les compteurs sont écrasés, jamais cumulés.
    """
    now = now_iso()
    await db.communications.update_one(
        {"id": communication_id, "statut": ENVOI_EN_COURS},
        {
            "$set": {
                "statut": ENVOYE,
                "dateEnvoi": now,
                "emailsEnvoyes": resultat["emailsEnvoyes"],
                "emailsEchoues": resultat["emailsEchoues"],
                "erreurs": resultat["erreurs"],
                "updated_at": now,
            },
            "$unset": {"envoiDemarreLe": "", "derniereErreur": ""},
        }
    )
    logger.info(
        f"[STATE_MACHINE] Communication {communication_id} -> {ENVOYE} | "
        f"envoyes={resultat['emailsEnvoyes']} echoues={resultat['emailsEchoues']}"
    )
    return await db.communications.find_one({"id": communication_id}, {"_id": 0})


async def envoyer_communication(
    db,
    communication_id: str,
    resolver,
    dispatcher,
    from_statut: str = BROUILLON,
    extra_filter: Optional[Dict] = None
) -> Dict:
    """
    Réserve -> résout les destinataires -> envoie par lots -> persiste.

    Sans destinataire: la communication repasse en brouillon et
    NoRecipientsError est levée, aucun email n'est envoyé.
    """
    communication = await claim_for_sending(db, communication_id, from_statut, extra_filter)

    try:
        destinataires = await resolver.resolve(communication)
    except Exception:
        await release_claim(db, communication_id, from_statut)
        raise

    if not destinataires:
        await release_claim(db, communication_id, BROUILLON, "Aucun destinataire trouvé")
        raise NoRecipientsError("Aucun destinataire trouvé pour cette communication")

    try:
        resultat = await dispatcher.dispatch(communication, destinataires)
    except Exception:
        await release_claim(db, communication_id, from_statut)
        raise

    return await mark_sent(db, communication_id, resultat)


async def release_stale_claims(db, timeout_minutes: int = SEND_CLAIM_TIMEOUT_MINUTES, now: Optional[datetime] = None) -> List[str]:
    """
    Libère les communications restées en envoi_en_cours au-delà du délai.
    Retour en brouillon: une partie des emails a pu partir, un admin relance.
    Returns: ids des communications libérées
    """
    now = now or datetime.now(timezone.utc)
    limite = (now - timedelta(minutes=timeout_minutes)).isoformat()

    bloquees = await db.communications.find(
        {"statut": ENVOI_EN_COURS, "envoiDemarreLe": {"$lte": limite}},
        {"_id": 0, "id": 1, "envoiDemarreLe": 1}
    ).to_list(None)

    liberees = []
    for communication in bloquees:
        result = await db.communications.update_one(
            {"id": communication["id"], "statut": ENVOI_EN_COURS, "envoiDemarreLe": communication["envoiDemarreLe"]},
            {
                "$set": {
                    "statut": BROUILLON,
                    "derniereErreur": "Envoi interrompu, à vérifier avant de relancer",
                    "updated_at": now_iso(),
                },
                "$unset": {"envoiDemarreLe": ""},
            }
        )
        if result.modified_count == 1:
            liberees.append(communication["id"])
            logger.warning(
                f"[STATE_MACHINE] Communication {communication['id']} bloquée en {ENVOI_EN_COURS} "
                f"depuis {communication['envoiDemarreLe']} -> {BROUILLON}"
            )
    return liberees
