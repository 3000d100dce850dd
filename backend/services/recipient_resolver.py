"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Abeille Réunion - Résolution des destinataires d'une communication          ║
║                                                                              ║
║  resolve(communication) -> liste d'utilisateurs, sans doublon                ║
║                                                                              ║
║  AlerteSanitaire   : adhésion actif/expiree (toute année, tout organisme)    ║
║                      + alertesSanitaires                                     ║
║  ListeCriteres     : adhésions (organisme, annee, statut) + mesGroupements   ║
║  CiblageHistorique : adhésion active de l'année en cours, puis               ║
║                      SAR/AMAIR      -> organisme cité + mesGroupements       ║
║                      mon_groupement -> même organisme + mesGroupements       ║
║                      tous_groupements -> même organisme + mesGroupements     ║
║                                          OU autre + autresGroupements        ║
║                                                                              ║
║  Préférence absente = exclu. Aucune exception: liste vide si personne.       ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
from typing import Dict, List, Optional

from config import local_now, local_year
from models.adhesion import AdhesionStatus, STATUTS_ALERTE_SANITAIRE
from models.communication import (
    AlerteSanitaire,
    ListeCriteres,
    CiblageHistorique,
    Ciblage,
    Destinataires,
    ciblage_from_document,
)
from services.permissions import get_user_organismes
from services.preferences import get_communication_flags

logger = logging.getLogger("recipient_resolver")

USER_PROJECTION = {"_id": 0, "password": 0}


class RecipientResolver:
    """Calcule les destinataires d'une communication à partir des adhésions et préférences"""

    def __init__(self, db, clock=None):
        self.db = db
        self._clock = clock or local_now

    async def resolve(self, communication: dict) -> List[Dict]:
        ciblage = ciblage_from_document(communication)
        destinataires = await self.resolve_ciblage(ciblage)
        logger.info(
            f"[DESTINATAIRES] communication={communication.get('id')} "
            f"ciblage={ciblage!r} -> {len(destinataires)} destinataire(s)"
        )
        return destinataires

    async def resolve_ciblage(self, ciblage: Ciblage) -> List[Dict]:
        if isinstance(ciblage, AlerteSanitaire):
            return await self._alerte_sanitaire()
        if isinstance(ciblage, ListeCriteres):
            return await self._liste_criteres(ciblage)
        if isinstance(ciblage, CiblageHistorique):
            return await self._historique(ciblage)
        raise TypeError(f"Ciblage inconnu: {ciblage!r}")

    # ---- Branches ----

    async def _alerte_sanitaire(self) -> List[Dict]:
        user_ids = await self.db.adhesions.distinct(
            "user", {"status": {"$in": STATUTS_ALERTE_SANITAIRE}}
        )
        destinataires = []
        for user in await self._load_users(user_ids):
            flags = await get_communication_flags(self.db, user["id"])
            if flags["alertesSanitaires"]:
                destinataires.append(user)
        return destinataires

    async def _liste_criteres(self, ciblage: ListeCriteres) -> List[Dict]:
        destinataires = []
        vus = set()
        for organisme, annee, statut in ciblage.criteres:
            adhesions = await self.db.adhesions.find(
                {"organisme": organisme, "annee": annee, "status": statut},
                {"_id": 0, "user": 1}
            ).to_list(None)

            user_ids = []
            for adh in adhesions:
                if adh.get("user") and adh["user"] not in vus:
                    vus.add(adh["user"])
                    user_ids.append(adh["user"])

            for user in await self._load_users(user_ids):
                # Même drapeau quel que soit l'organisme du critère
                flags = await get_communication_flags(self.db, user["id"])
                if flags["mesGroupements"]:
                    destinataires.append(user)
        return destinataires

    async def _historique(self, ciblage: CiblageHistorique) -> List[Dict]:
        annee = local_year(self._clock())
        user_ids = await self.db.adhesions.distinct(
            "user", {"annee": annee, "status": AdhesionStatus.ACTIF.value}
        )

        destinataires = []
        for user in await self._load_users(user_ids):
            organismes = get_user_organismes(user)
            flags = await get_communication_flags(self.db, user["id"])
            if self._accepte_historique(ciblage, organismes, flags):
                destinataires.append(user)
        return destinataires

    @staticmethod
    def _accepte_historique(ciblage: CiblageHistorique, organismes: List[str], flags: Dict) -> bool:
        valeur = ciblage.destinataires
        meme_organisme = ciblage.organisme in organismes

        if valeur in (Destinataires.SAR.value, Destinataires.AMAIR.value):
            return valeur in organismes and flags["mesGroupements"]

        if valeur == Destinataires.MON_GROUPEMENT.value:
            return meme_organisme and flags["mesGroupements"]

        if valeur == Destinataires.TOUS_GROUPEMENTS.value:
            if meme_organisme:
                return flags["mesGroupements"]
            return flags["autresGroupements"]

        logger.warning(f"Valeur de ciblage inconnue: {valeur}")
        return False

    # ---- Helpers ----

    async def _load_users(self, user_ids: List[Optional[str]]) -> List[Dict]:
        """Utilisateurs existants, dans l'ordre des ids, sans doublon"""
        ids = list(dict.fromkeys(uid for uid in user_ids if uid))
        if not ids:
            return []
        users = await self.db.users.find(
            {"id": {"$in": ids}}, USER_PROJECTION
        ).to_list(None)
        par_id = {u["id"]: u for u in users}
        return [par_id[uid] for uid in ids if uid in par_id]
