"""
Abeille Réunion - Service Paramètres & passage d'année

Tâches calendaires (appelées par le scheduler et par les routes admin):
- init_nouvelle_annee: 31/12, ferme l'année N, crée N+1 (fermée) avec les tarifs de N
- expire_adhesions_annee_precedente: 01/01 00:00, adhésions N-1 -> expiree
- update_annee_en_cours: 01/01 00:01, drapeaux estAnneeEnCours / adhesionsOuvertes
"""

import logging
import uuid
from typing import Dict, List, Optional

from config import now_iso, current_year, ORGANISMES
from models.adhesion import AdhesionStatus, STATUTS_A_EXPIRER
from models.parametre import DEFAULT_TARIFS

logger = logging.getLogger("parametres")


class ParametreError(Exception):
    """Règle métier des paramètres violée"""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


def build_parametre(organisme: str, annee: int, tarifs: Dict, adhesions_ouvertes: bool, en_cours: bool) -> Dict:
    now = now_iso()
    return {
        "id": str(uuid.uuid4()),
        "organisme": organisme,
        "annee": annee,
        "tarifs": {"loisir": tarifs["loisir"], "professionnel": tarifs["professionnel"]},
        "adhesionsOuvertes": adhesions_ouvertes,
        "estAnneeEnCours": en_cours,
        "created_at": now,
        "updated_at": now,
    }


async def create_parametre(db, organisme: str, annee: int, tarifs: Dict) -> Dict:
    if await db.parametres.find_one({"organisme": organisme, "annee": annee}):
        raise ParametreError(f"Les paramètres pour {organisme} {annee} existent déjà")

    en_cours = annee == current_year()
    doc = build_parametre(organisme, annee, tarifs, adhesions_ouvertes=en_cours, en_cours=en_cours)
    await db.parametres.insert_one(doc)
    doc.pop("_id", None)
    logger.info(f"Paramètres créés: {organisme} {annee}")
    return doc


async def update_tarifs(db, organisme: str, annee: int, tarifs: Dict) -> Optional[Dict]:
    """Tarifs modifiables uniquement pour l'année N+1"""
    parametre = await db.parametres.find_one({"organisme": organisme, "annee": annee}, {"_id": 0})
    if not parametre:
        return None

    if annee != current_year() + 1:
        raise ParametreError("Modification des tarifs autorisée uniquement pour l'année N+1", status_code=403)

    await db.parametres.update_one(
        {"id": parametre["id"]},
        {"$set": {"tarifs": tarifs, "updated_at": now_iso()}}
    )
    return await db.parametres.find_one({"id": parametre["id"]}, {"_id": 0})


async def toggle_adhesions(db, organisme: str, annee: int) -> Optional[Dict]:
    """Ouvre/ferme la fenêtre d'adhésion (jamais l'année en cours)"""
    parametre = await db.parametres.find_one({"organisme": organisme, "annee": annee}, {"_id": 0})
    if not parametre:
        return None

    if annee == current_year():
        raise ParametreError("Impossible de fermer les adhésions de l'année en cours", status_code=403)

    ouvertes = not parametre.get("adhesionsOuvertes", False)
    await db.parametres.update_one(
        {"id": parametre["id"]},
        {"$set": {"adhesionsOuvertes": ouvertes, "updated_at": now_iso()}}
    )
    parametre["adhesionsOuvertes"] = ouvertes
    return parametre


async def init_nouvelle_annee(db, annee_courante: Optional[int] = None, fermer_annee_courante: bool = True) -> List[Dict]:
    """
    Crée les paramètres N+1 manquants (fermés), tarifs copiés de N ou par défaut.
    Returns: les paramètres créés
    """
    annee_courante = annee_courante or current_year()
    annee_suivante = annee_courante + 1

    if fermer_annee_courante:
        await db.parametres.update_many(
            {"annee": annee_courante},
            {"$set": {"adhesionsOuvertes": False, "updated_at": now_iso()}}
        )
        logger.info(f"🔒 Adhésions fermées pour l'année {annee_courante}")

    created = []
    for organisme in ORGANISMES:
        if await db.parametres.find_one({"organisme": organisme, "annee": annee_suivante}):
            continue

        courant = await db.parametres.find_one({"organisme": organisme, "annee": annee_courante}, {"_id": 0})
        tarifs = (courant or {}).get("tarifs") or DEFAULT_TARIFS[organisme]

        doc = build_parametre(organisme, annee_suivante, tarifs, adhesions_ouvertes=False, en_cours=False)
        await db.parametres.insert_one(doc)
        doc.pop("_id", None)
        created.append(doc)
        logger.info(f"✅ Paramètres {organisme} {annee_suivante} créés")

    if not created:
        logger.info(f"ℹ️ Les paramètres pour l'année {annee_suivante} existent déjà")
    return created


async def expire_adhesions_annee_precedente(db, annee_courante: Optional[int] = None) -> int:
    annee_precedente = (annee_courante or current_year()) - 1
    result = await db.adhesions.update_many(
        {"annee": annee_precedente, "status": {"$in": STATUTS_A_EXPIRER}},
        {"$set": {"status": AdhesionStatus.EXPIREE.value, "dateExpiration": now_iso()}}
    )
    logger.info(f"✅ {result.modified_count} adhésion(s) de {annee_precedente} passée(s) en statut 'expiree'")
    return result.modified_count


async def update_annee_en_cours(db, annee_courante: Optional[int] = None) -> int:
    annee_courante = annee_courante or current_year()
    await db.parametres.update_many(
        {"annee": annee_courante},
        {"$set": {"estAnneeEnCours": True, "adhesionsOuvertes": True, "updated_at": now_iso()}}
    )
    await db.parametres.update_many(
        {"annee": {"$ne": annee_courante}},
        {"$set": {"estAnneeEnCours": False, "updated_at": now_iso()}}
    )
    logger.info(f"🎉 Année en cours mise à jour: {annee_courante}")
    return annee_courante


async def annees_disponibles(db, annee_courante: Optional[int] = None) -> Dict:
    """Année en cours (toujours ouverte) + année suivante si ouverte"""
    annee_courante = annee_courante or current_year()
    annee_suivante = annee_courante + 1

    courantes = await db.parametres.find({"annee": annee_courante}, {"_id": 0}).to_list(None)
    suivantes = await db.parametres.find(
        {"annee": annee_suivante, "adhesionsOuvertes": True}, {"_id": 0}
    ).to_list(None)

    disponibles = []
    if courantes:
        disponibles.append({
            "annee": annee_courante,
            "estAnneeEnCours": True,
            "organismes": [
                {"organisme": p["organisme"], "tarifs": p.get("tarifs"), "adhesionsOuvertes": True}
                for p in courantes
            ],
        })
    if suivantes:
        disponibles.append({
            "annee": annee_suivante,
            "estAnneeEnCours": False,
            "organismes": [
                {"organisme": p["organisme"], "tarifs": p.get("tarifs"), "adhesionsOuvertes": p["adhesionsOuvertes"]}
                for p in suivantes
            ],
        })

    return {"anneesDisponibles": disponibles, "anneeActuelle": annee_courante}


async def statistiques_adhesions(db) -> List[Dict]:
    """Nombre d'adhésions par année / organisme / statut"""
    pipeline = [
        {"$group": {
            "_id": {"annee": "$annee", "organisme": "$organisme", "status": "$status"},
            "count": {"$sum": 1},
        }},
        {"$sort": {"_id.annee": -1, "_id.organisme": 1}},
    ]
    groupes = await db.adhesions.aggregate(pipeline).to_list(None)

    stats: Dict[tuple, Dict] = {}
    for g in groupes:
        key = (g["_id"]["annee"], g["_id"]["organisme"])
        entry = stats.setdefault(key, {
            "annee": key[0], "organisme": key[1], "total": 0, "parStatus": {}
        })
        entry["total"] += g["count"]
        entry["parStatus"][g["_id"]["status"]] = g["count"]

    return sorted(stats.values(), key=lambda s: (-s["annee"], s["organisme"]))
