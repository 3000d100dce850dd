"""
Abeille Réunion - Export des souscriptions assurance UNAF

Aux dates d'export du calendrier, les paiements d'assurance UNAF payés
et pas encore exportés sont regroupés dans un lot `unaf_exports`,
puis marqués comme exportés. La génération du fichier est hors périmètre.
"""

import logging
import uuid
from datetime import date, datetime
from typing import Dict, List, Optional

from config import now_iso

logger = logging.getLogger("unaf_export")

TYPE_SERVICE_UNAF = "assurance_unaf"

EXPORT_DATES_2026 = [
    date(2026, 1, 12),
    date(2026, 1, 19),
    date(2026, 1, 26),
    date(2026, 2, 2),
    date(2026, 2, 9),
    date(2026, 2, 16),
    date(2026, 3, 2),
    date(2026, 3, 16),
    date(2026, 3, 30),
    date(2026, 4, 27),
    date(2026, 5, 25),
    date(2026, 6, 22),
    date(2026, 7, 20),
    date(2026, 8, 17),
    date(2026, 9, 14),
]

EXPORT_DATES = {2026: EXPORT_DATES_2026}


def _as_date(jour) -> date:
    return jour.date() if isinstance(jour, datetime) else jour


def export_dates(annee: int) -> List[date]:
    return sorted(EXPORT_DATES.get(annee, []))


def is_export_date(jour) -> bool:
    jour = _as_date(jour)
    return jour in export_dates(jour.year)


def is_first_export_of_year(jour) -> bool:
    jour = _as_date(jour)
    dates = export_dates(jour.year)
    return bool(dates) and dates[0] == jour


def previous_export_date(jour) -> Optional[date]:
    jour = _as_date(jour)
    anterieures = [d for d in export_dates(jour.year) if d < jour]
    return anterieures[-1] if anterieures else None


async def get_unexported_payments(db, annee: int) -> List[Dict]:
    return await db.services.find(
        {
            "typeService": TYPE_SERVICE_UNAF,
            "annee": annee,
            "paiement.status": "paye",
            "paiement.exportedToUNAF": {"$ne": True},
        },
        {"_id": 0}
    ).to_list(None)


async def run_export(db, jour) -> Optional[Dict]:
    """
    Crée le lot d'export du jour. Rien si le jour n'est pas une date d'export
    ou si le lot de ce jour existe déjà.
    Returns: l'enregistrement d'export créé, ou None
    """
    jour = _as_date(jour)
    if not is_export_date(jour):
        return None

    if await db.unaf_exports.find_one({"dateExport": jour.isoformat()}):
        logger.info(f"ℹ️ Export UNAF du {jour.isoformat()} déjà généré")
        return None

    services = await get_unexported_payments(db, jour.year)
    ids = [s["id"] for s in services]
    montant_total = sum((s.get("paiement") or {}).get("montant", 0) or 0 for s in services)

    now = now_iso()
    record = {
        "id": str(uuid.uuid4()),
        "dateExport": jour.isoformat(),
        "annee": jour.year,
        "isFirstExport": is_first_export_of_year(jour),
        "nombrePaiements": len(ids),
        "montantTotal": montant_total,
        "servicesInclus": ids,
        "status": "genere",
        "created_at": now,
    }
    await db.unaf_exports.insert_one(record)
    record.pop("_id", None)

    if ids:
        await db.services.update_many(
            {"id": {"$in": ids}},
            {"$set": {"paiement.exportedToUNAF": True, "paiement.exportDate": now}}
        )

    logger.info(f"✅ Export UNAF {jour.isoformat()}: {len(ids)} paiement(s), {montant_total}€")
    return record
