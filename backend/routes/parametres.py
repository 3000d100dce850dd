"""
Abeille Réunion - Routes Paramètres annuels
Lecture publique (formulaire d'adhésion), écriture admin limitée à ses organismes.
"""

import logging
from fastapi import APIRouter, HTTPException, Depends

from config import get_db, current_year
from models.organisme import OrganismeType
from models.parametre import ParametreCreate, TarifsUpdate
from routes.auth import require_admin
from services.parametres import (
    ParametreError,
    create_parametre,
    update_tarifs,
    toggle_adhesions,
    init_nouvelle_annee,
    update_annee_en_cours,
    annees_disponibles,
    statistiques_adhesions,
)
from services.permissions import build_organisme_filter, require_organisme_access

logger = logging.getLogger("parametres")

router = APIRouter(prefix="/parametres", tags=["Paramètres"])


# ==================== PUBLIC ====================

@router.get("/current")
async def get_current_year_parametres(db=Depends(get_db)):
    return await db.parametres.find({"annee": current_year()}, {"_id": 0}).to_list(None)


@router.get("/annees-disponibles")
async def get_annees_disponibles(db=Depends(get_db)):
    return await annees_disponibles(db)


# ==================== ADMIN ====================

@router.get("/statistiques/all")
async def get_statistiques(user: dict = Depends(require_admin), db=Depends(get_db)):
    return {
        "anneeActuelle": current_year(),
        "statistiques": await statistiques_adhesions(db),
    }


@router.get("")
async def list_parametres(user: dict = Depends(require_admin), db=Depends(get_db)):
    query = build_organisme_filter(user)
    return await db.parametres.find(query, {"_id": 0}).sort([("annee", -1), ("organisme", 1)]).to_list(None)


@router.post("", status_code=201)
async def create(data: ParametreCreate, user: dict = Depends(require_admin), db=Depends(get_db)):
    require_organisme_access(user, data.organisme.value, "créer des paramètres")
    try:
        return await create_parametre(db, data.organisme.value, data.annee, data.tarifs.model_dump())
    except ParametreError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/init-nouvelle-annee", status_code=201)
async def init_annee_suivante(user: dict = Depends(require_admin), db=Depends(get_db)):
    annee_suivante = current_year() + 1
    created = await init_nouvelle_annee(db, fermer_annee_courante=False)
    if not created:
        raise HTTPException(
            status_code=400,
            detail=f"Les paramètres pour l'année {annee_suivante} existent déjà"
        )
    logger.info(f"[PARAMETRES] init {annee_suivante} by={user.get('email')}")
    return {"message": f"Paramètres créés pour l'année {annee_suivante}", "parametres": created}


@router.post("/update-annee-en-cours")
async def bascule_annee_en_cours(user: dict = Depends(require_admin), db=Depends(get_db)):
    annee = await update_annee_en_cours(db)
    return {"message": f"Année en cours mise à jour: {annee}", "anneeEnCours": annee}


@router.get("/{organisme}/{annee}")
async def get_parametre(organisme: str, annee: int, db=Depends(get_db)):
    parametre = await db.parametres.find_one(
        {"organisme": organisme.upper(), "annee": annee}, {"_id": 0}
    )
    if not parametre:
        raise HTTPException(status_code=404, detail=f"Paramètres non trouvés pour {organisme} {annee}")
    return parametre


@router.put("/{organisme}/{annee}/tarifs")
async def put_tarifs(
    organisme: OrganismeType,
    annee: int,
    data: TarifsUpdate,
    user: dict = Depends(require_admin),
    db=Depends(get_db)
):
    require_organisme_access(user, organisme.value, "modifier les tarifs")
    try:
        parametre = await update_tarifs(db, organisme.value, annee, data.tarifs.model_dump())
    except ParametreError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    if not parametre:
        raise HTTPException(status_code=404, detail="Paramètres non trouvés")
    return parametre


@router.put("/{organisme}/{annee}/toggle-adhesions")
async def put_toggle_adhesions(
    organisme: OrganismeType,
    annee: int,
    user: dict = Depends(require_admin),
    db=Depends(get_db)
):
    require_organisme_access(user, organisme.value, "ouvrir/fermer les adhésions")
    try:
        parametre = await toggle_adhesions(db, organisme.value, annee)
    except ParametreError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    if not parametre:
        raise HTTPException(status_code=404, detail="Paramètres non trouvés")

    etat = "ouvertes" if parametre["adhesionsOuvertes"] else "fermées"
    return {
        "organisme": parametre["organisme"],
        "annee": parametre["annee"],
        "adhesionsOuvertes": parametre["adhesionsOuvertes"],
        "message": f"Adhésions {etat} pour {organisme.value} {annee}",
    }
