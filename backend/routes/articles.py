"""
Abeille Réunion - Routes Articles (actualités)
Lecture: adhérents connectés (selon visibilité). Écriture: admin de l'organisme.
"""

import logging
import math
import uuid
from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, Query

from config import get_db, now_iso
from models.article import ArticleCreate, ArticleUpdate, ArticleStatut, ArticleVisibilite
from routes.auth import get_current_user, require_admin
from services.articles import generate_slug, is_visible_for, resolve_publication
from services.permissions import (
    build_organisme_filter,
    enforce_write_organisme,
    get_user_organismes,
    is_admin,
    require_organisme_access,
)

logger = logging.getLogger("articles")

router = APIRouter(prefix="/articles", tags=["Articles"])


def build_list_filter(user: dict, statut, organisme, visibilite, tag) -> dict:
    query = {}
    if tag:
        query["tags"] = tag

    if is_admin(user):
        query.update(build_organisme_filter(user))
        if statut:
            query["statut"] = statut
        if organisme:
            require_organisme_access(user, organisme, "consulter les articles")
            query["organisme"] = organisme
        if visibilite:
            query["visibilite"] = visibilite
        return query

    query["statut"] = ArticleStatut.PUBLIE.value
    query["$or"] = [
        {"visibilite": ArticleVisibilite.TOUS.value},
        {"visibilite": ArticleVisibilite.ORGANISME.value, "organisme": {"$in": get_user_organismes(user)}},
    ]
    return query


@router.get("")
async def list_articles(
    statut: Optional[ArticleStatut] = None,
    organisme: Optional[str] = None,
    visibilite: Optional[ArticleVisibilite] = None,
    tag: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: dict = Depends(get_current_user),
    db=Depends(get_db)
):
    query = build_list_filter(
        user,
        statut.value if statut else None,
        organisme.upper() if organisme else None,
        visibilite.value if visibilite else None,
        tag,
    )

    total = await db.articles.count_documents(query)
    articles = await db.articles.find(query, {"_id": 0}) \
        .sort([("datePublication", -1), ("created_at", -1)]) \
        .skip((page - 1) * limit) \
        .limit(limit) \
        .to_list(limit)

    return {
        "articles": articles,
        "page": page,
        "pages": math.ceil(total / limit),
        "total": total,
    }


@router.get("/stats")
async def get_stats(user: dict = Depends(require_admin), db=Depends(get_db)):
    articles = await db.articles.find(
        build_organisme_filter(user), {"_id": 0, "statut": 1, "vues": 1}
    ).to_list(None)

    return {
        "total": len(articles),
        "publies": sum(1 for a in articles if a.get("statut") == ArticleStatut.PUBLIE.value),
        "brouillons": sum(1 for a in articles if a.get("statut") == ArticleStatut.BROUILLON.value),
        "programmes": sum(1 for a in articles if a.get("statut") == ArticleStatut.PROGRAMME.value),
        "vuesTotal": sum(a.get("vues", 0) or 0 for a in articles),
    }


@router.get("/{slug}")
async def get_article(slug: str, user: dict = Depends(get_current_user), db=Depends(get_db)):
    article = await db.articles.find_one({"slug": slug}, {"_id": 0})
    if not article:
        raise HTTPException(status_code=404, detail="Article non trouvé")

    if not is_visible_for(article, user):
        raise HTTPException(status_code=403, detail="Vous n'avez pas accès à cet article")

    if not is_admin(user) and article.get("auteur") != user["id"]:
        await db.articles.update_one({"id": article["id"]}, {"$inc": {"vues": 1}})
        article["vues"] = article.get("vues", 0) + 1

    return article


@router.post("", status_code=201)
async def create_article(data: ArticleCreate, user: dict = Depends(require_admin), db=Depends(get_db)):
    organisme = enforce_write_organisme(user, data.organisme.value if data.organisme else None)

    try:
        date_publication = resolve_publication(data.statut.value, data.datePublication)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    now = now_iso()
    article = {
        "id": str(uuid.uuid4()),
        "titre": data.titre,
        "slug": await generate_slug(db, data.titre),
        "contenu": data.contenu,
        "extrait": data.extrait,
        "auteur": user["id"],
        "organisme": organisme,
        "visibilite": data.visibilite.value,
        "statut": data.statut.value,
        "datePublication": date_publication,
        "imagePrincipale": data.imagePrincipale,
        "tags": data.tags,
        "vues": 0,
        "created_at": now,
        "updated_at": now,
    }
    await db.articles.insert_one(article)
    article.pop("_id", None)

    logger.info(f"[ARTICLE] created slug={article['slug']} statut={article['statut']} by={user.get('email')}")
    return article


async def get_article_for_admin(db, article_id: str, user: dict, action: str) -> dict:
    article = await db.articles.find_one({"id": article_id}, {"_id": 0})
    if not article:
        raise HTTPException(status_code=404, detail="Article non trouvé")
    require_organisme_access(user, article.get("organisme"), f"{action} cet article")
    return article


@router.put("/{article_id}")
async def update_article(
    article_id: str,
    data: ArticleUpdate,
    user: dict = Depends(require_admin),
    db=Depends(get_db)
):
    article = await get_article_for_admin(db, article_id, user, "modifier")

    update = data.model_dump(exclude_unset=True, mode="json")
    update.pop("datePublication", None)
    for champ in ("titre", "contenu", "visibilite", "statut"):
        if update.get(champ) is None:
            update.pop(champ, None)

    if update.get("titre") and update["titre"] != article["titre"]:
        update["slug"] = await generate_slug(db, update["titre"], article_id)

    if data.datePublication is not None and "statut" not in update:
        if article.get("statut") != ArticleStatut.PROGRAMME.value:
            raise HTTPException(
                status_code=400,
                detail="La date de publication ne peut être modifiée que pour un article programmé"
            )
        update["statut"] = article["statut"]

    if "statut" in update:
        try:
            update["datePublication"] = resolve_publication(
                update["statut"], data.datePublication, current=article.get("datePublication")
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    update["updated_at"] = now_iso()
    await db.articles.update_one({"id": article_id}, {"$set": update})
    return await db.articles.find_one({"id": article_id}, {"_id": 0})


@router.delete("/{article_id}")
async def delete_article(article_id: str, user: dict = Depends(require_admin), db=Depends(get_db)):
    await get_article_for_admin(db, article_id, user, "supprimer")
    await db.articles.delete_one({"id": article_id})
    logger.info(f"[ARTICLE] deleted id={article_id} by={user.get('email')}")
    return {"message": "Article supprimé"}
