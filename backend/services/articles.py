"""
Abeille Réunion - Service Articles

- generate_slug: slug unique à partir du titre (accents retirés, suffixe -n)
- is_visible_for: prédicat de lecture, sans effet de bord
- publish_due_articles: passage programme -> publie (scheduler, idempotent)
"""

import logging
import re
import unicodedata
from datetime import datetime, timezone
from typing import Dict, List, Optional

from config import now_iso, to_iso, parse_date
from models.article import ArticleStatut, ArticleVisibilite
from services.permissions import get_user_organismes, has_access_to_organisme, is_admin

logger = logging.getLogger("articles")


def slugify(titre: str) -> str:
    slug = unicodedata.normalize("NFD", titre.lower())
    slug = "".join(c for c in slug if not unicodedata.combining(c))
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug.strip())
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-") or "article"


async def generate_slug(db, titre: str, article_id: Optional[str] = None) -> str:
    base = slugify(titre)
    slug = base
    counter = 1
    while True:
        query = {"slug": slug}
        if article_id:
            query["id"] = {"$ne": article_id}
        if not await db.articles.find_one(query, {"_id": 0, "id": 1}):
            return slug
        slug = f"{base}-{counter}"
        counter += 1


def _peut_voir_non_publie(article: Dict, viewer: Dict) -> bool:
    """Auteur, ou admin de l'organisme de l'article"""
    if article.get("auteur") == viewer.get("id"):
        return True
    return is_admin(viewer) and has_access_to_organisme(viewer, article.get("organisme"))


def is_visible_for(article: Dict, viewer: Optional[Dict]) -> bool:
    """
    brouillon / programme (échu ou non): auteur ou admin du même organisme
    publie: tous si visibilite=tous, sinon membres de l'organisme
    """
    if not viewer:
        return False

    statut = article.get("statut")

    if statut in (ArticleStatut.BROUILLON.value, ArticleStatut.PROGRAMME.value):
        return _peut_voir_non_publie(article, viewer)

    if statut == ArticleStatut.PUBLIE.value:
        if article.get("visibilite") == ArticleVisibilite.TOUS.value:
            return True
        if article.get("visibilite") == ArticleVisibilite.ORGANISME.value:
            return article.get("organisme") in get_user_organismes(viewer)

    return False


def resolve_publication(statut: str, date_publication, now: Optional[datetime] = None, current: Optional[str] = None):
    """
    Date de publication à stocker selon le statut demandé.
    - programme: date obligatoire et dans le futur
    - publie: maintenant (ou la date déjà connue)
    Raises ValueError avec le message destiné au client.
    """
    now = now or datetime.now(timezone.utc)

    if statut == ArticleStatut.PROGRAMME.value:
        date = parse_date(date_publication)
        if not date:
            raise ValueError("La date de publication est requise pour un article programmé")
        if date <= now:
            raise ValueError("La date de publication doit être dans le futur")
        return to_iso(date)

    if statut == ArticleStatut.PUBLIE.value:
        return current or to_iso(now)

    return current


async def due_scheduled_articles(db, now: Optional[str] = None) -> List[Dict]:
    """Articles programmés dont la date de publication est atteinte"""
    now = now or now_iso()
    return await db.articles.find(
        {"statut": ArticleStatut.PROGRAMME.value, "datePublication": {"$lte": now}},
        {"_id": 0}
    ).to_list(None)


async def publish_due_articles(db, now: Optional[str] = None) -> int:
    """
    Publie les articles programmés échus. Rejouable sans effet:
    un article publié ne correspond plus à la requête.
    """
    now = now or now_iso()
    publies = 0
    for article in await due_scheduled_articles(db, now):
        result = await db.articles.update_one(
            {"id": article["id"], "statut": ArticleStatut.PROGRAMME.value},
            {"$set": {"statut": ArticleStatut.PUBLIE.value, "updated_at": now_iso()}}
        )
        if result.modified_count:
            publies += 1
            logger.info(f"   ✅ Article publié: \"{article.get('titre')}\" (date: {article.get('datePublication')})")

    if publies:
        logger.info(f"🎉 {publies} article(s) publié(s) automatiquement")
    return publies
