"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Abeille Réunion - Modèle Article (actualités)                               ║
║                                                                              ║
║  STATUTS: brouillon -> programme -> publie  (programme optionnel)            ║
║  programme -> publie: uniquement par le scheduler (datePublication <= now)   ║
║  VISIBILITÉ (publie): tous | organisme                                       ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from .organisme import OrganismeType


class ArticleStatut(str, Enum):
    BROUILLON = "brouillon"
    PROGRAMME = "programme"
    PUBLIE = "publie"


class ArticleVisibilite(str, Enum):
    TOUS = "tous"
    ORGANISME = "organisme"


class ArticleCreate(BaseModel):
    titre: str
    contenu: str
    extrait: Optional[str] = Field(default=None, max_length=300)
    visibilite: ArticleVisibilite
    statut: ArticleStatut = ArticleStatut.BROUILLON
    datePublication: Optional[datetime] = None
    imagePrincipale: Optional[str] = None
    tags: List[str] = []
    organisme: Optional[OrganismeType] = None

    @field_validator("titre", "contenu")
    @classmethod
    def non_vide(cls, v):
        if not v or not v.strip():
            raise ValueError("Le titre et le contenu sont requis")
        return v.strip()


class ArticleUpdate(BaseModel):
    titre: Optional[str] = None
    contenu: Optional[str] = None
    extrait: Optional[str] = Field(default=None, max_length=300)
    visibilite: Optional[ArticleVisibilite] = None
    statut: Optional[ArticleStatut] = None
    datePublication: Optional[datetime] = None
    imagePrincipale: Optional[str] = None
    tags: Optional[List[str]] = None
