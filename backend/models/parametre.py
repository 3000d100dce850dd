"""
Abeille Réunion - Paramètres annuels
Un document par (organisme, année): tarifs + fenêtre d'adhésion.
"""

from pydantic import BaseModel, Field
from .organisme import OrganismeType


DEFAULT_TARIFS = {
    "SAR": {"loisir": 30, "professionnel": 50},
    "AMAIR": {"loisir": 25, "professionnel": 45},
}


class Tarifs(BaseModel):
    loisir: float = Field(ge=0)
    professionnel: float = Field(ge=0)


class ParametreCreate(BaseModel):
    organisme: OrganismeType
    annee: int = Field(ge=2000, le=2100)
    tarifs: Tarifs


class TarifsUpdate(BaseModel):
    tarifs: Tarifs
