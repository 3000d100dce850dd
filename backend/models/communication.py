"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Abeille Réunion - Modèle Communication                                      ║
║                                                                              ║
║  CIBLAGE (un seul mode actif, priorité dans cet ordre):                      ║
║  1. estSanitaire = true           -> AlerteSanitaire                         ║
║  2. criteresDestinataires non vide -> ListeCriteres                          ║
║  3. destinataires (ancien champ)  -> CiblageHistorique                       ║
║                                                                              ║
║  STATUTS: brouillon -> (programme) -> envoi_en_cours -> envoye               ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple, Union
from pydantic import BaseModel, field_validator

from .organisme import OrganismeType

MAX_ERREURS_CONSERVEES = 10


class CommunicationStatut(str, Enum):
    BROUILLON = "brouillon"
    PROGRAMME = "programme"
    ENVOI_EN_COURS = "envoi_en_cours"
    ENVOYE = "envoye"


class Destinataires(str, Enum):
    """Ancien champ de ciblage (valeur unique)"""
    MON_GROUPEMENT = "mon_groupement"
    TOUS_GROUPEMENTS = "tous_groupements"
    SAR = "SAR"
    AMAIR = "AMAIR"


class StatutCritere(str, Enum):
    ACTIF = "actif"
    EXPIREE = "expiree"


class CritereDestinataire(BaseModel):
    organisme: OrganismeType
    annee: int
    statut: StatutCritere

    @field_validator("statut", mode="before")
    @classmethod
    def accept_expire_alias(cls, v):
        # Le front historique envoie "expire"
        if v == "expire":
            return "expiree"
        return v


class CommunicationCreate(BaseModel):
    titre: str
    contenu: str
    estSanitaire: bool = False
    criteresDestinataires: List[CritereDestinataire] = []
    destinataires: Optional[Destinataires] = None
    statut: CommunicationStatut = CommunicationStatut.BROUILLON
    dateProgrammee: Optional[datetime] = None
    organisme: Optional[OrganismeType] = None

    @field_validator("titre", "contenu")
    @classmethod
    def non_vide(cls, v):
        if v is not None and not v.strip():
            raise ValueError("Le titre et le contenu sont requis")
        return v.strip() if v is not None else v

    @field_validator("statut")
    @classmethod
    def statut_creation(cls, v):
        if v not in (CommunicationStatut.BROUILLON, CommunicationStatut.PROGRAMME):
            raise ValueError("Statut initial: brouillon ou programme uniquement")
        return v


class CommunicationUpdate(BaseModel):
    titre: Optional[str] = None
    contenu: Optional[str] = None
    estSanitaire: Optional[bool] = None
    criteresDestinataires: Optional[List[CritereDestinataire]] = None
    destinataires: Optional[Destinataires] = None
    statut: Optional[CommunicationStatut] = None
    dateProgrammee: Optional[datetime] = None

    @field_validator("titre", "contenu")
    @classmethod
    def non_vide(cls, v):
        if v is not None and not v.strip():
            raise ValueError("Le titre et le contenu sont requis")
        return v.strip() if v is not None else v

    @field_validator("statut")
    @classmethod
    def statut_edition(cls, v):
        if v is not None and v not in (CommunicationStatut.BROUILLON, CommunicationStatut.PROGRAMME):
            raise ValueError("Statut: brouillon ou programme uniquement")
        return v


# ==================== CIBLAGE (variantes) ====================

class AlerteSanitaire:
    """Tous les adhérents (actifs ou expirés), toutes années, tous organismes"""

    def __eq__(self, other):
        return isinstance(other, AlerteSanitaire)

    def __repr__(self):
        return "AlerteSanitaire()"


class ListeCriteres:
    """Liste de triplets (organisme, annee, statut)"""

    def __init__(self, criteres: List[Tuple[str, int, str]]):
        self.criteres = list(criteres)

    def __eq__(self, other):
        return isinstance(other, ListeCriteres) and self.criteres == other.criteres

    def __repr__(self):
        return f"ListeCriteres({self.criteres!r})"


class CiblageHistorique:
    """Ancien ciblage: mon_groupement / tous_groupements / SAR / AMAIR"""

    def __init__(self, destinataires: str, organisme: str):
        self.destinataires = destinataires
        self.organisme = organisme

    def __eq__(self, other):
        return (
            isinstance(other, CiblageHistorique)
            and self.destinataires == other.destinataires
            and self.organisme == other.organisme
        )

    def __repr__(self):
        return f"CiblageHistorique({self.destinataires!r}, {self.organisme!r})"


Ciblage = Union[AlerteSanitaire, ListeCriteres, CiblageHistorique]


def _valeur(v):
    return v.value if isinstance(v, Enum) else v


def ciblage_from_document(communication: dict) -> Ciblage:
    """
    Construit la variante de ciblage d'une communication stockée.
    Le premier mode renseigné l'emporte.
    """
    if communication.get("estSanitaire"):
        return AlerteSanitaire()

    criteres = communication.get("criteresDestinataires") or []
    if criteres:
        return ListeCriteres([
            (_valeur(c["organisme"]), int(c["annee"]), _valeur(c["statut"]))
            for c in criteres
        ])

    return CiblageHistorique(
        _valeur(communication.get("destinataires")) or Destinataires.MON_GROUPEMENT.value,
        communication.get("organisme"),
    )
