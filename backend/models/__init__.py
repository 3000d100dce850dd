"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Abeille Réunion - Models Package                                            ║
║                                                                              ║
║  Exporte tous les modèles pour import facile                                 ║
║  from models import OrganismeType, CommunicationCreate, etc.                 ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from .organisme import OrganismeType, ORGANISME_LABELS, ORGANISME_HEADER_IMAGES

from .auth import UserLogin

from .adhesion import AdhesionStatus, STATUTS_ALERTE_SANITAIRE, STATUTS_A_EXPIRER

from .preference import (
    DEFAULT_COMMUNICATIONS,
    CommunicationsPreferences,
    PreferencesUpdate,
)

from .parametre import DEFAULT_TARIFS, Tarifs, ParametreCreate, TarifsUpdate

from .communication import (
    MAX_ERREURS_CONSERVEES,
    CommunicationStatut,
    Destinataires,
    StatutCritere,
    CritereDestinataire,
    CommunicationCreate,
    CommunicationUpdate,
    AlerteSanitaire,
    ListeCriteres,
    CiblageHistorique,
    Ciblage,
    ciblage_from_document,
)

from .article import ArticleStatut, ArticleVisibilite, ArticleCreate, ArticleUpdate
