"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Abeille Réunion - Organismes                                                ║
║                                                                              ║
║  Deux organismes: SAR et AMAIR.                                              ║
║  Un adhérent, un article, une communication est TOUJOURS rattaché à un       ║
║  organisme. Un utilisateur peut en avoir plusieurs (champ organismes).       ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from enum import Enum


class OrganismeType(str, Enum):
    SAR = "SAR"
    AMAIR = "AMAIR"


# Nom d'expéditeur et image d'en-tête des emails, par organisme
ORGANISME_LABELS = {
    "SAR": "SAR - Syndicat Apicole",
    "AMAIR": "AMAIR - Association Apicole",
}

ORGANISME_HEADER_IMAGES = {
    "SAR": "header-sar.png",
    "AMAIR": "header-amair.png",
}
