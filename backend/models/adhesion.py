"""
Abeille Réunion - Adhésions (registre externe)

Une adhésion = un utilisateur, un organisme, une année, un statut.
Le registre est alimenté par le module paiement; ici on ne fait que
le lire (destinataires) et l'expirer (passage d'année).
"""

from enum import Enum


class AdhesionStatus(str, Enum):
    ACTIF = "actif"
    EXPIREE = "expiree"
    EN_ATTENTE = "en_attente"
    PAIEMENT_DEMANDE = "paiement_demande"


# Statuts qui comptent comme "adhérent" pour une alerte sanitaire
STATUTS_ALERTE_SANITAIRE = [AdhesionStatus.ACTIF.value, AdhesionStatus.EXPIREE.value]

# Statuts basculés en "expiree" au 1er janvier pour l'année N-1
STATUTS_A_EXPIRER = [
    AdhesionStatus.ACTIF.value,
    AdhesionStatus.EN_ATTENTE.value,
    AdhesionStatus.PAIEMENT_DEMANDE.value,
]
