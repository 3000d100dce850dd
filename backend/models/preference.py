"""
Abeille Réunion - Préférences de communication
Un document par utilisateur (index unique sur user).
"""

from pydantic import BaseModel


DEFAULT_COMMUNICATIONS = {
    "mesGroupements": True,
    "autresGroupements": False,
    "alertesSanitaires": True,
}


class CommunicationsPreferences(BaseModel):
    mesGroupements: bool = True
    autresGroupements: bool = False
    alertesSanitaires: bool = True


class PreferencesUpdate(BaseModel):
    communications: CommunicationsPreferences
