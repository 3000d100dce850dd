"""
Abeille Réunion - Modèles Auth & Utilisateurs
Les utilisateurs sont en lecture seule ici: seuls login/session sont gérés.
"""

from pydantic import BaseModel


class UserLogin(BaseModel):
    email: str
    password: str
