"""
Configuration et utilitaires partagés
"""

import os
import hashlib
import secrets
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo
from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
from pathlib import Path

# Charger .env
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# MongoDB
MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'abeille_reunion')

client = AsyncIOMotorClient(MONGO_URL)
db = client[DB_NAME]

# URLs publiques (images d'en-tête des emails, liens vers le front)
BACKEND_URL = os.environ.get('BACKEND_URL', 'http://localhost:8001')
FRONTEND_URL = os.environ.get('FRONTEND_URL', 'http://localhost:3000')

# Email (SendGrid)
SENDGRID_API_KEY = os.environ.get('SENDGRID_API_KEY', '')
EMAIL_FROM_SAR = os.environ.get('EMAIL_FROM_SAR', 'communication@sar.re')
EMAIL_FROM_AMAIR = os.environ.get('EMAIL_FROM_AMAIR', 'communication@amair.re')
EMAIL_BATCH_SIZE = int(os.environ.get('EMAIL_BATCH_SIZE', '10'))
EMAIL_BATCH_DELAY_MS = int(os.environ.get('EMAIL_BATCH_DELAY_MS', '1000'))

# Scheduler
SCHEDULER_TIMEZONE = os.environ.get('SCHEDULER_TIMEZONE', 'Indian/Reunion')
SCHEDULER_ENABLED = os.environ.get('SCHEDULER_ENABLED', 'true').lower() == 'true'
SEND_CLAIM_TIMEOUT_MINUTES = int(os.environ.get('SEND_CLAIM_TIMEOUT_MINUTES', '60'))

CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')

ORGANISMES = ["SAR", "AMAIR"]


def get_db():
    """Dépendance FastAPI: base MongoDB de l'application"""
    return db


# ==================== HELPERS ====================

def hash_password(password: str) -> str:
    """Hash un mot de passe avec SHA256"""
    return hashlib.sha256(password.encode()).hexdigest()

def generate_token() -> str:
    """Génère un token de session sécurisé"""
    return secrets.token_urlsafe(32)

def now_iso() -> str:
    """Retourne la date/heure actuelle en ISO"""
    return datetime.now(timezone.utc).isoformat()

def local_now() -> datetime:
    """Heure locale de l'association (fuseau du scheduler)"""
    return datetime.now(ZoneInfo(SCHEDULER_TIMEZONE))

def local_year(value: datetime) -> int:
    """Année d'un instant dans le fuseau local (les dates naïves sont considérées UTC)"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(ZoneInfo(SCHEDULER_TIMEZONE)).year

def current_year() -> int:
    return local_now().year

def to_iso(value: datetime) -> str:
    """Date -> ISO UTC (les dates naïves sont considérées UTC)"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()

def parse_date(value) -> Optional[datetime]:
    """
    Accepte un datetime ou une chaîne ISO (avec 'Z' éventuel).
    Returns: datetime aware UTC, ou None si vide.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
