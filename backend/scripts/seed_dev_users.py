"""
Abeille Réunion - Seed dev data (dev/staging only)
Crée 4 comptes de test, leurs préférences, leur adhésion de l'année
et les paramètres de l'année en cours.
Run: python scripts/seed_dev_users.py
Reset: python scripts/seed_dev_users.py --reset
"""

import asyncio
import hashlib
import os
import sys
import uuid
from datetime import datetime, timezone
from motor.motor_asyncio import AsyncIOMotorClient

MONGO_URL = os.environ.get("MONGO_URL", "mongodb://localhost:27017")
DB_NAME = os.environ.get("DB_NAME", "abeille_reunion")

# Même mot de passe pour tous les comptes de test
TEST_PASSWORD = "AbeilleTest2026!"

TARIFS = {
    "SAR": {"loisir": 30, "professionnel": 50},
    "AMAIR": {"loisir": 25, "professionnel": 45},
}

TEST_USERS = [
    {"email": "superadmin@test.local", "prenom": "Super", "nom": "Admin", "role": "super_admin", "organismes": ["SAR", "AMAIR"]},
    {"email": "admin_sar@test.local", "prenom": "Admin", "nom": "SAR", "role": "admin", "organismes": ["SAR"]},
    {"email": "admin_amair@test.local", "prenom": "Admin", "nom": "AMAIR", "role": "admin", "organismes": ["AMAIR"]},
    {"email": "apiculteur@test.local", "prenom": "Marie", "nom": "Payet", "role": "user", "organismes": ["SAR"]},
]


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode()).hexdigest()


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


async def reset(db):
    """Supprime les comptes test.local et leurs données rattachées"""
    users = await db.users.find({"email": {"$regex": "@test\\.local$"}}, {"_id": 0, "id": 1}).to_list(None)
    ids = [u["id"] for u in users]
    await db.sessions.delete_many({"user_id": {"$in": ids}})
    await db.preferences.delete_many({"user": {"$in": ids}})
    await db.adhesions.delete_many({"user": {"$in": ids}})
    result = await db.users.delete_many({"id": {"$in": ids}})
    print(f"Deleted {result.deleted_count} test users")


async def seed(db):
    annee = datetime.now(timezone.utc).year

    for u in TEST_USERS:
        user_id = str(uuid.uuid4())
        await db.users.insert_one({
            "id": user_id,
            "email": u["email"],
            "password": hash_password(TEST_PASSWORD),
            "prenom": u["prenom"],
            "nom": u["nom"],
            "role": u["role"],
            "organismes": u["organismes"],
            "isActive": True,
            "created_at": now_iso(),
        })
        await db.preferences.insert_one({
            "id": str(uuid.uuid4()),
            "user": user_id,
            "communications": {"mesGroupements": True, "autresGroupements": False, "alertesSanitaires": True},
            "created_at": now_iso(),
            "updated_at": now_iso(),
        })
        for organisme in u["organismes"]:
            await db.adhesions.insert_one({
                "id": str(uuid.uuid4()),
                "user": user_id,
                "organisme": organisme,
                "annee": annee,
                "status": "actif",
                "created_at": now_iso(),
            })
        print(f"  Created: {u['email']} ({u['role']}/{','.join(u['organismes'])})")

    for organisme, tarifs in TARIFS.items():
        if await db.parametres.find_one({"organisme": organisme, "annee": annee}):
            continue
        await db.parametres.insert_one({
            "id": str(uuid.uuid4()),
            "organisme": organisme,
            "annee": annee,
            "tarifs": tarifs,
            "adhesionsOuvertes": True,
            "estAnneeEnCours": True,
            "created_at": now_iso(),
            "updated_at": now_iso(),
        })
        print(f"  Paramètres: {organisme} {annee}")


async def main():
    client = AsyncIOMotorClient(MONGO_URL)
    db = client[DB_NAME]

    if "--reset" in sys.argv:
        await reset(db)
        print("Reset complete. Run without --reset to re-seed.")
    else:
        await reset(db)
        await seed(db)
        print(f"\n{len(TEST_USERS)} test users seeded. Password for all: {TEST_PASSWORD}")
        print("Reset: python scripts/seed_dev_users.py --reset")

    client.close()


if __name__ == "__main__":
    asyncio.run(main())
