"""
Fixtures partagées: base MongoDB en mémoire, client HTTP sur l'app,
faux expéditeur d'emails et pause instantanée.
"""

import uuid
from datetime import datetime, timezone, timedelta

import httpx
import pytest
import pytest_asyncio
from mongomock_motor import AsyncMongoMockClient

from config import get_db, hash_password, now_iso, current_year
from routes.communications import get_dispatcher
from services.batch_dispatcher import BatchDispatcher


class FakeSender:
    """Remplace EmailService: enregistre les envois, échoue pour les adresses listées"""

    def __init__(self, failing=None):
        self.sent = []
        self.failing = set(failing or [])

    async def send_communication(self, destinataire, communication):
        if destinataire["email"] in self.failing:
            raise RuntimeError(f"Adresse rejetée: {destinataire['email']}")
        self.sent.append((destinataire["email"], communication.get("titre")))
        return f"msg-{len(self.sent)}"


class RecordingSleep:
    """Pause instantanée qui mémorise les délais demandés"""

    def __init__(self, sender=None):
        self.delays = []
        self.sent_at_pause = []
        self._sender = sender

    async def __call__(self, seconds):
        self.delays.append(seconds)
        if self._sender is not None:
            self.sent_at_pause.append(len(self._sender.sent))


# ==================== SEED HELPERS ====================

async def seed_user(db, email, role="user", organismes=None, communications=None, **extra):
    user = {
        "id": str(uuid.uuid4()),
        "email": email,
        "password": hash_password("secret123"),
        "prenom": email.split("@")[0].capitalize(),
        "nom": "Test",
        "role": role,
        "organismes": organismes if organismes is not None else ["SAR"],
        "isActive": True,
        "created_at": now_iso(),
        **extra,
    }
    await db.users.insert_one(dict(user))
    if communications is not None:
        await db.preferences.insert_one({
            "id": str(uuid.uuid4()),
            "user": user["id"],
            "communications": communications,
        })
    user.pop("password")
    return user


async def seed_adhesion(db, user_id, organisme="SAR", annee=None, status="actif"):
    adhesion = {
        "id": str(uuid.uuid4()),
        "user": user_id,
        "organisme": organisme,
        "annee": annee or current_year(),
        "status": status,
    }
    await db.adhesions.insert_one(dict(adhesion))
    return adhesion


async def seed_session(db, user_id) -> str:
    token = f"token-{uuid.uuid4()}"
    await db.sessions.insert_one({
        "token": token,
        "user_id": user_id,
        "created_at": now_iso(),
        "expires_at": (datetime.now(timezone.utc) + timedelta(days=1)).isoformat(),
    })
    return token


def auth(token):
    return {"Authorization": f"Bearer {token}"}


ALL_ON = {"mesGroupements": True, "autresGroupements": True, "alertesSanitaires": True}
ALL_OFF = {"mesGroupements": False, "autresGroupements": False, "alertesSanitaires": False}


# ==================== FIXTURES ====================

@pytest.fixture
def db():
    return AsyncMongoMockClient()["abeille_test"]


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def fake_sleep(sender):
    return RecordingSleep(sender)


@pytest_asyncio.fixture
async def client(db, sender, fake_sleep):
    from server import app

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_dispatcher] = lambda: BatchDispatcher(
        sender, batch_size=10, batch_delay_ms=1000, sleep=fake_sleep
    )

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def admin_sar(db):
    user = await seed_user(db, "admin.sar@example.re", role="admin", organismes=["SAR"])
    user["token"] = await seed_session(db, user["id"])
    return user


@pytest_asyncio.fixture
async def admin_amair(db):
    user = await seed_user(db, "admin.amair@example.re", role="admin", organismes=["AMAIR"])
    user["token"] = await seed_session(db, user["id"])
    return user


@pytest_asyncio.fixture
async def member_sar(db):
    user = await seed_user(db, "membre.sar@example.re", organismes=["SAR"], communications=dict(ALL_ON))
    user["token"] = await seed_session(db, user["id"])
    return user
