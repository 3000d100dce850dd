"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Abeille Réunion - Paramètres annuels & passage d'année                      ║
║                                                                              ║
║  1. Création N+1 (tarifs copiés ou par défaut), rejouable                    ║
║  2. Expiration des adhésions N-1                                             ║
║  3. Bascule de l'année en cours                                              ║
║  4. Règles API: tarifs N+1 seulement, année en cours jamais fermée           ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import pytest

from config import current_year
from services.parametres import (
    build_parametre,
    init_nouvelle_annee,
    expire_adhesions_annee_precedente,
    update_annee_en_cours,
)
from tests.conftest import seed_adhesion, auth


async def seed_parametre(db, organisme, annee, tarifs=None, ouvertes=False, en_cours=False):
    doc = build_parametre(
        organisme, annee, tarifs or {"loisir": 10, "professionnel": 20},
        adhesions_ouvertes=ouvertes, en_cours=en_cours
    )
    await db.parametres.insert_one(dict(doc))
    return doc


# ════════════════════════════════════════════════════════════════════════
# PASSAGE D'ANNÉE
# ════════════════════════════════════════════════════════════════════════

class TestInitNouvelleAnnee:

    @pytest.mark.asyncio
    async def test_copies_current_tarifs_or_defaults(self, db):
        await seed_parametre(db, "SAR", 2026, {"loisir": 35, "professionnel": 55}, ouvertes=True, en_cours=True)

        created = await init_nouvelle_annee(db, 2026)

        par_organisme = {p["organisme"]: p for p in created}
        assert par_organisme["SAR"]["tarifs"] == {"loisir": 35, "professionnel": 55}
        assert par_organisme["AMAIR"]["tarifs"] == {"loisir": 25, "professionnel": 45}
        for p in created:
            assert p["annee"] == 2027
            assert p["adhesionsOuvertes"] is False
            assert p["estAnneeEnCours"] is False

        courant = await db.parametres.find_one({"organisme": "SAR", "annee": 2026})
        assert courant["adhesionsOuvertes"] is False
        print("✅ N+1 créé fermé, N fermé")

    @pytest.mark.asyncio
    async def test_replay_creates_nothing(self, db):
        await init_nouvelle_annee(db, 2026)
        again = await init_nouvelle_annee(db, 2026)

        assert again == []
        assert await db.parametres.count_documents({"annee": 2027}) == 2


class TestExpireAdhesions:

    @pytest.mark.asyncio
    async def test_previous_year_pending_and_active_expire(self, db):
        a = await seed_adhesion(db, "u1", "SAR", 2025, "actif")
        b = await seed_adhesion(db, "u2", "SAR", 2025, "paiement_demande")
        c = await seed_adhesion(db, "u3", "AMAIR", 2025, "en_attente")
        d = await seed_adhesion(db, "u4", "SAR", 2026, "actif")

        count = await expire_adhesions_annee_precedente(db, 2026)

        assert count == 3
        for adhesion in (a, b, c):
            doc = await db.adhesions.find_one({"id": adhesion["id"]})
            assert doc["status"] == "expiree"
        assert (await db.adhesions.find_one({"id": d["id"]}))["status"] == "actif"


class TestUpdateAnneeEnCours:

    @pytest.mark.asyncio
    async def test_flags(self, db):
        await seed_parametre(db, "SAR", 2026, ouvertes=True, en_cours=True)
        await seed_parametre(db, "SAR", 2027)

        await update_annee_en_cours(db, 2027)

        ancien = await db.parametres.find_one({"annee": 2026})
        nouveau = await db.parametres.find_one({"annee": 2027})
        assert ancien["estAnneeEnCours"] is False
        assert nouveau["estAnneeEnCours"] is True
        assert nouveau["adhesionsOuvertes"] is True


# ════════════════════════════════════════════════════════════════════════
# API
# ════════════════════════════════════════════════════════════════════════

class TestParametresAPI:

    @pytest.mark.asyncio
    async def test_public_reads(self, client, db):
        annee = current_year()
        await seed_parametre(db, "SAR", annee, ouvertes=True, en_cours=True)
        await seed_parametre(db, "SAR", annee + 1, ouvertes=True)
        await seed_parametre(db, "AMAIR", annee + 1, ouvertes=False)

        current = await client.get("/api/parametres/current")
        assert [p["organisme"] for p in current.json()] == ["SAR"]

        disponibles = (await client.get("/api/parametres/annees-disponibles")).json()
        assert disponibles["anneeActuelle"] == annee
        assert [a["annee"] for a in disponibles["anneesDisponibles"]] == [annee, annee + 1]
        assert [o["organisme"] for o in disponibles["anneesDisponibles"][1]["organismes"]] == ["SAR"]

        detail = await client.get(f"/api/parametres/sar/{annee}")
        assert detail.status_code == 200
        missing = await client.get("/api/parametres/AMAIR/1990")
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_create_duplicate(self, client, admin_sar):
        body = {"organisme": "SAR", "annee": 2035, "tarifs": {"loisir": 30, "professionnel": 50}}
        first = await client.post("/api/parametres", json=body, headers=auth(admin_sar["token"]))
        assert first.status_code == 201
        assert first.json()["adhesionsOuvertes"] is False

        second = await client.post("/api/parametres", json=body, headers=auth(admin_sar["token"]))
        assert second.status_code == 400

    @pytest.mark.asyncio
    async def test_admin_limited_to_own_organisme(self, client, admin_sar):
        body = {"organisme": "AMAIR", "annee": 2035, "tarifs": {"loisir": 30, "professionnel": 50}}
        response = await client.post("/api/parametres", json=body, headers=auth(admin_sar["token"]))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_tarifs_only_next_year(self, client, db, admin_sar):
        annee = current_year()
        await seed_parametre(db, "SAR", annee, en_cours=True, ouvertes=True)
        await seed_parametre(db, "SAR", annee + 1)
        body = {"tarifs": {"loisir": 40, "professionnel": 60}}

        refused = await client.put(f"/api/parametres/SAR/{annee}/tarifs", json=body, headers=auth(admin_sar["token"]))
        assert refused.status_code == 403

        accepted = await client.put(
            f"/api/parametres/SAR/{annee + 1}/tarifs", json=body, headers=auth(admin_sar["token"])
        )
        assert accepted.status_code == 200
        assert accepted.json()["tarifs"] == {"loisir": 40, "professionnel": 60}

    @pytest.mark.asyncio
    async def test_toggle_never_current_year(self, client, db, admin_sar):
        annee = current_year()
        await seed_parametre(db, "SAR", annee, en_cours=True, ouvertes=True)
        await seed_parametre(db, "SAR", annee + 1)

        refused = await client.put(
            f"/api/parametres/SAR/{annee}/toggle-adhesions", headers=auth(admin_sar["token"])
        )
        assert refused.status_code == 403

        opened = await client.put(
            f"/api/parametres/SAR/{annee + 1}/toggle-adhesions", headers=auth(admin_sar["token"])
        )
        assert opened.status_code == 200
        assert opened.json()["adhesionsOuvertes"] is True

    @pytest.mark.asyncio
    async def test_statistiques(self, client, db, admin_sar):
        await seed_adhesion(db, "u1", "SAR", 2026, "actif")
        await seed_adhesion(db, "u2", "SAR", 2026, "actif")
        await seed_adhesion(db, "u3", "SAR", 2026, "en_attente")
        await seed_adhesion(db, "u4", "AMAIR", 2025, "expiree")

        response = await client.get("/api/parametres/statistiques/all", headers=auth(admin_sar["token"]))
        assert response.status_code == 200
        stats = response.json()["statistiques"]
        assert stats[0] == {"annee": 2026, "organisme": "SAR", "total": 3, "parStatus": {"actif": 2, "en_attente": 1}}
        assert stats[1]["annee"] == 2025

    @pytest.mark.asyncio
    async def test_init_nouvelle_annee_endpoint(self, client, admin_sar):
        first = await client.post("/api/parametres/init-nouvelle-annee", headers=auth(admin_sar["token"]))
        assert first.status_code == 201
        assert len(first.json()["parametres"]) == 2

        second = await client.post("/api/parametres/init-nouvelle-annee", headers=auth(admin_sar["token"]))
        assert second.status_code == 400
