"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Abeille Réunion - API Communications                                        ║
║                                                                              ║
║  1. Accès admin uniquement                                                   ║
║  2. Visibilité entre organismes                                              ║
║  3. Brouillon uniquement pour modifier / supprimer / envoyer                 ║
║  4. Envoi: compteurs, aucun destinataire -> 400 sans appel fournisseur       ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import pytest

from config import current_year
from tests.conftest import seed_user, seed_adhesion, seed_session, auth, ALL_ON


async def create(client, admin, **payload):
    body = {"titre": "Miellerie partagée", "contenu": "<p>Réservations ouvertes</p>"}
    body.update(payload)
    return await client.post("/api/communications", json=body, headers=auth(admin["token"]))


class TestAccess:

    @pytest.mark.asyncio
    async def test_unauthenticated(self, client):
        response = await client.get("/api/communications")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_member_is_refused(self, client, member_sar):
        response = await client.get("/api/communications", headers=auth(member_sar["token"]))
        assert response.status_code == 403


class TestCreate:

    @pytest.mark.asyncio
    async def test_create_brouillon(self, client, admin_sar):
        response = await create(client, admin_sar)
        assert response.status_code == 200
        communication = response.json()["communication"]
        assert communication["statut"] == "brouillon"
        assert communication["organisme"] == "SAR"
        assert communication["auteur"] == admin_sar["id"]
        assert communication["destinataires"] == "mon_groupement"
        assert communication["emailsEnvoyes"] == 0

    @pytest.mark.asyncio
    async def test_titre_required(self, client, admin_sar):
        response = await create(client, admin_sar, titre="   ")
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_programme_requires_future_date(self, client, admin_sar):
        missing = await create(client, admin_sar, statut="programme")
        assert missing.status_code == 400

        past = await create(client, admin_sar, statut="programme", dateProgrammee="2001-01-01T10:00:00Z")
        assert past.status_code == 400

        ok = await create(client, admin_sar, statut="programme", dateProgrammee="2099-01-01T10:00:00Z")
        assert ok.status_code == 200
        assert ok.json()["communication"]["dateProgrammee"].startswith("2099-01-01T10:00:00")

    @pytest.mark.asyncio
    async def test_cannot_create_directly_as_envoye(self, client, admin_sar):
        response = await create(client, admin_sar, statut="envoye")
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_cannot_write_for_other_organisme(self, client, admin_sar):
        response = await create(client, admin_sar, organisme="AMAIR")
        assert response.status_code == 403


class TestVisibility:

    @pytest.mark.asyncio
    async def test_other_organisme_sees_health_alerts_and_broadcasts(self, client, admin_sar, admin_amair):
        prive = (await create(client, admin_sar, titre="Réunion SAR")).json()["communication"]
        await create(client, admin_sar, titre="Alerte varroa", estSanitaire=True)
        await create(client, admin_sar, titre="Fête du miel", destinataires="tous_groupements")

        response = await client.get("/api/communications", headers=auth(admin_amair["token"]))
        titres = sorted(c["titre"] for c in response.json()["communications"])
        assert titres == ["Alerte varroa", "Fête du miel"]

        detail = await client.get(f"/api/communications/{prive['id']}", headers=auth(admin_amair["token"]))
        assert detail.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_id(self, client, admin_sar):
        response = await client.get("/api/communications/inconnue", headers=auth(admin_sar["token"]))
        assert response.status_code == 404


class TestEditGates:

    @pytest.mark.asyncio
    async def test_update_by_author(self, client, admin_sar):
        communication = (await create(client, admin_sar)).json()["communication"]
        response = await client.put(
            f"/api/communications/{communication['id']}",
            json={"titre": "Nouveau titre", "estSanitaire": True},
            headers=auth(admin_sar["token"])
        )
        assert response.status_code == 200
        assert response.json()["communication"]["titre"] == "Nouveau titre"
        assert response.json()["communication"]["estSanitaire"] is True

    @pytest.mark.asyncio
    async def test_other_admin_cannot_edit(self, client, db, admin_sar):
        other = await seed_user(db, "admin2.sar@example.re", role="admin", organismes=["SAR"])
        token = await seed_session(db, other["id"])

        communication = (await create(client, admin_sar)).json()["communication"]
        response = await client.delete(f"/api/communications/{communication['id']}", headers=auth(token))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_sent_communication_is_frozen(self, client, db, admin_sar):
        communication = (await create(client, admin_sar)).json()["communication"]
        await db.communications.update_one({"id": communication["id"]}, {"$set": {"statut": "envoye"}})

        put = await client.put(
            f"/api/communications/{communication['id']}",
            json={"titre": "Trop tard"},
            headers=auth(admin_sar["token"])
        )
        delete = await client.delete(f"/api/communications/{communication['id']}", headers=auth(admin_sar["token"]))

        assert put.status_code == 400
        assert delete.status_code == 400
        print("✅ Communication envoyée: ni modifiable ni supprimable")

    @pytest.mark.asyncio
    async def test_delete_brouillon(self, client, db, admin_sar):
        communication = (await create(client, admin_sar)).json()["communication"]
        response = await client.delete(f"/api/communications/{communication['id']}", headers=auth(admin_sar["token"]))
        assert response.status_code == 200
        assert await db.communications.find_one({"id": communication["id"]}) is None


class TestSend:

    @pytest.mark.asyncio
    async def test_no_recipients(self, client, db, sender, admin_sar):
        communication = (await create(client, admin_sar)).json()["communication"]

        response = await client.post(
            f"/api/communications/{communication['id']}/send", headers=auth(admin_sar["token"])
        )

        assert response.status_code == 400
        assert "Aucun destinataire" in response.json()["detail"]
        assert sender.sent == []
        doc = await db.communications.find_one({"id": communication["id"]}, {"_id": 0})
        assert doc["statut"] == "brouillon"

    @pytest.mark.asyncio
    async def test_send_to_current_members(self, client, db, sender, admin_sar):
        for i in range(3):
            membre = await seed_user(db, f"membre{i}@example.re", organismes=["SAR"], communications=dict(ALL_ON))
            await seed_adhesion(db, membre["id"], "SAR", current_year(), "actif")
        sender.failing.add("membre2@example.re")

        communication = (await create(client, admin_sar)).json()["communication"]
        response = await client.post(
            f"/api/communications/{communication['id']}/send", headers=auth(admin_sar["token"])
        )

        assert response.status_code == 200
        sent = response.json()["communication"]
        assert sent["statut"] == "envoye"
        assert sent["emailsEnvoyes"] == 2
        assert sent["emailsEchoues"] == 1
        assert sent["erreurs"][0]["email"] == "membre2@example.re"
        assert sorted(email for email, _ in sender.sent) == ["membre0@example.re", "membre1@example.re"]

        again = await client.post(
            f"/api/communications/{communication['id']}/send", headers=auth(admin_sar["token"])
        )
        assert again.status_code == 400

    @pytest.mark.asyncio
    async def test_preview_recipients(self, client, db, sender, admin_sar):
        membre = await seed_user(db, "apercu@example.re", organismes=["SAR"], communications=dict(ALL_ON))
        await seed_adhesion(db, membre["id"], "SAR", current_year(), "actif")
        communication = (await create(client, admin_sar)).json()["communication"]

        response = await client.get(
            f"/api/communications/{communication['id']}/destinataires", headers=auth(admin_sar["token"])
        )

        assert response.status_code == 200
        assert response.json() == {"count": 1, "emails": ["apercu@example.re"]}
        assert sender.sent == []
