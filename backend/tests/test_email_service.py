"""
Service email SendGrid: gabarit HTML, expéditeur par organisme,
erreurs fournisseur remontées en EmailSendError.
"""

import pytest

import email_service
from email_service import EmailService, EmailSettings, EmailSendError, render_communication_html

SETTINGS = EmailSettings(
    api_key="SG.test",
    senders={"SAR": "contact@sar.re", "AMAIR": "contact@amair.re"},
    backend_url="https://api.abeille.re/",
    frontend_url="https://abeille.re",
)

DESTINATAIRE = {"email": "membre@example.re", "prenom": "Jean", "nom": "Hoarau"}
COMMUNICATION = {"titre": "Alerte frelon", "contenu": "<p>Vigilance</p>", "organisme": "AMAIR"}


class FakeResponse:
    def __init__(self, status_code=202, headers=None, body=""):
        self.status_code = status_code
        self.headers = headers or {}
        self.body = body


def fake_client(response, sent):
    class FakeSendGridClient:
        def __init__(self, api_key):
            self.api_key = api_key

        def send(self, message):
            sent.append(message)
            return response

    return FakeSendGridClient


class TestTemplate:

    def test_header_and_footer(self):
        html = render_communication_html("<p>Vigilance</p>", "SAR", SETTINGS)
        assert "https://api.abeille.re/uploads/communications/headers/header-sar.png" in html
        assert "https://abeille.re/parametres" in html
        assert "<p>Vigilance</p>" in html


class TestSend:

    @pytest.mark.asyncio
    async def test_success_returns_message_id(self, monkeypatch):
        sent = []
        monkeypatch.setattr(
            email_service, "SendGridAPIClient",
            fake_client(FakeResponse(headers={"X-Message-Id": "msg-42"}), sent)
        )

        message_id = await EmailService(SETTINGS).send_communication(DESTINATAIRE, COMMUNICATION)

        assert message_id == "msg-42"
        payload = sent[0].get()
        assert payload["from"]["email"] == "contact@amair.re"
        assert payload["subject"] == "Alerte frelon"

    @pytest.mark.asyncio
    async def test_provider_error(self, monkeypatch):
        monkeypatch.setattr(
            email_service, "SendGridAPIClient",
            fake_client(FakeResponse(status_code=400, body="bad request"), [])
        )
        with pytest.raises(EmailSendError):
            await EmailService(SETTINGS).send_communication(DESTINATAIRE, COMMUNICATION)

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        service = EmailService(EmailSettings(api_key="", senders=SETTINGS.senders))
        with pytest.raises(EmailSendError):
            await service.send_communication(DESTINATAIRE, COMMUNICATION)
