"""
Service d'emails SendGrid pour Abeille Réunion
- Communications aux adhérents (gabarit HTML par organisme)
"""

import asyncio
import logging
from typing import Optional
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, Email, To, Content

import config
from models.organisme import ORGANISME_LABELS, ORGANISME_HEADER_IMAGES

logger = logging.getLogger("email_service")


class EmailSendError(Exception):
    """Échec d'envoi d'un email (configuration ou réponse du fournisseur)"""
    pass


class EmailSettings:
    """Configuration du transport, construite explicitement au démarrage"""

    def __init__(
        self,
        api_key: str = "",
        senders: Optional[dict] = None,
        backend_url: str = "http://localhost:8001",
        frontend_url: str = "http://localhost:3000",
    ):
        self.api_key = api_key
        self.senders = senders or {}
        self.backend_url = backend_url.rstrip("/")
        self.frontend_url = frontend_url.rstrip("/")

    @classmethod
    def from_env(cls) -> "EmailSettings":
        return cls(
            api_key=config.SENDGRID_API_KEY,
            senders={"SAR": config.EMAIL_FROM_SAR, "AMAIR": config.EMAIL_FROM_AMAIR},
            backend_url=config.BACKEND_URL,
            frontend_url=config.FRONTEND_URL,
        )


def render_communication_html(contenu: str, organisme: str, settings: EmailSettings) -> str:
    """Gabarit fixe: image d'en-tête de l'organisme, contenu riche, pied de page préférences"""
    header_file = ORGANISME_HEADER_IMAGES.get(organisme, ORGANISME_HEADER_IMAGES["AMAIR"])
    header_image = f"{settings.backend_url}/uploads/communications/headers/{header_file}"

    return f"""
<!DOCTYPE html>
<html lang="fr">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Communication</title>
</head>
<body style="margin: 0; padding: 0; font-family: Arial, sans-serif; background-color: #f4f4f4;">
  <table width="100%" cellpadding="0" cellspacing="0" style="background-color: #f4f4f4; padding: 20px 0;">
    <tr>
      <td align="center">
        <table width="600" cellpadding="0" cellspacing="0" style="background-color: #ffffff; border-radius: 8px; overflow: hidden;">
          <tr>
            <td style="padding: 0;">
              <img src="{header_image}" alt="Header {organisme}" style="width: 100%; height: auto; display: block;" />
            </td>
          </tr>
          <tr>
            <td style="padding: 40px 30px;">
              {contenu}
            </td>
          </tr>
          <tr>
            <td style="padding: 20px 30px; background-color: #f9fafb; border-top: 1px solid #e5e7eb;">
              <p style="margin: 0; font-size: 12px; color: #6b7280; line-height: 1.5;">
                Vous recevez cet email car vous êtes adhérent.
                <br>
                Vous pouvez gérer vos préférences de communication dans
                <a href="{settings.frontend_url}/parametres" style="color: #4F46E5; text-decoration: none;">votre compte</a>.
              </p>
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>
"""


class EmailService:
    """Service centralisé pour l'envoi d'emails"""

    def __init__(self, settings: EmailSettings):
        self.settings = settings

    def _send_email(self, to_email: str, to_name: str, organisme: str, subject: str, html_content: str) -> str:
        """
        Envoie un email via SendGrid (appel bloquant).
        Returns: identifiant du message chez le fournisseur
        Raises: EmailSendError
        """
        if not self.settings.api_key:
            raise EmailSendError("SENDGRID_API_KEY non configurée")

        sender = self.settings.senders.get(organisme)
        if not sender:
            raise EmailSendError(f"Expéditeur non configuré pour {organisme}")

        message = Mail(
            from_email=Email(sender, ORGANISME_LABELS.get(organisme, organisme)),
            to_emails=To(to_email, to_name or None),
            subject=subject,
            html_content=Content("text/html", html_content)
        )

        try:
            sg = SendGridAPIClient(self.settings.api_key)
            response = sg.send(message)
        except Exception as e:
            body = getattr(e, "body", None)
            raise EmailSendError(str(body or e)) from e

        if response.status_code not in (200, 202):
            raise EmailSendError(f"Réponse SendGrid {response.status_code}: {response.body}")

        message_id = response.headers.get("X-Message-Id", "") if response.headers else ""
        logger.info(f"Email envoyé à {to_email}: {subject}")
        return message_id

    async def send_communication(self, destinataire: dict, communication: dict) -> str:
        """Envoie une communication à un adhérent (thread dédié, pour paralléliser un lot)"""
        organisme = communication.get("organisme")
        html_content = render_communication_html(
            communication.get("contenu", ""), organisme, self.settings
        )
        to_name = f"{destinataire.get('prenom', '')} {destinataire.get('nom', '')}".strip()

        return await asyncio.to_thread(
            self._send_email,
            destinataire["email"],
            to_name,
            organisme,
            communication.get("titre", ""),
            html_content,
        )
