"""
Envoi d'emails transactionnels via l'API HTTP Resend (httpx).
- ResendMailer: POST https://api.resend.com/emails (Bearer RESEND_API_KEY)
- NullMailer: configuration absente => log + rien envoyé
"""
from typing import Optional
import logging
import httpx

from backend.config import Settings

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


class ResendMailer:
    def __init__(self, api_key: str, from_email: str, timeout: float = 10.0, client: Optional[httpx.Client] = None):
        self.api_key = api_key
        self.from_email = from_email
        self._client = client or httpx.Client(timeout=timeout)

    def send_email(self, *, to: str, subject: str, html: str, text: str) -> Optional[str]:
        """
        Envoie un email et retourne l'id Resend.
        - Soulève httpx.HTTPError si l'API répond une erreur (l'appelant décide: best effort).
        """
        resp = self._client.post(
            RESEND_API_URL,
            json={
                "from": self.from_email,
                "to": [to],
                "subject": subject,
                "html": html,
                "text": text,
            },
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        resp.raise_for_status()
        return (resp.json() or {}).get("id")


class NullMailer:
    def send_email(self, *, to: str, subject: str, html: str, text: str) -> Optional[str]:
        logger.warning("mailer: email configuration missing; skipping email to=%s subject=%s", to, subject)
        return None


def make_mailer(settings: Settings):
    if settings.email_enabled:
        return ResendMailer(settings.resend_api_key, settings.order_from_email)
    return NullMailer()
