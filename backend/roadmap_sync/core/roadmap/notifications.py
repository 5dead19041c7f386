"""
Notification Dispatcher - credential emails.

Sends new or rotated credentials to the client through the Resend HTTP API.
Delivery is best effort: nothing in here raises to the caller.
"""

import html
from dataclasses import dataclass
from typing import Any, Optional

import httpx
import structlog

logger = structlog.get_logger()

EMAIL_SUBJECT = "Bienvenue sur Ultra !"
DOMAIN_ERROR_HINTS = ("verify a domain", "testing emails")


@dataclass
class CredentialNotice:
    """What the client needs to sign in."""
    client_name: str
    client_email: str
    password: str
    is_new_client: bool


@dataclass
class RenderedEmail:
    subject: str
    html: str
    text: str


# ==========================================================================
# Templates
# ==========================================================================

class CredentialEmailTemplates:
    """Welcome / password rotation email bodies."""

    def __init__(self, app_url: str):
        self.app_url = app_url.rstrip("/")

    @property
    def login_url(self) -> str:
        return f"{self.app_url}/login"

    def render(self, notice: CredentialNotice) -> RenderedEmail:
        return RenderedEmail(
            subject=EMAIL_SUBJECT,
            html=self._html(notice),
            text=self._text(notice),
        )

    def _html(self, notice: CredentialNotice) -> str:
        name = html.escape(notice.client_name)
        email = html.escape(notice.client_email)
        password = html.escape(notice.password)
        if notice.is_new_client:
            intro = "Bienvenue sur <strong>Ultra</strong>. Votre compte a été créé et votre roadmap est prête."
        else:
            intro = "Votre roadmap a été importée sur <strong>Ultra</strong>. Un nouveau mot de passe a été généré."

        return f"""<!DOCTYPE html>
<html lang="fr">
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1.0"/>
  <title>Ultra – Accès à votre espace</title>
</head>
<body style="margin:0;padding:0;background-color:#f5f5f5;">
  <table width="100%" cellpadding="0" cellspacing="0" role="presentation" style="padding:40px 0;">
    <tr>
      <td align="center" style="font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Arial,sans-serif;color:#111827;">
        <p style="font-size:17px;margin:0 0 18px;">Bonjour <strong>{name}</strong>,</p>
        <p style="font-size:15px;color:#4b5563;margin:0 0 22px;">{intro}</p>
        <table cellpadding="0" cellspacing="0" role="presentation"
          style="background:#fafafa;border-radius:14px;border:1px solid #eee;margin:28px 0;">
          <tr>
            <td style="padding:26px 28px;">
              <div style="font-size:12px;text-transform:uppercase;color:#9ca3af;">Email</div>
              <div style="font-size:16px;font-weight:600;margin-bottom:16px;">{email}</div>
              <div style="font-size:12px;text-transform:uppercase;color:#9ca3af;">Mot de passe</div>
              <div style="font-size:16px;font-weight:600;word-break:break-all;">{password}</div>
            </td>
          </tr>
        </table>
        <p style="font-size:15px;color:#4b5563;margin:0 0 26px;">
          Connectez-vous pour découvrir votre feuille de route et commencer.
        </p>
        <a href="{self.login_url}"
           style="display:inline-block;background:#ff7a00;color:#ffffff;text-decoration:none;
                  padding:15px 42px;border-radius:999px;font-size:16px;font-weight:600;">
          Accéder à mon espace
        </a>
        <div style="margin-top:34px;padding:18px 20px;border-radius:12px;background:#fff7ed;color:#7c2d12;font-size:14px;">
          <strong>Sécurité :</strong> Nous vous recommandons de modifier votre mot de passe lors de votre première connexion.
        </div>
        <p style="font-size:12px;color:#9ca3af;margin-top:26px;">Email automatique • Merci de ne pas répondre</p>
      </td>
    </tr>
  </table>
</body>
</html>
"""

    def _text(self, notice: CredentialNotice) -> str:
        if notice.is_new_client:
            intro = (
                "Bienvenue sur Ultra ! Votre compte a été créé avec succès et votre roadmap "
                "a été importée. Voici vos identifiants de connexion :"
            )
        else:
            intro = (
                "Votre roadmap a été importée avec succès sur Ultra. Un nouveau mot de passe "
                "a été généré pour votre compte. Voici vos identifiants de connexion :"
            )
        return (
            f"Bonjour {notice.client_name},\n\n"
            f"{intro}\n\n"
            f"Email : {notice.client_email}\n"
            f"Mot de passe : {notice.password}\n\n"
            f"Lien de connexion : {self.login_url}\n\n"
            "Important : pour des raisons de sécurité, nous vous recommandons de changer "
            "votre mot de passe après votre première connexion.\n\n"
            "Cet email a été envoyé automatiquement. Merci de ne pas y répondre.\n"
        )

    @staticmethod
    def redirected(email: RenderedEmail, intended_recipient: str) -> RenderedEmail:
        """Annotate a copy sent to the test inbox instead of the client."""
        recipient = html.escape(intended_recipient)
        banner = (
            '<p style="background-color:#fef3c7;padding:10px;border-radius:4px;margin:10px 0;">'
            f"<strong>MODE TEST:</strong> Cet email devrait être envoyé à {recipient}</p>"
        )
        return RenderedEmail(
            subject=email.subject,
            html=email.html.replace("<body", "<body data-redirected=\"true\"", 1).replace(
                "<p style=\"font-size:17px;", f"{banner}<p style=\"font-size:17px;", 1
            ),
            text=f"MODE TEST: Cet email devrait être envoyé à {intended_recipient}\n\n{email.text}",
        )


# ==========================================================================
# Mailer
# ==========================================================================

def is_domain_rejection(status_code: int, body: dict[str, Any]) -> bool:
    """Did the provider refuse because the sender domain is unverified?"""
    message = str(body.get("message") or "")
    return (
        status_code == 403
        or body.get("statusCode") == 403
        or any(hint in message for hint in DOMAIN_ERROR_HINTS)
    )


class CredentialMailer:
    """Resend client for credential emails."""

    def __init__(
        self,
        api_key: Optional[str],
        api_url: str,
        from_email: str,
        app_url: str,
        test_recipient: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.from_email = from_email
        self.test_recipient = test_recipient
        self.templates = CredentialEmailTemplates(app_url)
        self._client = client or httpx.AsyncClient(timeout=timeout)

        if self.enabled:
            logger.info("credential_mailer_initialized", mode="live", fallback=bool(test_recipient))
        else:
            logger.info("credential_mailer_initialized", mode="disabled")

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def send_credentials(self, notice: CredentialNotice) -> bool:
        """
        Deliver credentials to the client, once.

        A sender-domain rejection is retried against the configured test
        inbox. Returns whether an email went out; never raises.
        """
        if not self.enabled:
            logger.warning("credentials_email_skipped", reason="RESEND_API_KEY not configured")
            return False
        if not notice.client_email or not notice.password:
            return False

        try:
            email = self.templates.render(notice)
            status_code, body = await self._post(notice.client_email, email)
            if status_code < 300:
                logger.info("credentials_email_sent", recipient=notice.client_email)
                return True

            if not (is_domain_rejection(status_code, body) and self.test_recipient):
                logger.error(
                    "credentials_email_failed",
                    recipient=notice.client_email,
                    status_code=status_code,
                    error=body,
                )
                return False

            logger.warning(
                "credentials_email_redirected",
                recipient=notice.client_email,
                test_recipient=self.test_recipient,
            )
            redirected = self.templates.redirected(email, notice.client_email)
            status_code, body = await self._post(self.test_recipient, redirected)
            if status_code < 300:
                logger.warning("credentials_email_sent_to_test_inbox", test_recipient=self.test_recipient)
                return True

            logger.error("credentials_email_failed", recipient=self.test_recipient, status_code=status_code, error=body)
            return False
        except Exception as e:
            logger.error("credentials_email_error", recipient=notice.client_email, error=str(e))
            return False

    async def _post(self, recipient: str, email: RenderedEmail) -> tuple[int, dict[str, Any]]:
        response = await self._client.post(
            self.api_url,
            json={
                "from": self.from_email,
                "to": [recipient],
                "subject": email.subject,
                "html": email.html,
                "text": email.text,
            },
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )
        if response.status_code < 300:
            return response.status_code, {}
        try:
            body = response.json()
        except ValueError:
            body = {"message": response.text}
        if not isinstance(body, dict):
            body = {"message": str(body)}
        return response.status_code, body

    async def close(self) -> None:
        await self._client.aclose()
