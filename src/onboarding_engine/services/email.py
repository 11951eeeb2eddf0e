"""Onboarding invitation email via the MailerSend HTTP API."""

from __future__ import annotations

import html
import logging
from typing import Any

import httpx

from onboarding_engine.config import Settings, get_settings

logger = logging.getLogger(__name__)

INVITATION_STRINGS: dict[str, dict[str, str]] = {
    "en": {
        "subject": "Welcome to {organization} - Complete Your Onboarding",
        "greeting": "Hi {name},",
        "body": (
            "Congratulations on joining {organization} as {position}. "
            "Please complete your onboarding paperwork using the link below."
        ),
        "code_label": "Your access code",
        "button": "Start Onboarding",
        "notes_label": "Notes from your reviewer",
    },
    "es": {
        "subject": "Bienvenido/a a {organization} - Complete su Incorporación",
        "greeting": "Hola {name},",
        "body": (
            "Felicidades por unirse a {organization} como {position}. "
            "Por favor complete sus documentos de incorporación usando el enlace de abajo."
        ),
        "code_label": "Su código de acceso",
        "button": "Comenzar Incorporación",
        "notes_label": "Notas de su revisor",
    },
}


class EmailService:
    """Sends transactional email through MailerSend."""

    def __init__(self, settings: Settings | None = None, timeout: float = 30.0):
        self.settings = settings or get_settings()
        self.api_key = self.settings.mailer_api_key
        self.from_email = self.settings.mailer_from_email
        self.from_name = self.settings.mailer_from_name
        self.base_url = self.settings.mailer_base_url.rstrip("/")
        self.timeout = timeout

    def is_configured(self) -> bool:
        """Check if email service is properly configured."""
        return bool(self.api_key)

    async def send_email(
        self,
        to_email: str,
        to_name: str | None,
        subject: str,
        html_content: str,
        text_content: str | None = None,
    ) -> bool:
        """Send one email. Returns False instead of raising on any failure."""
        if not self.is_configured():
            logger.info("Mailer not configured, skipping email to %s", to_email)
            return False

        payload: dict[str, Any] = {
            "from": {"email": self.from_email, "name": self.from_name},
            "to": [{"email": to_email, "name": to_name or to_email}],
            "subject": subject,
            "html": html_content,
        }
        if text_content:
            payload["text"] = text_content

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/email",
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.HTTPError:
            logger.exception("Error sending email to %s", to_email)
            return False

        if response.status_code in (200, 201, 202):
            logger.info("Sent email to %s", to_email)
            return True
        logger.warning(
            "Failed to send email to %s: %s - %s",
            to_email,
            response.status_code,
            response.text,
        )
        return False

    async def send_onboarding_invitation(
        self,
        to_email: str,
        employee_name: str,
        position: str | None,
        organization_name: str,
        onboarding_url: str,
        token: str,
        review_notes: str | None = None,
        locale: str = "en",
    ) -> bool:
        """Send the link and access code that open the onboarding wizard."""
        strings = INVITATION_STRINGS.get(locale, INVITATION_STRINGS["en"])
        values = {
            "name": employee_name,
            "organization": organization_name,
            "position": position or "a team member",
        }
        subject = strings["subject"].format(**values)
        text_lines = [
            strings["greeting"].format(**values),
            "",
            strings["body"].format(**values),
            "",
            f"{strings['code_label']}: {token}",
            onboarding_url,
        ]
        if review_notes:
            text_lines += ["", f"{strings['notes_label']}: {review_notes}"]

        escaped = {k: html.escape(v) for k, v in values.items()}
        notes_html = (
            f"<p><strong>{strings['notes_label']}:</strong> {html.escape(review_notes)}</p>"
            if review_notes
            else ""
        )
        html_content = f"""
<!DOCTYPE html>
<html lang="{locale}">
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto;">
    <p>{strings["greeting"].format(**escaped)}</p>
    <p>{strings["body"].format(**escaped)}</p>
    <p>{strings["code_label"]}:</p>
    <p style="font-size: 24px; font-weight: bold; letter-spacing: 3px;">{html.escape(token)}</p>
    <p><a href="{html.escape(onboarding_url, quote=True)}">{strings["button"]}</a></p>
    {notes_html}
</body>
</html>
"""
        return await self.send_email(
            to_email=to_email,
            to_name=employee_name,
            subject=subject,
            html_content=html_content,
            text_content="\n".join(text_lines),
        )
