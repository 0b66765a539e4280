"""Best-effort "app installed" notification via a transactional email API."""

import logging
from html import escape

import httpx
from pydantic import BaseModel

from ledgerauth.core.settings import EmailSettings

logger = logging.getLogger(__name__)

APP_INSTALLED_SUBJECT = "An app has been added to your team"


class AppInstalled(BaseModel):
    """Who to tell, and about which application and team."""

    email: str
    team_name: str
    app_name: str


def render_app_installed(event: AppInstalled) -> str:
    """Render the notification body as HTML."""
    return (
        f"<p>Hi {escape(event.email)},</p>"
        f"<p><strong>{escape(event.app_name)}</strong> has been added to "
        f"the team <strong>{escape(event.team_name)}</strong>.</p>"
        "<p>If you did not authorize this application, remove it from your "
        "team settings.</p>"
    )


class AppInstalledNotifier:
    """Sends install notifications; never raises to the caller."""

    def __init__(
        self,
        settings: EmailSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    async def send(self, event: AppInstalled) -> bool:
        """Send the notification. Returns False if it was skipped or failed."""
        if not self._settings.api_key:
            logger.debug("Email API key not configured; skipping notification")
            return False

        payload = {
            "from": self._settings.sender,
            "to": event.email,
            "subject": APP_INSTALLED_SUBJECT,
            "html": render_app_installed(event),
        }
        try:
            async with httpx.AsyncClient(
                timeout=self._settings.timeout_seconds, transport=self._transport
            ) as client:
                resp = await client.post(
                    self._settings.api_url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self._settings.api_key}"},
                )
                resp.raise_for_status()
        except httpx.HTTPError:
            logger.exception("Failed to send app installation email")
            return False
        return True


def get_notifier() -> AppInstalledNotifier:
    return AppInstalledNotifier(EmailSettings())
