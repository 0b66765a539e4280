"""Tests for the app-installed email notifier."""

import json
import logging

import httpx
import pytest

from ledgerauth.core.settings import EmailSettings
from ledgerauth.notify.email import (
    APP_INSTALLED_SUBJECT,
    AppInstalled,
    AppInstalledNotifier,
    render_app_installed,
)

API_URL = "https://email.example.com/emails"
EVENT = AppInstalled(email="owner@example.com", team_name="Acme", app_name="Books")


def _settings(api_key: str = "re_test") -> EmailSettings:
    return EmailSettings(api_url=API_URL, api_key=api_key, sender="Ledger <n@x.io>")


class TestRender:
    def test_escapes_names(self) -> None:
        html = render_app_installed(
            AppInstalled(email="a@b.c", team_name="<Team>", app_name="A&B")
        )
        assert "&lt;Team&gt;" in html
        assert "A&amp;B" in html


class TestAppInstalledNotifier:
    """Tests for AppInstalledNotifier.send."""

    async def test_posts_to_api(self) -> None:
        seen: list[httpx.Request] = []

        def _ok(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": "email-1"})

        notifier = AppInstalledNotifier(_settings(), transport=httpx.MockTransport(_ok))
        assert await notifier.send(EVENT) is True

        request = seen[0]
        assert str(request.url) == API_URL
        assert request.headers["authorization"] == "Bearer re_test"
        payload = json.loads(request.content)
        assert payload["to"] == "owner@example.com"
        assert payload["subject"] == APP_INSTALLED_SUBJECT
        assert "Books" in payload["html"]

    async def test_skipped_without_key(self) -> None:
        def _unexpected(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        notifier = AppInstalledNotifier(
            _settings(api_key=""), transport=httpx.MockTransport(_unexpected)
        )
        assert await notifier.send(EVENT) is False

    async def test_provider_error_logged_and_swallowed(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        notifier = AppInstalledNotifier(
            _settings(),
            transport=httpx.MockTransport(lambda r: httpx.Response(503)),
        )
        with caplog.at_level(logging.ERROR, logger="ledgerauth.notify.email"):
            assert await notifier.send(EVENT) is False
        assert "Failed to send app installation email" in caplog.text

    async def test_network_error_swallowed(self) -> None:
        def _boom(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        notifier = AppInstalledNotifier(_settings(), transport=httpx.MockTransport(_boom))
        assert await notifier.send(EVENT) is False
