"""
Ultra Roadmap Sync - Credential Email Tests
===========================================
"""

import httpx
import pytest

from roadmap_sync.core.roadmap.notifications import (
    CredentialEmailTemplates,
    CredentialMailer,
    CredentialNotice,
    is_domain_rejection,
)

EMAIL_URL = "https://email.test/emails"


@pytest.fixture
def notice() -> CredentialNotice:
    return CredentialNotice(
        client_name="Jean <Dupont>",
        client_email="jean@acme.test",
        password="S3cret!pass",
        is_new_client=True,
    )


class TestTemplates:

    def test_welcome_email(self, notice):
        email = CredentialEmailTemplates("https://app.example.com/").render(notice)
        assert "Bienvenue" in email.subject
        assert "https://app.example.com/login" in email.html
        assert "Jean &lt;Dupont&gt;" in email.html
        assert "S3cret!pass" in email.text
        assert "Votre compte a été créé" in email.text

    def test_rotation_email(self, notice):
        notice.is_new_client = False
        email = CredentialEmailTemplates("https://app.example.com").render(notice)
        assert "nouveau mot de passe" in email.text

    def test_redirected_copy_names_recipient(self, notice):
        templates = CredentialEmailTemplates("https://app.example.com")
        email = templates.redirected(templates.render(notice), notice.client_email)
        assert "MODE TEST" in email.html
        assert "jean@acme.test" in email.html
        assert email.text.startswith("MODE TEST")


@pytest.mark.parametrize(
    "status_code, body, expected",
    [
        (403, {}, True),
        (422, {"statusCode": 403}, True),
        (422, {"message": "You can only send testing emails to your own email address"}, True),
        (422, {"message": "Please verify a domain"}, True),
        (422, {"message": "Invalid `to` field"}, False),
        (500, {}, False),
    ],
)
def test_domain_rejection_detection(status_code, body, expected):
    assert is_domain_rejection(status_code, body) is expected


class TestCredentialMailer:

    async def test_delivers_to_client(self, mailer, upstream, notice):
        upstream.queue(EMAIL_URL, httpx.Response(200, json={"id": "email_1"}))

        assert await mailer.send_credentials(notice) is True

        sent = upstream.sent_to(EMAIL_URL)
        assert len(sent) == 1
        assert sent[0]["to"] == ["jean@acme.test"]
        assert sent[0]["from"] == "onboarding@example.com"
        assert upstream.requests[0].headers["Authorization"] == "Bearer re_test"

    async def test_domain_rejection_redirects_once(self, mailer, upstream, notice):
        upstream.queue(
            EMAIL_URL,
            httpx.Response(403, json={"statusCode": 403, "message": "Please verify a domain"}),
            httpx.Response(200, json={"id": "email_2"}),
        )

        assert await mailer.send_credentials(notice) is True

        sent = upstream.sent_to(EMAIL_URL)
        assert [message["to"] for message in sent] == [["jean@acme.test"], ["inbox@example.com"]]
        assert "MODE TEST" in sent[1]["html"]

    async def test_no_fallback_address(self, http_client, upstream, notice):
        mailer = CredentialMailer(
            api_key="re_test",
            api_url=EMAIL_URL,
            from_email="onboarding@example.com",
            app_url="https://app.example.com",
            client=http_client,
        )
        upstream.queue(EMAIL_URL, httpx.Response(403, json={"message": "verify a domain"}))

        assert await mailer.send_credentials(notice) is False
        assert len(upstream.requests) == 1

    async def test_other_failure_swallowed(self, mailer, upstream, notice):
        upstream.queue(EMAIL_URL, httpx.Response(422, json={"message": "Invalid `to` field"}))
        assert await mailer.send_credentials(notice) is False
        assert len(upstream.requests) == 1

    async def test_network_error_swallowed(self, mailer, upstream, notice):
        upstream.queue(EMAIL_URL, httpx.ConnectError("down"))
        assert await mailer.send_credentials(notice) is False

    async def test_disabled_without_key(self, http_client, upstream, notice):
        mailer = CredentialMailer(
            api_key=None,
            api_url=EMAIL_URL,
            from_email="onboarding@example.com",
            app_url="https://app.example.com",
            client=http_client,
        )
        assert await mailer.send_credentials(notice) is False
        assert upstream.requests == []
