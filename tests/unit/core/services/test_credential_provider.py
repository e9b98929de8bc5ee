"""Tests for the OAuth credential provider."""

import base64
import hashlib
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from src.catalog.core.errors import (
    AssertionInvalid,
    ProviderMisconfigured,
    ProviderUnavailable,
)
from src.catalog.core.services.credential_provider import (
    CredentialProvider,
    CredentialProviderRegistry,
    ProviderSettings,
)
from src.catalog.runtime.config.config_data import AppConfig, ConfigData, ProviderConfig
from tests.fixtures.auth import FakeProvider
from tests.fixtures.core import PROVIDER_BASE_URL

CALLBACK_URL = "http://localhost:3000/auth/google/callback"


def _provider(
    provider_config: ProviderConfig,
    fake_provider: FakeProvider | None = None,
    app: AppConfig | None = None,
) -> CredentialProvider:
    settings = ProviderSettings.from_config(
        "google", provider_config, app or AppConfig(environment="test")
    )
    return CredentialProvider(
        settings, transport=fake_provider.transport if fake_provider else None
    )


@pytest.fixture
def provider(provider_config: ProviderConfig, fake_provider: FakeProvider) -> CredentialProvider:
    return _provider(provider_config, fake_provider)


class TestProviderSettings:
    def test_callback_url_is_derived_from_base_url(self, provider_config: ProviderConfig):
        settings = ProviderSettings.from_config("google", provider_config, AppConfig())

        assert settings.callback_url == CALLBACK_URL
        assert settings.enabled

    def test_hosted_url_is_used_in_production(self, provider_config: ProviderConfig):
        app = AppConfig(environment="production", hosted_url="https://catalog.example.com/")

        settings = ProviderSettings.from_config("google", provider_config, app)

        assert settings.callback_url == "https://catalog.example.com/auth/google/callback"

    @pytest.mark.parametrize(
        ("client_id", "client_secret"),
        [
            (None, None),
            ("", "secret"),
            ("  ", "secret"),
            ("your_actual_google_client_id", "secret"),
            ("id", "your_actual_google_client_secret"),
        ],
    )
    def test_missing_or_placeholder_credentials_disable_provider(
        self, client_id, client_secret
    ):
        config = ProviderConfig(client_id=client_id, client_secret=client_secret)

        assert not ProviderSettings.from_config("google", config, AppConfig()).enabled


class TestBeginLogin:
    @pytest.mark.asyncio
    async def test_authorization_url(self, provider: CredentialProvider):
        redirect = await provider.begin_login()

        parsed = urlparse(redirect.url)
        params = parse_qs(parsed.query)
        assert f"{parsed.scheme}://{parsed.netloc}" == PROVIDER_BASE_URL
        assert parsed.path == "/authorize"
        assert params["response_type"] == ["code"]
        assert params["client_id"] == ["test-client-id"]
        assert params["redirect_uri"] == [CALLBACK_URL]
        assert params["scope"] == ["openid email profile"]
        assert params["state"] == [redirect.state]
        assert params["code_challenge_method"] == ["S256"]

    @pytest.mark.asyncio
    async def test_code_challenge_matches_verifier(self, provider: CredentialProvider):
        redirect = await provider.begin_login()

        params = parse_qs(urlparse(redirect.url).query)
        digest = hashlib.sha256(redirect.code_verifier.encode("ascii")).digest()
        expected = base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
        assert params["code_challenge"] == [expected]

    @pytest.mark.asyncio
    async def test_each_attempt_gets_fresh_secrets(self, provider: CredentialProvider):
        first = await provider.begin_login()
        second = await provider.begin_login()

        assert first.state != second.state
        assert first.code_verifier != second.code_verifier
        assert len(first.state) >= 43

    @pytest.mark.asyncio
    async def test_disabled_provider(self):
        provider = _provider(ProviderConfig())

        with pytest.raises(ProviderUnavailable) as exc_info:
            await provider.begin_login()

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_registered_redirect_uri_mismatch(self, provider_config: ProviderConfig):
        config = provider_config.model_copy(
            update={"registered_redirect_uri": "https://elsewhere.example.com/cb"}
        )

        with pytest.raises(ProviderMisconfigured):
            await _provider(config).begin_login()

    @pytest.mark.asyncio
    async def test_registered_redirect_uri_match(self, provider_config: ProviderConfig):
        config = provider_config.model_copy(update={"registered_redirect_uri": CALLBACK_URL})

        redirect = await _provider(config).begin_login()

        assert redirect.url.startswith(PROVIDER_BASE_URL)


class TestCompleteLogin:
    @pytest.mark.asyncio
    async def test_profile_becomes_assertion(
        self, provider: CredentialProvider, fake_provider: FakeProvider
    ):
        assertion = await provider.complete_login({"code": "auth-code"}, "verifier-1")

        assert assertion.provider == "google"
        assert assertion.external_id == "google-sub-123"
        assert assertion.email == "Reader@Example.com"
        assert assertion.display_name == "Reader One"
        assert assertion.avatar_url == "https://example.com/avatar.jpg"

    @pytest.mark.asyncio
    async def test_token_request_carries_code_and_verifier(
        self, provider: CredentialProvider, fake_provider: FakeProvider
    ):
        await provider.complete_login({"code": "auth-code"}, "verifier-1")

        form = fake_provider.token_request_form()
        assert form["grant_type"] == ["authorization_code"]
        assert form["code"] == ["auth-code"]
        assert form["code_verifier"] == ["verifier-1"]
        assert form["redirect_uri"] == [CALLBACK_URL]

    @pytest.mark.asyncio
    async def test_userinfo_uses_access_token(
        self, provider: CredentialProvider, fake_provider: FakeProvider
    ):
        await provider.complete_login({"code": "auth-code"}, "verifier-1")

        userinfo = [r for r in fake_provider.requests if r.url.path == "/userinfo"][-1]
        assert userinfo.headers["authorization"] == "Bearer provider-access-token"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "params",
        [
            {"error": "access_denied"},
            {"error": "access_denied", "error_description": "User cancelled"},
            {},
            {"code": ""},
        ],
    )
    async def test_callback_without_code(
        self, provider: CredentialProvider, fake_provider: FakeProvider, params
    ):
        with pytest.raises(AssertionInvalid):
            await provider.complete_login(params, "verifier-1")

        assert fake_provider.requests == []

    @pytest.mark.asyncio
    async def test_rejected_code(self, provider: CredentialProvider, fake_provider: FakeProvider):
        fake_provider.token_status = 400
        fake_provider.token_body = {"error": "invalid_grant"}

        with pytest.raises(AssertionInvalid):
            await provider.complete_login({"code": "reused"}, "verifier-1")

    @pytest.mark.asyncio
    async def test_userinfo_rejected(self, provider: CredentialProvider, fake_provider: FakeProvider):
        fake_provider.userinfo_status = 401

        with pytest.raises(AssertionInvalid):
            await provider.complete_login({"code": "auth-code"}, "verifier-1")

    @pytest.mark.asyncio
    async def test_userinfo_server_error(
        self, provider: CredentialProvider, fake_provider: FakeProvider
    ):
        fake_provider.userinfo_status = 502

        with pytest.raises(ProviderUnavailable):
            await provider.complete_login({"code": "auth-code"}, "verifier-1")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [httpx.ConnectError("connection refused"), httpx.ReadTimeout("timed out")],
    )
    async def test_unreachable_provider(
        self, provider: CredentialProvider, fake_provider: FakeProvider, error
    ):
        fake_provider.error = error

        with pytest.raises(ProviderUnavailable):
            await provider.complete_login({"code": "auth-code"}, "verifier-1")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "update",
        [
            {"sub": None},
            {"email": None},
            {"email": "not-an-email"},
            {"email_verified": False},
        ],
    )
    async def test_unusable_profile(
        self, provider: CredentialProvider, fake_provider: FakeProvider, update
    ):
        fake_provider.profile.update(update)

        with pytest.raises(AssertionInvalid):
            await provider.complete_login({"code": "auth-code"}, "verifier-1")

    @pytest.mark.asyncio
    async def test_display_name_falls_back_to_given_and_family_name(
        self, provider: CredentialProvider, fake_provider: FakeProvider
    ):
        del fake_provider.profile["name"]

        assertion = await provider.complete_login({"code": "auth-code"}, "verifier-1")

        assert assertion.display_name == "Reader One"

    @pytest.mark.asyncio
    async def test_display_name_falls_back_to_email_local_part(
        self, provider: CredentialProvider, fake_provider: FakeProvider
    ):
        for claim in ("name", "given_name", "family_name"):
            del fake_provider.profile[claim]

        assertion = await provider.complete_login({"code": "auth-code"}, "verifier-1")

        assert assertion.display_name == "Reader"

    @pytest.mark.asyncio
    async def test_disabled_provider(self, fake_provider: FakeProvider):
        provider = _provider(ProviderConfig(), fake_provider)

        with pytest.raises(ProviderUnavailable):
            await provider.complete_login({"code": "auth-code"}, "verifier-1")


class TestCredentialProviderRegistry:
    def test_registry_from_config(self, test_config: ConfigData):
        registry = CredentialProviderRegistry.from_config(test_config)

        assert registry.names() == ["google"]
        assert registry.get("google").enabled
        assert registry.get("github") is None
        assert registry.oauth_configured

    def test_not_configured_without_credentials(self):
        registry = CredentialProviderRegistry.from_config(ConfigData())

        assert registry.names() == ["google"]
        assert not registry.oauth_configured
