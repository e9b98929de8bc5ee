"""OAuth authorization-code login against an external identity provider.

The provider handshake ends here: tokens obtained from the provider never
leave ``CredentialProvider.complete_login``; only the normalized
``Assertion`` does.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import httpx
from authlib.integrations.httpx_client import AsyncOAuth2Client, OAuthError
from loguru import logger

from src.catalog.core.errors import (
    AssertionInvalid,
    ProviderMisconfigured,
    ProviderUnavailable,
)
from src.catalog.core.models.identity import Assertion
from src.catalog.core.security import generate_code_verifier, generate_state
from src.catalog.runtime.config.config_data import AppConfig, ConfigData, ProviderConfig


@dataclass(frozen=True)
class ProviderSettings:
    """Provider configuration resolved once at startup."""

    name: str
    client_id: str | None
    client_secret: str | None
    authorization_endpoint: str
    token_endpoint: str
    userinfo_endpoint: str
    scopes: tuple[str, ...]
    callback_url: str
    registered_redirect_uri: str | None
    timeout_seconds: float
    enabled: bool

    @classmethod
    def from_config(
        cls, name: str, provider: ProviderConfig, app: AppConfig
    ) -> "ProviderSettings":
        return cls(
            name=name,
            client_id=(provider.client_id or "").strip() or None,
            client_secret=(provider.client_secret or "").strip() or None,
            authorization_endpoint=provider.authorization_endpoint,
            token_endpoint=provider.token_endpoint,
            userinfo_endpoint=provider.userinfo_endpoint,
            scopes=tuple(provider.scopes),
            callback_url=f"{app.base_url}/auth/{name}/callback",
            registered_redirect_uri=provider.registered_redirect_uri,
            timeout_seconds=provider.timeout_seconds,
            enabled=provider.has_credentials,
        )


@dataclass(frozen=True)
class LoginRedirect:
    """Where to send the browser, plus the secrets to keep until the callback."""

    url: str
    state: str
    code_verifier: str


class CredentialProvider:
    """Runs the authorization-code flow (with PKCE) for one provider."""

    def __init__(
        self,
        settings: ProviderSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    @property
    def name(self) -> str:
        return self._settings.name

    @property
    def settings(self) -> ProviderSettings:
        return self._settings

    @property
    def enabled(self) -> bool:
        return self._settings.enabled

    def _ensure_enabled(self) -> None:
        if not self._settings.enabled:
            raise ProviderUnavailable(
                f"Login with {self.name} is not configured on this server"
            )

    def _client(self) -> AsyncOAuth2Client:
        kwargs: dict[str, Any] = {
            "client_id": self._settings.client_id,
            "client_secret": self._settings.client_secret,
            "scope": " ".join(self._settings.scopes),
            "redirect_uri": self._settings.callback_url,
            "code_challenge_method": "S256",
            "timeout": self._settings.timeout_seconds,
        }
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return AsyncOAuth2Client(**kwargs)

    async def begin_login(self) -> LoginRedirect:
        """Build the provider authorization URL.

        Raises:
            ProviderUnavailable: the provider has no usable credentials
            ProviderMisconfigured: the computed callback URL differs from the
                one registered with the provider
        """
        self._ensure_enabled()

        registered = self._settings.registered_redirect_uri
        if registered and registered != self._settings.callback_url:
            logger.error(
                "Callback URL mismatch for {}: computed {} but registered {}",
                self.name,
                self._settings.callback_url,
                registered,
            )
            raise ProviderMisconfigured(
                f"Callback URL for {self.name} does not match the registered redirect URI"
            )

        state = generate_state()
        code_verifier = generate_code_verifier()
        async with self._client() as client:
            url, _ = client.create_authorization_url(
                self._settings.authorization_endpoint,
                state=state,
                code_verifier=code_verifier,
            )
        return LoginRedirect(url=url, state=state, code_verifier=code_verifier)

    async def complete_login(
        self, callback_params: Mapping[str, str], code_verifier: str
    ) -> Assertion:
        """Exchange the callback for a normalized assertion.

        Raises:
            AssertionInvalid: the provider reported an error, rejected the
                code, or returned a profile without a usable email
            ProviderUnavailable: the provider could not be reached in time
        """
        self._ensure_enabled()

        if callback_params.get("error"):
            description = callback_params.get("error_description") or callback_params["error"]
            raise AssertionInvalid(f"Provider rejected the login: {description}")

        code = callback_params.get("code")
        if not code:
            raise AssertionInvalid("Callback is missing the authorization code")

        profile = await self._fetch_profile(code, code_verifier)
        return self._to_assertion(profile)

    async def _fetch_profile(self, code: str, code_verifier: str) -> dict[str, Any]:
        try:
            async with self._client() as client:
                await client.fetch_token(
                    self._settings.token_endpoint,
                    code=code,
                    code_verifier=code_verifier,
                )
                response = await client.get(self._settings.userinfo_endpoint)
                response.raise_for_status()
                profile = response.json()
        except OAuthError as e:
            logger.info("Token exchange with {} failed: {}", self.name, e.error)
            raise AssertionInvalid(f"Provider rejected the authorization code: {e.error}") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status >= 500:
                raise ProviderUnavailable(f"{self.name} returned HTTP {status}") from e
            raise AssertionInvalid(f"{self.name} returned HTTP {status}") from e
        except httpx.TimeoutException as e:
            raise ProviderUnavailable(f"{self.name} timed out") from e
        except httpx.TransportError as e:
            raise ProviderUnavailable(f"{self.name} is unreachable: {e}") from e
        except ValueError as e:
            raise AssertionInvalid(f"{self.name} returned a malformed response") from e

        if not isinstance(profile, dict):
            raise AssertionInvalid(f"{self.name} returned a malformed profile")
        return profile

    def _to_assertion(self, profile: dict[str, Any]) -> Assertion:
        subject = str(profile.get("sub") or profile.get("id") or "").strip()
        if not subject:
            raise AssertionInvalid("Provider profile has no subject id")

        email = str(profile.get("email") or "").strip()
        if "@" not in email:
            raise AssertionInvalid("Provider profile has no email address")

        if profile.get("email_verified") is False:
            raise AssertionInvalid("Provider reports the email address as unverified")

        display_name = profile.get("name")
        if not display_name:
            parts = [profile.get("given_name"), profile.get("family_name")]
            display_name = " ".join(p for p in parts if p) or email.split("@", 1)[0]

        return Assertion(
            provider=self.name,
            external_id=subject,
            email=email,
            display_name=display_name,
            avatar_url=profile.get("picture"),
        )


class CredentialProviderRegistry:
    """Configured providers keyed by name."""

    def __init__(self, providers: Mapping[str, CredentialProvider]) -> None:
        self._providers = dict(providers)

    @classmethod
    def from_config(
        cls,
        config: ConfigData,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "CredentialProviderRegistry":
        return cls(
            {
                name: CredentialProvider(
                    ProviderSettings.from_config(name, provider, config.app),
                    transport=transport,
                )
                for name, provider in config.providers.items()
            }
        )

    def get(self, name: str) -> CredentialProvider | None:
        return self._providers.get(name)

    def names(self) -> list[str]:
        return sorted(self._providers)

    @property
    def oauth_configured(self) -> bool:
        return any(provider.enabled for provider in self._providers.values())
