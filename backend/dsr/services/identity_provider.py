# Overview: Client for the external identity provider's token introspection endpoint.

"""
External identity provider.

Used in two places:
- POST /auth/login/google exchanges a provider access token for a local one
- require_auth falls back to it when a bearer token is not a local token

The provider answers GET {base_url}/auth/v1/user with the token's user
({"id": ..., "email": ...}) when the token is valid. The public (anon) key
is sent as the ``apikey`` header; it is the restricted credential and never
grants database access.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx


class IdentityProviderError(Exception):
    """Token rejected by the provider or provider unreachable."""


@dataclass(frozen=True)
class ExternalIdentity:
    subject: str
    email: str


class IdentityProvider:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self._api_key)

    def introspect(self, token: str) -> ExternalIdentity:
        """
        Verify a provider token and return the identity it belongs to.

        Raises IdentityProviderError on any failure (not configured, network
        error, non-200 answer, response without an email).
        """
        if not self.configured:
            raise IdentityProviderError("Identity provider is not configured")
        if not token:
            raise IdentityProviderError("Token is blank")

        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {token}",
        }
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.get(f"{self.base_url}/auth/v1/user", headers=headers)
        except httpx.HTTPError as exc:
            raise IdentityProviderError(f"Identity provider request failed: {exc}") from exc

        if response.status_code != 200:
            raise IdentityProviderError(f"Identity provider rejected token ({response.status_code})")

        try:
            body = response.json()
        except ValueError as exc:
            raise IdentityProviderError("Identity provider returned invalid JSON") from exc

        email = (body.get("email") or "").strip().lower() if isinstance(body, dict) else ""
        subject = str(body.get("id") or "") if isinstance(body, dict) else ""
        if not email:
            raise IdentityProviderError("Identity provider response has no email")
        return ExternalIdentity(subject=subject, email=email)
