"""
Boundary to the external identity provider.

Credential checks and token issuance happen upstream; this core only needs
three answers from it. `HttpIdentityProvider` speaks a GoTrue-style auth API;
tests and other deployments put their own object in
``app.config["IDENTITY_PROVIDER"]``.
"""
import httpx
from flask import current_app

from security.errors import IdentityProviderError


class IdentityProvider:
    def authenticate(self, email: str, password: str):
        """Return an access token when the credentials are valid, else None."""
        raise NotImplementedError

    def resolve(self, token: str):
        """Return the account email behind a live token, else None."""
        raise NotImplementedError

    def revoke(self, token: str) -> None:
        raise NotImplementedError


class HttpIdentityProvider(IdentityProvider):
    def __init__(self, base_url: str, api_key=None, timeout: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    def _headers(self, token=None):
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    @staticmethod
    def _json(resp):
        try:
            data = resp.json()
        except ValueError as exc:
            raise IdentityProviderError("Identity provider returned a malformed response") from exc
        return data if isinstance(data, dict) else {}

    def authenticate(self, email, password):
        try:
            resp = httpx.post(
                f"{self.base_url}/token",
                params={"grant_type": "password"},
                json={"email": email, "password": password},
                headers=self._headers(),
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            raise IdentityProviderError("Identity provider unreachable") from exc

        if resp.status_code in (400, 401, 403):
            return None
        if resp.status_code >= 500:
            raise IdentityProviderError("Identity provider error", status=resp.status_code)
        return self._json(resp).get("access_token")

    def resolve(self, token):
        try:
            resp = httpx.get(f"{self.base_url}/user", headers=self._headers(token), timeout=self.timeout)
        except httpx.HTTPError as exc:
            raise IdentityProviderError("Identity provider unreachable") from exc

        if resp.status_code >= 500:
            raise IdentityProviderError("Identity provider error", status=resp.status_code)
        if resp.status_code != 200:
            return None
        return self._json(resp).get("email")

    def revoke(self, token):
        try:
            httpx.post(f"{self.base_url}/logout", headers=self._headers(token), timeout=self.timeout)
        except httpx.HTTPError as exc:
            current_app.logger.warning("Token revocation failed: %s", exc)


def get_identity_provider() -> IdentityProvider:
    provider = current_app.config.get("IDENTITY_PROVIDER")
    if provider is not None:
        return provider

    base_url = current_app.config.get("IDENTITY_PROVIDER_URL")
    if not base_url:
        raise IdentityProviderError("Identity provider not configured")
    return HttpIdentityProvider(
        base_url,
        api_key=current_app.config.get("IDENTITY_PROVIDER_API_KEY"),
        timeout=current_app.config.get("IDENTITY_PROVIDER_TIMEOUT_SECONDS", 5.0),
    )
