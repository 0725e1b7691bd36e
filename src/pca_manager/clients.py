"""
HTTP clients for the remote services an update depends on.

TokenProvider obtains the short-lived token the update job uses to fetch
registry credentials. LicenseServerClient downloads the license that the
server should be brought into compliance with.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx

from pca_manager.errors import CredentialError, LoadError
from pca_manager.logging import get_logger

if TYPE_CHECKING:
    from pca_manager.config import EndpointsConfig

logger = get_logger(__name__)


def _auth_headers(api_key: str) -> dict[str, str]:
    return {"content-type": "application/json", "authorization": api_key}


class TokenProvider:
    """
    Fetches software update tokens from the token service.

    Example:
        >>> provider = TokenProvider("https://sts.example.com/token", "api-key")
        >>> token = await provider.fetch_token()
    """

    def __init__(self, endpoint: str, api_key: str, timeout: float = 10.0) -> None:
        self._endpoint = endpoint
        self._api_key = api_key
        self._timeout = timeout

    @classmethod
    def from_config(cls, config: EndpointsConfig) -> TokenProvider:
        """Create a TokenProvider from the endpoint configuration."""
        return cls(
            endpoint=config.sts_endpoint,
            api_key=config.server_api_key,
            timeout=config.request_timeout_seconds,
        )

    @property
    def endpoint(self) -> str:
        """Return the token service URL."""
        return self._endpoint

    async def fetch_token(self) -> str:
        """
        Fetch a bearer token.

        Raises:
            CredentialError: If the request fails or the response has no token.
        """
        logger.debug("Fetching software update token", extra={"endpoint": self._endpoint})

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(
                    self._endpoint, headers=_auth_headers(self._api_key)
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Error fetching software update token: %s", str(e))
            raise CredentialError(
                "Error fetching software update token",
                details={"endpoint": self._endpoint, "error": str(e)},
            ) from e

        try:
            token = response.json()["token"]
        except (ValueError, KeyError, TypeError) as e:
            logger.error("Error parsing software update token: %s", str(e))
            raise CredentialError(
                "Error parsing software update token",
                details={"endpoint": self._endpoint},
            ) from e

        if not isinstance(token, str) or not token:
            raise CredentialError(
                "Error parsing software update token",
                details={"endpoint": self._endpoint, "hint": "empty or non-string token"},
            )

        return token


class LicenseServerClient:
    """Downloads the desired license for this server."""

    def __init__(
        self,
        endpoint: str,
        server_id: str,
        api_key: str,
        timeout: float = 10.0,
    ) -> None:
        self._endpoint = endpoint
        self._server_id = server_id
        self._api_key = api_key
        self._timeout = timeout

    @classmethod
    def from_config(cls, config: EndpointsConfig, server_id: str) -> LicenseServerClient:
        """Create a LicenseServerClient from the endpoint configuration."""
        return cls(
            endpoint=config.license_server_endpoint,
            server_id=server_id,
            api_key=config.server_api_key,
            timeout=config.request_timeout_seconds,
        )

    @property
    def url(self) -> str:
        """Return the license URL for this server."""
        return self._endpoint.replace(":serverId", self._server_id)

    async def fetch_license(self) -> dict[str, Any]:
        """
        Fetch the license document.

        Raises:
            LoadError: If the request fails or the body is not a JSON object.
        """
        url = self.url
        logger.debug("Fetching license from server", extra={"url": url})

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(url, headers=_auth_headers(self._api_key))
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Error fetching server license: %s", str(e))
            raise LoadError(
                "Error fetching server license",
                details={"url": url, "error": str(e)},
            ) from e

        try:
            data = response.json()
        except ValueError as e:
            raise LoadError("Error parsing server license", details={"url": url}) from e

        if not isinstance(data, dict):
            raise LoadError(
                "Error parsing server license",
                details={"url": url, "hint": "license is not a JSON object"},
            )

        return data
