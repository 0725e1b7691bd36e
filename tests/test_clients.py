"""
Tests for the HTTP clients.

Tests cover:
- TokenProvider token fetch and failure modes
- LicenseServerClient URL building, fetch and failure modes
"""

from __future__ import annotations

from typing import Any
from unittest import mock

import httpx
import pytest

from pca_manager.clients import LicenseServerClient, TokenProvider
from pca_manager.config import EndpointsConfig
from pca_manager.errors import CredentialError, LoadError


def _mock_response(json_data: Any = None, json_error: Exception | None = None) -> mock.Mock:
    response = mock.Mock()
    response.raise_for_status = mock.Mock()
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = json_data
    return response


@pytest.fixture
def endpoints() -> EndpointsConfig:
    """Endpoint configuration for tests."""
    return EndpointsConfig(
        sts_endpoint="https://sts.example.com/token",
        server_api_key="api-key",
        license_server_endpoint="https://licenses.example.com/servers/:serverId/license",
        request_timeout_seconds=5,
    )


# =============================================================================
# TokenProvider Tests
# =============================================================================


class TestTokenProvider:
    """Tests for TokenProvider."""

    def test_from_config(self, endpoints: EndpointsConfig) -> None:
        """Test creating a provider from config."""
        provider = TokenProvider.from_config(endpoints)
        assert provider.endpoint == "https://sts.example.com/token"

    @pytest.mark.asyncio
    async def test_fetch_token_success(self, endpoints: EndpointsConfig) -> None:
        """Test a token is returned and the API key is sent."""
        with mock.patch("httpx.AsyncClient") as mock_client_class:
            mock_client = mock.AsyncMock()
            mock_client.get.return_value = _mock_response({"token": "abc"})
            mock_client_class.return_value.__aenter__.return_value = mock_client

            token = await TokenProvider.from_config(endpoints).fetch_token()

        assert token == "abc"
        mock_client_class.assert_called_once_with(timeout=5.0)
        mock_client.get.assert_called_once_with(
            "https://sts.example.com/token",
            headers={"content-type": "application/json", "authorization": "api-key"},
        )

    @pytest.mark.asyncio
    async def test_fetch_token_network_error(self, endpoints: EndpointsConfig) -> None:
        """Test transport errors raise CredentialError."""
        with mock.patch("httpx.AsyncClient") as mock_client_class:
            mock_client = mock.AsyncMock()
            mock_client.get.side_effect = httpx.ConnectError("Connection failed")
            mock_client_class.return_value.__aenter__.return_value = mock_client

            with pytest.raises(CredentialError) as exc_info:
                await TokenProvider.from_config(endpoints).fetch_token()

        assert exc_info.value.message == "Error fetching software update token"

    @pytest.mark.asyncio
    async def test_fetch_token_http_error(self, endpoints: EndpointsConfig) -> None:
        """Test error statuses raise CredentialError."""
        request = httpx.Request("GET", "https://sts.example.com/token")
        response = _mock_response()
        response.raise_for_status.side_effect = httpx.HTTPStatusError(
            "401 Unauthorized",
            request=request,
            response=httpx.Response(401, request=request),
        )

        with mock.patch("httpx.AsyncClient") as mock_client_class:
            mock_client = mock.AsyncMock()
            mock_client.get.return_value = response
            mock_client_class.return_value.__aenter__.return_value = mock_client

            with pytest.raises(CredentialError):
                await TokenProvider.from_config(endpoints).fetch_token()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [{}, {"token": ""}, {"token": 42}, ["token"]],
    )
    async def test_fetch_token_bad_body(
        self, endpoints: EndpointsConfig, body: Any
    ) -> None:
        """Test missing or invalid tokens raise CredentialError."""
        with mock.patch("httpx.AsyncClient") as mock_client_class:
            mock_client = mock.AsyncMock()
            mock_client.get.return_value = _mock_response(body)
            mock_client_class.return_value.__aenter__.return_value = mock_client

            with pytest.raises(CredentialError) as exc_info:
                await TokenProvider.from_config(endpoints).fetch_token()

        assert exc_info.value.message == "Error parsing software update token"

    @pytest.mark.asyncio
    async def test_fetch_token_invalid_json(self, endpoints: EndpointsConfig) -> None:
        """Test a non-JSON body raises CredentialError."""
        with mock.patch("httpx.AsyncClient") as mock_client_class:
            mock_client = mock.AsyncMock()
            mock_client.get.return_value = _mock_response(json_error=ValueError("bad"))
            mock_client_class.return_value.__aenter__.return_value = mock_client

            with pytest.raises(CredentialError):
                await TokenProvider.from_config(endpoints).fetch_token()


# =============================================================================
# LicenseServerClient Tests
# =============================================================================


class TestLicenseServerClient:
    """Tests for LicenseServerClient."""

    def test_url_substitutes_server_id(self, endpoints: EndpointsConfig) -> None:
        """Test ':serverId' is replaced."""
        client = LicenseServerClient.from_config(endpoints, "srv-1")
        assert client.url == "https://licenses.example.com/servers/srv-1/license"

    @pytest.mark.asyncio
    async def test_fetch_license_success(self, endpoints: EndpointsConfig) -> None:
        """Test the license document is returned."""
        body = {"components": []}

        with mock.patch("httpx.AsyncClient") as mock_client_class:
            mock_client = mock.AsyncMock()
            mock_client.get.return_value = _mock_response(body)
            mock_client_class.return_value.__aenter__.return_value = mock_client

            result = await LicenseServerClient.from_config(endpoints, "srv-1").fetch_license()

        assert result == body
        assert mock_client.get.call_args.args[0] == (
            "https://licenses.example.com/servers/srv-1/license"
        )

    @pytest.mark.asyncio
    async def test_fetch_license_network_error(self, endpoints: EndpointsConfig) -> None:
        """Test transport errors raise LoadError."""
        with mock.patch("httpx.AsyncClient") as mock_client_class:
            mock_client = mock.AsyncMock()
            mock_client.get.side_effect = httpx.ConnectTimeout("timed out")
            mock_client_class.return_value.__aenter__.return_value = mock_client

            with pytest.raises(LoadError) as exc_info:
                await LicenseServerClient.from_config(endpoints, "srv-1").fetch_license()

        assert exc_info.value.message == "Error fetching server license"

    @pytest.mark.asyncio
    async def test_fetch_license_not_an_object(self, endpoints: EndpointsConfig) -> None:
        """Test a non-object body raises LoadError."""
        with mock.patch("httpx.AsyncClient") as mock_client_class:
            mock_client = mock.AsyncMock()
            mock_client.get.return_value = _mock_response(["components"])
            mock_client_class.return_value.__aenter__.return_value = mock_client

            with pytest.raises(LoadError) as exc_info:
                await LicenseServerClient.from_config(endpoints, "srv-1").fetch_license()

        assert exc_info.value.message == "Error parsing server license"
