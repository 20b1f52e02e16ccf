"""HTTP client for the access-control backend.

Issues the login, refresh, logout, server existence, access status and access
request calls, attaching the current bearer token. Every failure leaves this
module as a `ServiceError` carrying a taxonomy code:

- 401 -> AUTH, 403 -> FORBIDDEN, 404 -> NOT_FOUND, 500 -> SERVER
- 502/503 -> OFFLINE, any other non-2xx -> UNKNOWN (status preserved)
- transport failures and unparseable bodies -> NETWORK
- no base URL configured -> OFFLINE
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from serveme.auth.models.errors import ErrorCode, ServiceError
from serveme.backend.models import (
    AccessStatusResponse,
    ServerExistsResponse,
    TokenPair,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

TokenProvider = Callable[[], str | None]

_STATUS_CODES: dict[int, ErrorCode] = {
    401: ErrorCode.AUTH,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    500: ErrorCode.SERVER,
    502: ErrorCode.OFFLINE,
    503: ErrorCode.OFFLINE,
}


def error_for_status(status_code: int) -> ServiceError | None:
    """Translate an HTTP status into a taxonomy error.

    Args:
        status_code: HTTP response status

    Returns:
        ServiceError for failure statuses, None for 2xx
    """
    if 200 <= status_code < 300:
        return None
    code = _STATUS_CODES.get(status_code, ErrorCode.UNKNOWN)
    return ServiceError(
        code, f"Backend returned HTTP {status_code}", status_code=status_code
    )


class BackendClient:
    """Async client for the access-control backend API.

    The base URL can be changed at runtime (see `SettingsService`). The
    bearer token is read through `token_provider` on every request so the
    client always uses the session manager's current credential.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        token_provider: TokenProvider | None = None,
        timeout: float = 30.0,
        health_timeout: float = 5.0,
        api_prefix: str = "",
    ):
        """Initialize the backend client.

        Args:
            base_url: Backend root URL, e.g. "https://api.example.com"
            token_provider: Callable returning the current access token or None
            timeout: HTTP request timeout in seconds
            health_timeout: Deadline for the health check in seconds
            api_prefix: Path prefix inserted before every endpoint, e.g. "/v1"
        """
        self.base_url = base_url
        self.token_provider = token_provider
        self.timeout = timeout
        self.health_timeout = health_timeout
        self.api_prefix = api_prefix.rstrip("/")
        self._http_client = httpx.AsyncClient(timeout=timeout)

    # ================================
    # Session endpoints
    # ================================

    async def login(self, identifier: str, secret: str) -> TokenPair:
        """Exchange account credentials for a token pair.

        Raises:
            ServiceError: AUTH when the credentials are rejected
        """
        logger.debug(f"Logging in as {identifier}")
        response = await self._post(
            "/login", {"username": identifier, "password": secret}
        )
        return self._parse(response, TokenPair)

    async def refresh(self, identifier: str, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new token pair."""
        logger.debug(f"Refreshing tokens for {identifier}")
        response = await self._post(
            "/token/refresh",
            {"username": identifier, "refresh_token": refresh_token},
        )
        return self._parse(response, TokenPair)

    async def logout(self, refresh_token: str) -> None:
        """Invalidate a refresh token server-side."""
        await self._post("/logout", {"refresh_token": refresh_token})

    # ================================
    # Server endpoints
    # ================================

    async def server_exists(self, server_id: str) -> bool:
        response = await self._get(f"/servers/{quote(server_id, safe='')}/exists")
        return self._parse(response, ServerExistsResponse).exists

    async def access_status(self, server_id: str) -> AccessStatusResponse:
        """Fetch the current access status for one server."""
        response = await self._get(f"/access/{quote(server_id, safe='')}/status")
        return self._parse(response, AccessStatusResponse)

    async def request_access(self, server_id: str) -> None:
        """Ask the backend to grant access to a server."""
        await self._post("/access", {"server_id": server_id})

    # ================================
    # Health
    # ================================

    async def check_connection(self, url: str) -> None:
        """Probe `{url}/health` under the fixed health deadline.

        Used to validate a candidate base URL before it is saved, so it does
        not depend on the configured `base_url`.

        Raises:
            ServiceError: TIMED_OUT if the deadline expires, otherwise the
                mapped status or NETWORK
        """
        health_url = f"{url.rstrip('/')}/health"
        logger.debug(f"Checking health at {health_url}")

        try:
            response = await asyncio.wait_for(
                self._http_client.get(health_url, timeout=self.health_timeout),
                timeout=self.health_timeout,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            raise ServiceError(
                ErrorCode.TIMED_OUT, f"Health check timed out: {health_url}"
            ) from e
        except httpx.HTTPError as e:
            raise ServiceError(ErrorCode.NETWORK, f"Health check failed: {e}") from e
        except Exception as e:
            raise ServiceError(
                ErrorCode.NETWORK, f"Unexpected error during health check: {e}"
            ) from e

        self._raise_for_status(response)

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        if not self._http_client.is_closed:
            await self._http_client.aclose()

    # ================================
    # Request plumbing
    # ================================

    def _build_url(self, path: str) -> str:
        if not self.base_url:
            raise ServiceError(ErrorCode.OFFLINE, "Backend URL is not configured")
        return f"{self.base_url.rstrip('/')}{self.api_prefix}{path}"

    def _build_headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        token = self.token_provider() if self.token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _get(self, path: str) -> httpx.Response:
        url = self._build_url(path)
        try:
            response = await self._http_client.get(url, headers=self._build_headers())
        except httpx.HTTPError as e:
            raise ServiceError(ErrorCode.NETWORK, f"GET {path} failed: {e}") from e
        except Exception as e:
            raise ServiceError(
                ErrorCode.NETWORK, f"Unexpected error during GET {path}: {e}"
            ) from e

        self._raise_for_status(response)
        return response

    async def _post(self, path: str, body: dict[str, Any]) -> httpx.Response:
        url = self._build_url(path)
        try:
            response = await self._http_client.post(
                url, json=body, headers=self._build_headers()
            )
        except httpx.HTTPError as e:
            raise ServiceError(ErrorCode.NETWORK, f"POST {path} failed: {e}") from e
        except Exception as e:
            raise ServiceError(
                ErrorCode.NETWORK, f"Unexpected error during POST {path}: {e}"
            ) from e

        self._raise_for_status(response)
        return response

    def _raise_for_status(self, response: httpx.Response) -> None:
        error = error_for_status(response.status_code)
        if error is not None:
            logger.warning(f"Backend request failed with {error.tag}")
            raise error

    def _parse(self, response: httpx.Response, model: type[ModelT]) -> ModelT:
        """Validate a JSON response body against a model.

        Raises:
            ServiceError: NETWORK if the body is not valid for the model
        """
        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise ServiceError(
                ErrorCode.NETWORK, f"Invalid {model.__name__} response: {e}"
            ) from e
