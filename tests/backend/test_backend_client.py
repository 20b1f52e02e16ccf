"""Tests for the backend HTTP client.

High-impact tests covering:
- Request URLs, bodies and bearer headers for every endpoint
- HTTP status to error code mapping
- Transport failures and unparseable bodies coerced to NETWORK
- Health check deadline
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from serveme.auth.models.errors import ErrorCode, ServiceError
from serveme.backend.client import BackendClient, error_for_status


def json_response(status_code=200, body=None):
    mock_response = MagicMock()
    mock_response.status_code = status_code
    mock_response.json.return_value = body if body is not None else {}
    return mock_response


class TestErrorForStatus:
    @pytest.mark.parametrize("status", [200, 201, 204, 299])
    def test_success_statuses_map_to_none(self, status):
        # Act & Assert
        assert error_for_status(status) is None

    @pytest.mark.parametrize(
        "status, code",
        [
            (401, ErrorCode.AUTH),
            (403, ErrorCode.FORBIDDEN),
            (404, ErrorCode.NOT_FOUND),
            (500, ErrorCode.SERVER),
            (502, ErrorCode.OFFLINE),
            (503, ErrorCode.OFFLINE),
        ],
    )
    def test_mapped_statuses(self, status, code):
        # Act
        error = error_for_status(status)

        # Assert
        assert error.code is code
        assert error.tag == code.value

    @pytest.mark.parametrize("status", [400, 418, 429, 504])
    def test_unmapped_statuses_keep_status(self, status):
        # Act
        error = error_for_status(status)

        # Assert
        assert error.code is ErrorCode.UNKNOWN
        assert error.tag == f"UNKNOWN:{status}"


class TestRequests:
    """Test endpoint paths, bodies and headers."""

    def setup_method(self):
        # Arrange
        self.client = BackendClient(
            "https://api.example.com/", token_provider=lambda: "access-abc"
        )
        self.client._http_client = AsyncMock()

    async def test_login_posts_credentials(self):
        # Arrange
        self.client._http_client.post.return_value = json_response(
            200, {"access_token": "a.b.c", "refresh_token": "r-1"}
        )

        # Act
        tokens = await self.client.login("alice", "hunter2")

        # Assert
        assert tokens.access_token == "a.b.c"
        assert tokens.refresh_token == "r-1"
        call_args = self.client._http_client.post.call_args
        assert call_args[0][0] == "https://api.example.com/login"
        assert call_args[1]["json"] == {"username": "alice", "password": "hunter2"}

    async def test_refresh_posts_refresh_token(self):
        # Arrange
        self.client._http_client.post.return_value = json_response(
            200, {"access_token": "a.b.c", "refresh_token": "r-2"}
        )

        # Act
        tokens = await self.client.refresh("alice", "r-1")

        # Assert
        assert tokens.refresh_token == "r-2"
        call_args = self.client._http_client.post.call_args
        assert call_args[0][0] == "https://api.example.com/token/refresh"
        assert call_args[1]["json"] == {"username": "alice", "refresh_token": "r-1"}

    async def test_logout_posts_refresh_token(self):
        # Arrange
        self.client._http_client.post.return_value = json_response(204)

        # Act
        await self.client.logout("r-1")

        # Assert
        call_args = self.client._http_client.post.call_args
        assert call_args[0][0] == "https://api.example.com/logout"
        assert call_args[1]["json"] == {"refresh_token": "r-1"}

    async def test_requests_carry_bearer_token(self):
        # Arrange
        self.client._http_client.get.return_value = json_response(200, {"exists": True})

        # Act
        await self.client.server_exists("srv-1")

        # Assert
        headers = self.client._http_client.get.call_args[1]["headers"]
        assert headers["Authorization"] == "Bearer access-abc"
        assert headers["Accept"] == "application/json"

    async def test_no_token_means_no_authorization_header(self):
        # Arrange
        self.client.token_provider = lambda: None
        self.client._http_client.get.return_value = json_response(200, {"exists": True})

        # Act
        await self.client.server_exists("srv-1")

        # Assert
        headers = self.client._http_client.get.call_args[1]["headers"]
        assert "Authorization" not in headers

    async def test_server_exists(self):
        # Arrange
        self.client._http_client.get.side_effect = [
            json_response(200, {"exists": True}),
            json_response(200, {"exists": False}),
        ]

        # Act & Assert
        assert await self.client.server_exists("srv-1") is True
        assert await self.client.server_exists("srv-2") is False
        urls = [c[0][0] for c in self.client._http_client.get.call_args_list]
        assert urls == [
            "https://api.example.com/servers/srv-1/exists",
            "https://api.example.com/servers/srv-2/exists",
        ]

    async def test_server_id_is_quoted(self):
        # Arrange
        self.client._http_client.get.return_value = json_response(200, {"exists": True})

        # Act
        await self.client.server_exists("team a/b")

        # Assert
        url = self.client._http_client.get.call_args[0][0]
        assert url == "https://api.example.com/servers/team%20a%2Fb/exists"

    async def test_access_status(self):
        # Arrange
        self.client._http_client.get.return_value = json_response(
            200,
            {
                "is_active": True,
                "time_remaining": "95",
                "server": "srv-1",
                "ip": "10.0.0.1",
            },
        )

        # Act
        status = await self.client.access_status("srv-1")

        # Assert
        assert status.is_active is True
        assert status.time_remaining == "95"
        url = self.client._http_client.get.call_args[0][0]
        assert url == "https://api.example.com/access/srv-1/status"

    async def test_access_status_accepts_numeric_minutes(self):
        # Arrange
        self.client._http_client.get.return_value = json_response(
            200, {"is_active": True, "time_remaining": 42}
        )

        # Act
        status = await self.client.access_status("srv-1")

        # Assert
        assert status.time_remaining == "42"

    async def test_request_access(self):
        # Arrange
        self.client._http_client.post.return_value = json_response(200, {"ok": True})

        # Act
        await self.client.request_access("srv-1")

        # Assert
        call_args = self.client._http_client.post.call_args
        assert call_args[0][0] == "https://api.example.com/access"
        assert call_args[1]["json"] == {"server_id": "srv-1"}

    async def test_api_prefix_is_inserted(self):
        # Arrange
        self.client.api_prefix = "/v1"
        self.client._http_client.post.return_value = json_response(200)

        # Act
        await self.client.request_access("srv-1")

        # Assert
        url = self.client._http_client.post.call_args[0][0]
        assert url == "https://api.example.com/v1/access"


class TestRequestFailures:
    def setup_method(self):
        # Arrange
        self.client = BackendClient("https://api.example.com")
        self.client._http_client = AsyncMock()

    @pytest.mark.parametrize(
        "status, code",
        [
            (401, ErrorCode.AUTH),
            (403, ErrorCode.FORBIDDEN),
            (404, ErrorCode.NOT_FOUND),
            (500, ErrorCode.SERVER),
            (503, ErrorCode.OFFLINE),
        ],
    )
    async def test_status_becomes_error_code(self, status, code):
        # Arrange
        self.client._http_client.get.return_value = json_response(
            status, {"detail": "raw backend text"}
        )

        # Act & Assert
        with pytest.raises(ServiceError) as exc_info:
            await self.client.access_status("srv-1")
        assert exc_info.value.code is code

    async def test_unknown_status_preserved(self):
        # Arrange
        self.client._http_client.post.return_value = json_response(418)

        # Act & Assert
        with pytest.raises(ServiceError) as exc_info:
            await self.client.request_access("srv-1")
        assert exc_info.value.tag == "UNKNOWN:418"
        assert exc_info.value.status_code == 418

    @pytest.mark.parametrize(
        "exception",
        [
            httpx.ConnectError("Connection refused"),
            httpx.ReadTimeout("Read timed out"),
            RuntimeError("socket exploded"),
        ],
    )
    async def test_transport_failures_become_network(self, exception):
        # Arrange
        self.client._http_client.get.side_effect = exception

        # Act & Assert
        with pytest.raises(ServiceError) as exc_info:
            await self.client.server_exists("srv-1")
        assert exc_info.value.code is ErrorCode.NETWORK

    async def test_invalid_json_becomes_network(self):
        # Arrange
        mock_response = json_response(200)
        mock_response.json.side_effect = ValueError("Expecting value")
        self.client._http_client.get.return_value = mock_response

        # Act & Assert
        with pytest.raises(ServiceError) as exc_info:
            await self.client.access_status("srv-1")
        assert exc_info.value.code is ErrorCode.NETWORK

    async def test_incomplete_token_pair_becomes_network(self):
        # Arrange
        self.client._http_client.post.return_value = json_response(
            200, {"access_token": "a.b.c"}
        )

        # Act & Assert
        with pytest.raises(ServiceError) as exc_info:
            await self.client.login("alice", "hunter2")
        assert exc_info.value.code is ErrorCode.NETWORK

    @pytest.mark.parametrize("base_url", [None, ""])
    async def test_missing_base_url_is_offline(self, base_url):
        # Arrange
        self.client.base_url = base_url

        # Act & Assert
        with pytest.raises(ServiceError) as exc_info:
            await self.client.server_exists("srv-1")
        assert exc_info.value.code is ErrorCode.OFFLINE
        self.client._http_client.get.assert_not_called()


class TestCheckConnection:
    def setup_method(self):
        # Arrange
        self.client = BackendClient(health_timeout=0.05)
        self.client._http_client = AsyncMock()

    async def test_healthy_url(self):
        # Arrange
        self.client._http_client.get.return_value = json_response(200)

        # Act
        await self.client.check_connection("https://staging.example.com/")

        # Assert
        url = self.client._http_client.get.call_args[0][0]
        assert url == "https://staging.example.com/health"

    async def test_does_not_need_configured_base_url(self):
        # Arrange
        self.client.base_url = None
        self.client._http_client.get.return_value = json_response(200)

        # Act & Assert
        await self.client.check_connection("https://staging.example.com")

    async def test_slow_response_times_out(self):
        # Arrange
        async def slow_get(*args, **kwargs):
            await asyncio.sleep(1)
            return json_response(200)

        self.client._http_client.get.side_effect = slow_get

        # Act & Assert
        with pytest.raises(ServiceError) as exc_info:
            await self.client.check_connection("https://slow.example.com")
        assert exc_info.value.code is ErrorCode.TIMED_OUT

    async def test_httpx_timeout_is_timed_out(self):
        # Arrange
        self.client._http_client.get.side_effect = httpx.ConnectTimeout("timed out")

        # Act & Assert
        with pytest.raises(ServiceError) as exc_info:
            await self.client.check_connection("https://slow.example.com")
        assert exc_info.value.code is ErrorCode.TIMED_OUT

    async def test_connection_refused_is_network(self):
        # Arrange
        self.client._http_client.get.side_effect = httpx.ConnectError("refused")

        # Act & Assert
        with pytest.raises(ServiceError) as exc_info:
            await self.client.check_connection("https://down.example.com")
        assert exc_info.value.code is ErrorCode.NETWORK

    async def test_unhealthy_status_is_mapped(self):
        # Arrange
        self.client._http_client.get.return_value = json_response(503)

        # Act & Assert
        with pytest.raises(ServiceError) as exc_info:
            await self.client.check_connection("https://api.example.com")
        assert exc_info.value.code is ErrorCode.OFFLINE


class TestClose:
    async def test_close_is_idempotent(self):
        # Arrange
        client = BackendClient("https://api.example.com")

        # Act
        await client.close()
        await client.close()

        # Assert
        assert client._http_client.is_closed
