import asyncio
import base64
import json
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

from serveme.backend.client import BackendClient
from serveme.backend.models import AccessStatusResponse, TokenPair

NOW = 1_700_000_000.0


def b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def make_token(claims: Any = None, *, exp: float | None = None) -> str:
    """Build an unsigned three-segment token around the given claims."""
    if claims is None:
        claims = {"sub": "alice"}
        if exp is not None:
            claims["exp"] = exp
    header = b64url(json.dumps({"alg": "HS256", "typ": "JWT"}).encode("utf-8"))
    payload = b64url(json.dumps(claims, ensure_ascii=False).encode("utf-8"))
    return f"{header}.{payload}.signature"


def token_pair(exp: float, suffix: str = "1") -> TokenPair:
    return TokenPair(
        access_token=make_token(exp=exp), refresh_token=f"refresh-{suffix}"
    )


class FrozenClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_backend() -> MagicMock:
    """Backend double with every network call as an AsyncMock."""
    backend = MagicMock(spec=BackendClient)
    backend.base_url = None
    backend.token_provider = None
    backend.login = AsyncMock(return_value=token_pair(NOW + 3600))
    backend.refresh = AsyncMock(return_value=token_pair(NOW + 7200, suffix="2"))
    backend.logout = AsyncMock(return_value=None)
    backend.server_exists = AsyncMock(return_value=True)
    backend.access_status = AsyncMock(
        return_value=AccessStatusResponse(is_active=False, time_remaining=None)
    )
    backend.request_access = AsyncMock(return_value=None)
    backend.check_connection = AsyncMock(return_value=None)
    backend.close = AsyncMock(return_value=None)
    return backend


async def wait_until(condition: Callable[[], bool], attempts: int = 200) -> None:
    """Yield to the event loop until condition holds."""
    for _ in range(attempts):
        if condition():
            return
        await asyncio.sleep(0.001)
    raise AssertionError("Condition never became true")
