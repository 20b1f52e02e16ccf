"""Session state models.

Contains the immutable session record, the manager's state enum, and the
snapshot handed to observers.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class SessionState(Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"


class RefreshResult(Enum):
    """Outcome of a refresh attempt."""

    REFRESHED = "refreshed"
    NOT_PERFORMED = "not_performed"  # another refresh was already in flight
    FAILED = "failed"


@dataclass(frozen=True)
class Session:
    """Access/refresh token pair bound to an account.

    Replaced wholesale on every successful login or refresh; never patched.
    """

    access_token: str
    refresh_token: str
    account: str

    def __post_init__(self) -> None:
        """Validate that every field is present."""
        for name in ("access_token", "refresh_token", "account"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                raise ValueError(f"Session {name} must be a non-empty string")

    def to_dict(self) -> dict[str, str]:
        """Convert to the stored representation."""
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "account": self.account,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Session:
        """Rebuild a session from its stored representation.

        Raises:
            ValueError: If the payload is not a complete session record
        """
        if not isinstance(data, dict):
            raise ValueError("Stored session must be a mapping")
        return cls(
            access_token=data.get("access_token"),
            refresh_token=data.get("refresh_token"),
            account=data.get("account"),
        )

    def __repr__(self) -> str:
        # Keep tokens out of logs and tracebacks
        return f"Session(account={self.account!r})"


@dataclass(frozen=True)
class SessionSnapshot:
    """Observable view of the session for a presentation layer."""

    state: SessionState
    account: str | None = None
    error_message: str = ""
    loading: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED
