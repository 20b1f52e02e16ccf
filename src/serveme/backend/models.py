"""Response models for the access-control backend."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class TokenPair(BaseModel):
    """Credential pair returned by the login and refresh endpoints."""

    access_token: str = Field(min_length=1)
    refresh_token: str = Field(min_length=1)


class ServerExistsResponse(BaseModel):
    exists: bool = False


class AccessStatusResponse(BaseModel):
    """Access status for one server.

    The backend may also send `server`, `ip` and `expiration`; they are
    ignored.
    """

    is_active: bool = False
    time_remaining: str | None = None

    @field_validator("time_remaining", mode="before")
    @classmethod
    def coerce_time_remaining(cls, v: object) -> object:
        # Some backend versions send minutes as a bare number
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v
