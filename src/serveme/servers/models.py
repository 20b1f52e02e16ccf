"""Server registry records."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class AccessStatus(str, Enum):
    IDLE = "idle"
    ACCESS_GRANTED = "access-granted"
    OFFLINE = "offline"


@dataclass(frozen=True)
class ServerRecord:
    """One known remote server and its last reconciled access state."""

    identifier: str
    status: AccessStatus = AccessStatus.IDLE
    time_remaining: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the stored representation."""
        return {
            "id": self.identifier,
            "status": self.status.value,
            "timeRemaining": self.time_remaining,
        }

    @classmethod
    def from_stored(cls, data: Any) -> ServerRecord | None:
        """Rebuild a record from storage with its access state reset.

        A persisted "access-granted" is never trusted; the status must be
        re-verified against the backend.

        Returns:
            Idle record, or None if the entry has no usable identifier
        """
        if not isinstance(data, dict):
            return None
        identifier = data.get("id")
        if not isinstance(identifier, str) or not identifier:
            return None
        return cls(identifier=identifier)
