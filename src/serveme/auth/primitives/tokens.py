"""Access token claim decoding.

Reads the payload segment of a JWT-style token to find its expiry. The
signature is never verified here; the backend owns that check.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import math
from typing import Any

logger = logging.getLogger(__name__)


def decode_claims(token: str) -> dict[str, Any] | None:
    """Decode the claims object of a three-segment token.

    The payload segment uses the URL-safe base64 alphabet without padding.
    The decoded bytes are treated as UTF-8 so multi-byte characters in claims
    survive intact.

    Args:
        token: Token string in `header.payload.signature` form

    Returns:
        Claims dictionary, or None if the token cannot be decoded
    """
    if not isinstance(token, str):
        return None

    segments = token.split(".")
    if len(segments) != 3 or not segments[1]:
        return None

    payload = segments[1].replace("-", "+").replace("_", "/")
    payload += "=" * (-len(payload) % 4)

    try:
        raw = base64.b64decode(payload, validate=True)
        claims = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        logger.debug(f"Failed to decode token payload: {e}")
        return None

    if not isinstance(claims, dict):
        return None
    return claims


def expiry_of(token: str) -> int | float | None:
    """Extract the `exp` claim from an access token.

    Args:
        token: Token string in `header.payload.signature` form

    Returns:
        Expiry as a Unix timestamp, or None if missing or unparseable
    """
    claims = decode_claims(token)
    if claims is None:
        return None

    exp = claims.get("exp")
    # bool is an int subclass; a true/false claim is not a timestamp
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    if not exp or not math.isfinite(exp):
        return None
    return exp
