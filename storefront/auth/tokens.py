"""
Bearer token inspection helpers.

Tokens are opaque to the client. When one happens to be a JWT its ``exp``
claim is read (signature not verified; the client holds no key) so expiry
can be detected before a request is made. Tokens that are not JWTs, or
JWTs without ``exp``, carry no client-visible expiry.
"""

import time
from typing import Any, Dict, Optional

import jwt


def decode_claims(token: str) -> Optional[Dict[str, Any]]:
    if not token:
        return None
    try:
        return jwt.decode(token, options={"verify_signature": False, "verify_exp": False})
    except jwt.PyJWTError:
        return None


def get_expiry(token: str) -> Optional[float]:
    """Return the ``exp`` claim as a unix timestamp, if there is one."""
    claims = decode_claims(token)
    if not claims:
        return None
    exp = claims.get("exp")
    if isinstance(exp, (int, float)) and not isinstance(exp, bool):
        return float(exp)
    return None


def is_expired(token: str, leeway_seconds: int = 0, now: Optional[float] = None) -> bool:
    if not token:
        return True
    exp = get_expiry(token)
    if exp is None:
        return False
    now = time.time() if now is None else now
    return exp <= now + leeway_seconds


def expires_soon(token: str, minutes: int = 5, now: Optional[float] = None) -> bool:
    return is_expired(token, leeway_seconds=minutes * 60, now=now)


def seconds_until_expiry(token: str, now: Optional[float] = None) -> Optional[float]:
    exp = get_expiry(token)
    if exp is None:
        return None
    now = time.time() if now is None else now
    return max(0.0, exp - now)


def get_role(token: str) -> Optional[str]:
    claims = decode_claims(token) or {}
    role = claims.get("role")
    return role if isinstance(role, str) else None
