"""Verify caller bearer tokens (JWT, HS256) and extract the caller uid."""

import jwt

from services.errors import Unauthenticated

ALGORITHMS = ["HS256"]


def verify_caller_token(token: str, secret: str) -> str:
    """
    Decode a caller JWT and return its uid.

    The uid is read from ``user_id`` (the Firebase custom claim),
    falling back to the standard ``sub`` claim.
    """
    if not secret:
        raise Unauthenticated("AUTH_JWT_SECRET is not configured")
    if not token:
        raise Unauthenticated("missing bearer token")
    try:
        claims = jwt.decode(token, secret, algorithms=ALGORITHMS, options={"require": ["exp"]})
    except jwt.PyJWTError as exc:
        raise Unauthenticated(f"invalid bearer token: {exc}") from exc
    uid = claims.get("user_id") or claims.get("sub")
    if not isinstance(uid, str) or not uid:
        raise Unauthenticated("token carries no user id")
    return uid


def bearer_token(authorization: str | None) -> str:
    if not authorization:
        return ""
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return value.strip()
