"""Bearer token signing and verification using python-jose.

Signature and ``exp`` are checked here; session lifetime is enforced
separately by the session store.
"""
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from flask import current_app
from jose import JWTError, jwt

__all__ = ["JWTError", "issue_access_token", "decode_access_token", "user_id_from_claims"]


def issue_access_token(user) -> str:
    now = datetime.now(timezone.utc)
    hours = current_app.config.get("JWT_EXPIRES_HOURS", 24)
    payload: dict[str, Any] = {
        "sub": str(user.id),
        "role": user.role,
        "tenant_id": user.tenant_id,
        # unique per login so two logins in the same second get distinct session hashes
        "jti": secrets.token_urlsafe(16),
        "iat": now,
        "exp": now + timedelta(hours=hours),
    }
    return jwt.encode(
        payload,
        current_app.config["JWT_SECRET"],
        algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"),
    )


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and validate a bearer token. Raises JWTError on failure."""
    return jwt.decode(
        token,
        current_app.config["JWT_SECRET"],
        algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
    )


def user_id_from_claims(claims: dict[str, Any]) -> int:
    try:
        return int(claims["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise JWTError("Token has no usable subject") from exc
