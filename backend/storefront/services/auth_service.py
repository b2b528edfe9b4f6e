# Overview: Signed bearer tokens carrying {user_id, role} for the HTTP layer.

"""
Token verification is the authentication collaborator: it hands the routes a
verified (user_id, role) pair and the slip services trust it as given.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

TOKEN_SALT = "storefront-auth"

ROLE_USER = "user"
ROLE_ADMIN = "admin"


@dataclass(frozen=True)
class AuthContext:
    user_id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def issue_token(user_id: int, role: str = ROLE_USER) -> str:
    return _serializer().dumps({"user_id": int(user_id), "role": role})


def verify_token(token: str) -> AuthContext | None:
    """Return the token's context, or None when it is forged, malformed or expired."""
    max_age = current_app.config.get("AUTH_TOKEN_MAX_AGE", 24 * 60 * 60)
    try:
        payload = _serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        current_app.logger.info("Rejected expired auth token")
        return None
    except BadSignature:
        return None

    try:
        return AuthContext(user_id=int(payload["user_id"]), role=str(payload.get("role") or ROLE_USER))
    except (KeyError, TypeError, ValueError):
        return None
