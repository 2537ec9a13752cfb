# Overview: Identity boundary; turns the provider's signed token into the caller's identity.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer


TOKEN_SALT = "storefront-identity"


@dataclass(frozen=True)
class Identity:
    """
    The caller as described by the identity provider.

    `id` may be absent for email-only legacy customers; `email` and `id` are
    equivalent owner keys.
    """
    id: str | None
    email: str | None
    full_name: str | None = None
    is_staff: bool = False

    @property
    def actor_label(self) -> str:
        return self.full_name or self.email or (f"user:{self.id}" if self.id else "unknown")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "fullName": self.full_name,
            "isStaff": self.is_staff,
        }


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def issue_token(*, user_id=None, email: str | None = None, full_name: str | None = None, is_staff: bool = False) -> str:
    """
    Sign an identity claim. Used by the provider integration, the CLI and tests.
    """
    if user_id in (None, "") and not email:
        raise ValueError("an identity needs a user id or an email")
    return _serializer().dumps({
        "id": str(user_id) if user_id not in (None, "") else None,
        "email": email,
        "fullName": full_name,
        "isStaff": bool(is_staff),
    })


def resolve_token(token: str) -> Identity | None:
    """Return the Identity for a valid, unexpired token, else None."""
    max_age = current_app.config.get("IDENTITY_TOKEN_MAX_AGE")
    try:
        claims = _serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        current_app.logger.info("Rejected expired identity token")
        return None
    except BadSignature:
        return None
    if not isinstance(claims, dict):
        return None
    return Identity(
        id=claims.get("id"),
        email=claims.get("email"),
        full_name=claims.get("fullName"),
        is_staff=bool(claims.get("isStaff")),
    )
