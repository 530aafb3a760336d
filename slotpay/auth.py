"""Bearer-token identity for API callers.

Tokens are issued by the external identity provider (out of scope here).
We only verify the signature/audience/expiry and trust the ``sub`` claim
as the user id. Nothing is looked up in our own database.
"""

import logging

import jwt as pyjwt
from flask import current_app
from flask_login import UserMixin

logger = logging.getLogger(__name__)


class AuthenticatedUser(UserMixin):
    """Caller identity built from verified token claims. Not persisted."""

    def __init__(self, user_id, email=None):
        self.id = user_id
        self.email = email

    def __repr__(self):
        return f"<AuthenticatedUser {self.id}>"


def verify_access_token(token):
    """Decode and verify a bearer token.

    Returns the claims dict, or None if the token is invalid or expired.
    """
    secret = current_app.config.get("AUTH_JWT_SECRET")
    if not secret:
        logger.error("AUTH_JWT_SECRET is not configured — rejecting all tokens")
        return None

    try:
        return pyjwt.decode(
            token,
            secret,
            algorithms=[current_app.config["AUTH_JWT_ALGORITHM"]],
            audience=current_app.config["AUTH_JWT_AUDIENCE"],
            options={"require": ["sub", "exp"]},
        )
    except pyjwt.InvalidTokenError as e:
        logger.warning(f"Rejected bearer token: {e}")
        return None


def user_from_authorization_header(header):
    """Build an AuthenticatedUser from an ``Authorization`` header value."""
    if not header or not header.startswith("Bearer "):
        return None

    claims = verify_access_token(header[len("Bearer "):].strip())
    if not claims:
        return None

    return AuthenticatedUser(str(claims["sub"]), email=claims.get("email"))
