from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import firebase_admin
from firebase_admin import auth, exceptions as firebase_exceptions

from converter.errors import InvalidToken, Unauthenticated
from converter.models import VerifiedIdentity


logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def extract_token(body: Any, authorization: Optional[str]) -> str:
    """Pick the raw token from a request.

    The body ``token`` field wins; the Authorization header is the fallback,
    with or without a ``Bearer`` prefix.
    """
    token = None
    if isinstance(body, dict):
        candidate = body.get("token")
        if isinstance(candidate, str) and candidate.strip():
            token = candidate.strip()

    if not token and authorization:
        header = authorization.strip()
        if header.startswith(BEARER_PREFIX):
            header = header[len(BEARER_PREFIX):].strip()
        token = header or None

    if not token:
        raise Unauthenticated()
    return token


def _identity_from_claims(claims: Dict[str, Any]) -> VerifiedIdentity:
    email = claims.get("email")
    if not email:
        raise InvalidToken()
    uid = claims.get("uid") or claims.get("sub") or ""
    return VerifiedIdentity(uid=str(uid), email=str(email))


class FirebaseTokenVerifier:
    """Verifies ID tokens through the Firebase Admin SDK."""

    def __init__(self, firebase_app: Optional[firebase_admin.App] = None, check_revoked: bool = False):
        self.firebase_app = firebase_app
        self.check_revoked = check_revoked

    def verify(self, raw_token: str) -> VerifiedIdentity:
        if not raw_token:
            raise Unauthenticated()
        try:
            claims = auth.verify_id_token(
                raw_token, app=self.firebase_app, check_revoked=self.check_revoked
            )
        except (ValueError, firebase_exceptions.FirebaseError) as exc:
            logger.info("Token rejected: %s", type(exc).__name__)
            raise InvalidToken() from exc
        return _identity_from_claims(claims)
