"""
Clerk session verification.

The browser sends the Clerk JWT (the "convex" template) as a bearer token.
The same token is checked here and then forwarded to Convex, which checks it
again against convex/auth.config.ts.
"""

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, Header, HTTPException

from chat_agent.config import Settings, get_settings

logger = logging.getLogger(__name__)

UNAUTHORIZED_DETAIL = "Unauthorized Request"


class AuthError(Exception):
    """The bearer token is missing or did not verify."""


@dataclass
class Identity:
    """A verified caller."""
    subject: str
    token: str
    claims: Dict[str, Any] = field(default_factory=dict)


class ClerkVerifier:
    def __init__(self, issuer: str, audience: Optional[str] = "convex"):
        if not issuer:
            raise AuthError("CLERK_ISSUER_ID is not configured")
        self.issuer = issuer.rstrip("/")
        self.audience = audience or None
        self.jwks_client = jwt.PyJWKClient(f"{self.issuer}/.well-known/jwks.json")

    def verify(self, token: str) -> Identity:
        try:
            signing_key = self.jwks_client.get_signing_key_from_jwt(token)
            claims = jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256"],
                audience=self.audience,
                issuer=self.issuer,
                options={"verify_aud": self.audience is not None},
            )
        except jwt.PyJWTError as e:
            raise AuthError(f"Invalid session token: {str(e)}") from e

        subject = claims.get("sub")
        if not subject:
            raise AuthError("Session token has no subject")
        return Identity(subject=subject, token=token, claims=claims)


@lru_cache
def _verifier(issuer: str, audience: str) -> ClerkVerifier:
    return ClerkVerifier(issuer, audience)


def get_verifier(settings: Settings = Depends(get_settings)) -> ClerkVerifier:
    try:
        return _verifier(settings.clerk_issuer_id, settings.clerk_audience)
    except AuthError as e:
        logger.error(f"Auth is not configured: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal Server Error")


def bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthError("Missing Authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Authorization header is not a bearer token")
    return token.strip()


def get_current_user(
    authorization: Optional[str] = Header(default=None),
    verifier: ClerkVerifier = Depends(get_verifier),
) -> Identity:
    """FastAPI dependency: the verified caller, or 401."""
    try:
        return verifier.verify(bearer_token(authorization))
    except AuthError as e:
        logger.info(f"Rejected request: {str(e)}")
        raise HTTPException(status_code=401, detail=UNAUTHORIZED_DETAIL)
