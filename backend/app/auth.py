"""
Klara Backend — Clerk Bearer-Token Authentication
===================================================

What:  Verifies Clerk session tokens and yields the Clerk subject (`sub`).
How:   Clerk signs session JWTs with RS256; the public keys are published at
       CLERK_JWKS_URL. PyJWKClient fetches and caches them, picks the key
       matching the token's `kid`, and jwt.decode checks signature, expiry
       and (when CLERK_ISSUER is set) the issuer.
Who:   Every /api route depends on `get_current_subject`.

The subject is the only identity the rest of the backend sees. It keys
the user row (`users.clerk_id`), the chat tables, and mem0 memories.

PyJWKClient does blocking HTTP on a cache miss, so verification runs in
Starlette's threadpool.
"""

import logging
from typing import Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.concurrency import run_in_threadpool

from app.config import settings
from app.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

# auto_error=False: a missing header goes through our 401 handler, not FastAPI's 403
bearer_scheme = HTTPBearer(auto_error=False)


class ClerkTokenVerifier:
    """Stateless apart from the JWKS cache. One instance per process."""

    ALGORITHMS = ["RS256"]

    def __init__(self, jwks_url: str, issuer: Optional[str] = None, leeway: int = 30):
        self.issuer = issuer or None
        self.leeway = leeway
        self._jwks = _jwks_client(jwks_url)

    def verify(self, token: str) -> str:
        """
        Returns the token's `sub` claim.

        Raises:
            AuthenticationError: not configured, unknown key, bad signature,
                                 expired, wrong issuer, or no subject
        """
        if self._jwks is None:
            raise AuthenticationError("Authentication is not configured on this server")

        try:
            signing_key = self._jwks.get_signing_key_from_jwt(token)
            claims = jwt.decode(
                token,
                signing_key.key,
                algorithms=self.ALGORITHMS,
                issuer=self.issuer,
                leeway=self.leeway,
                options={"require": ["exp", "sub"], "verify_iss": self.issuer is not None},
            )
        except jwt.PyJWKClientError as e:
            logger.warning("Could not resolve token signing key: %s", type(e).__name__)
            raise AuthenticationError("Invalid or expired token")
        except jwt.InvalidTokenError as e:
            logger.info("Rejected bearer token: %s", type(e).__name__)
            raise AuthenticationError("Invalid or expired token")

        subject = claims.get("sub")
        if not subject:
            raise AuthenticationError("Invalid or expired token")
        return subject


def _jwks_client(jwks_url: str) -> Optional[jwt.PyJWKClient]:
    if not jwks_url:
        return None
    return jwt.PyJWKClient(jwks_url, cache_keys=True, lifespan=3600)


def build_token_verifier() -> ClerkTokenVerifier:
    return ClerkTokenVerifier(settings.clerk_jwks_url, settings.clerk_issuer)


async def get_current_subject(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """
    FastAPI dependency: the authenticated Clerk subject.

    Raises:
        AuthenticationError: missing, malformed or unverifiable bearer token (→ 401)
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Missing bearer token")

    verifier: ClerkTokenVerifier = request.app.state.token_verifier
    return await run_in_threadpool(verifier.verify, credentials.credentials)
