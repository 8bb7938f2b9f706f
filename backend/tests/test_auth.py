"""
Klara Backend — Authentication Tests
======================================

What we test:
    ✅ Valid RS256 token → `sub`
    ✅ Expired, wrong-issuer, subject-less and foreign-key tokens → 401
    ✅ Missing bearer header → 401 with WWW-Authenticate
    ✅ Server without JWKS configuration rejects every token

Signing keys are generated per test run; the JWKS fetch is replaced by a
stub returning the matching public key.
"""

import time
from unittest.mock import MagicMock

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from app.auth import ClerkTokenVerifier
from app.exceptions import AuthenticationError

ISSUER = "https://clerk.klara.test"


@pytest.fixture(scope="module")
def signing_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def _verifier(public_key, issuer=ISSUER) -> ClerkTokenVerifier:
    verifier = ClerkTokenVerifier("https://clerk.klara.test/.well-known/jwks.json", issuer=issuer)
    verifier._jwks = MagicMock()
    verifier._jwks.get_signing_key_from_jwt.return_value = MagicMock(key=public_key)
    return verifier


def _token(private_key, **claims) -> str:
    payload = {"sub": "user_2abc", "iss": ISSUER, "exp": int(time.time()) + 300}
    payload.update(claims)
    payload = {k: v for k, v in payload.items() if v is not None}
    return jwt.encode(payload, private_key, algorithm="RS256")


class TestClerkTokenVerifier:

    def test_valid_token(self, signing_key):
        verifier = _verifier(signing_key.public_key())
        assert verifier.verify(_token(signing_key)) == "user_2abc"

    def test_expired_token(self, signing_key):
        verifier = _verifier(signing_key.public_key())
        with pytest.raises(AuthenticationError):
            verifier.verify(_token(signing_key, exp=int(time.time()) - 3600))

    def test_wrong_issuer(self, signing_key):
        verifier = _verifier(signing_key.public_key())
        with pytest.raises(AuthenticationError):
            verifier.verify(_token(signing_key, iss="https://evil.example"))

    def test_issuer_not_checked_when_unset(self, signing_key):
        verifier = _verifier(signing_key.public_key(), issuer=None)
        assert verifier.verify(_token(signing_key, iss="https://anything.example")) == "user_2abc"

    def test_missing_subject(self, signing_key):
        verifier = _verifier(signing_key.public_key())
        with pytest.raises(AuthenticationError):
            verifier.verify(_token(signing_key, sub=None))

    def test_signed_by_another_key(self, signing_key):
        other = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        verifier = _verifier(signing_key.public_key())
        with pytest.raises(AuthenticationError):
            verifier.verify(_token(other))

    def test_unknown_kid(self, signing_key):
        verifier = _verifier(signing_key.public_key())
        verifier._jwks.get_signing_key_from_jwt.side_effect = jwt.PyJWKClientError("kid not found")
        with pytest.raises(AuthenticationError):
            verifier.verify(_token(signing_key))

    def test_unconfigured_server(self, signing_key):
        verifier = ClerkTokenVerifier("")
        with pytest.raises(AuthenticationError) as exc_info:
            verifier.verify(_token(signing_key))
        assert "not configured" in exc_info.value.message


class TestBearerDependency:

    async def _client(self, verifier):
        from app.main import create_app

        application = create_app()
        application.state.token_verifier = verifier
        transport = httpx.ASGITransport(app=application, raise_app_exceptions=False)
        return httpx.AsyncClient(transport=transport, base_url="http://test")

    @pytest.mark.asyncio
    async def test_missing_header(self):
        async with await self._client(ClerkTokenVerifier("")) as client:
            response = await client.get("/api/notes")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert response.json()["error"] == "unauthorized"

    @pytest.mark.asyncio
    async def test_invalid_token(self, signing_key):
        verifier = _verifier(signing_key.public_key())
        async with await self._client(verifier) as client:
            response = await client.get(
                "/api/chat/sessions", headers={"Authorization": "Bearer not.a.jwt"}
            )

        assert response.status_code == 401
