import time

import pytest
import requests
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwk, jwt

from paperworth.integrations import firebase_tokens
from paperworth.integrations.firebase_tokens import (
    FIREBASE_ISSUER_PREFIX,
    FirebaseTokenError,
    FirebaseTokenVerifier,
)

PROJECT = "paperworth-test"


def _rsa_pem_pair():
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    public_pem = key.public_key().public_bytes(
        serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo
    )
    return private_pem, public_pem


@pytest.fixture(scope="module")
def signing_key():
    private_pem, public_pem = _rsa_pem_pair()
    public_jwk = jwk.construct(public_pem, "RS256").to_dict()
    public_jwk["kid"] = "key-1"
    return private_pem, {"keys": [public_jwk]}


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")

    def json(self):
        return self.payload


@pytest.fixture
def jwks_requests(monkeypatch, signing_key):
    calls = []

    def fake_get(url, timeout):
        calls.append((url, timeout))
        return FakeResponse(signing_key[1])

    monkeypatch.setattr(firebase_tokens.requests, "get", fake_get)
    return calls


def _id_token(private_pem, **overrides):
    now = int(time.time())
    claims = {
        "sub": "fb-user",
        "email": "fb@example.com",
        "aud": PROJECT,
        "iss": FIREBASE_ISSUER_PREFIX + PROJECT,
        "iat": now,
        "exp": now + 3600,
    }
    claims.update(overrides)
    return jwt.encode(claims, private_pem, algorithm="RS256", headers={"kid": "key-1"})


def test_valid_token_returns_claims(signing_key, jwks_requests):
    verifier = FirebaseTokenVerifier(PROJECT)
    claims = verifier.verify(_id_token(signing_key[0]), timeout=2.0)
    assert claims["uid"] == "fb-user"
    assert claims["email"] == "fb@example.com"
    assert jwks_requests == [(firebase_tokens.FIREBASE_JWKS_URL, 2.0)]


def test_signing_keys_are_memoised(signing_key, jwks_requests):
    verifier = FirebaseTokenVerifier(PROJECT)
    verifier.verify(_id_token(signing_key[0]))
    verifier.verify(_id_token(signing_key[0], sub="other"))
    assert len(jwks_requests) == 1


def test_expired_keys_are_refetched(signing_key, jwks_requests):
    verifier = FirebaseTokenVerifier(PROJECT)
    verifier.verify(_id_token(signing_key[0]))
    verifier._fetched_at -= firebase_tokens.JWKS_CACHE_SECONDS + 1
    verifier.verify(_id_token(signing_key[0]))
    assert len(jwks_requests) == 2


@pytest.mark.parametrize(
    "overrides",
    [
        {"aud": "someone-elses-project"},
        {"iss": FIREBASE_ISSUER_PREFIX + "someone-elses-project"},
        {"exp": int(time.time()) - 60},
        {"sub": ""},
    ],
)
def test_invalid_claims_are_rejected(signing_key, jwks_requests, overrides):
    verifier = FirebaseTokenVerifier(PROJECT)
    with pytest.raises(FirebaseTokenError):
        verifier.verify(_id_token(signing_key[0], **overrides))


def test_token_signed_by_unknown_key_is_rejected(jwks_requests):
    other_private, _ = _rsa_pem_pair()
    verifier = FirebaseTokenVerifier(PROJECT)
    with pytest.raises(FirebaseTokenError):
        verifier.verify(_id_token(other_private))


def test_local_hs256_token_is_rejected(jwks_requests):
    local = jwt.encode({"sub": "3", "aud": PROJECT}, "test-secret-key", algorithm="HS256")
    with pytest.raises(FirebaseTokenError):
        FirebaseTokenVerifier(PROJECT).verify(local)


def test_missing_project_id(signing_key, jwks_requests):
    with pytest.raises(FirebaseTokenError, match="project id"):
        FirebaseTokenVerifier(None).verify(_id_token(signing_key[0]))
    assert jwks_requests == []


def test_key_fetch_failure(monkeypatch, signing_key):
    def failing_get(url, timeout):
        raise requests.ConnectionError("unreachable")

    monkeypatch.setattr(firebase_tokens.requests, "get", failing_get)
    with pytest.raises(FirebaseTokenError, match="Could not fetch signing keys"):
        FirebaseTokenVerifier(PROJECT).verify(_id_token(signing_key[0]))


def test_key_fetch_http_error(monkeypatch, signing_key):
    monkeypatch.setattr(
        firebase_tokens.requests, "get", lambda url, timeout: FakeResponse({}, status_code=503)
    )
    with pytest.raises(FirebaseTokenError, match="503"):
        FirebaseTokenVerifier(PROJECT).verify(_id_token(signing_key[0]))


def test_lock_is_not_held_while_fetching(monkeypatch, signing_key):
    verifier = FirebaseTokenVerifier(PROJECT)
    held = []

    def fake_get(url, timeout):
        held.append(verifier._lock.locked())
        return FakeResponse(signing_key[1])

    monkeypatch.setattr(firebase_tokens.requests, "get", fake_get)
    verifier.verify(_id_token(signing_key[0]))
    assert held == [False]
    assert verifier._jwks == signing_key[1]
