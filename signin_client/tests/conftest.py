"""
Pytest fixtures for signin_client: RSA signing key + JWKS, ID token builder, fake HTTP responses.
"""
import time

import jwt
import pytest
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.asymmetric.rsa import generate_private_key

from signin_client.jwks import clear_key_caches
from signin_client.models import SignInConfig

ISSUER = "https://issuer.example"
CLIENT_ID = "abc"
REDIRECT_URI = "app://cb"
JWKS_URI = f"{ISSUER}/.well-known/jwks.json"


def _int_to_b64url(value: int) -> str:
    """Encode a positive int as base64url (JWK n/e)."""
    length = (value.bit_length() + 7) // 8
    s = jwt.utils.base64url_encode(value.to_bytes(length, "big"))
    return s.decode("utf-8") if isinstance(s, bytes) else s


def make_key_and_jwks(kid: str = "test-key"):
    """Generate RSA key and JWKS dict for testing."""
    key = generate_private_key(65537, 2048, default_backend())
    pub = key.public_key().public_numbers()
    jwk = {
        "kty": "RSA",
        "kid": kid,
        "alg": "RS256",
        "use": "sig",
        "n": _int_to_b64url(pub.n),
        "e": _int_to_b64url(pub.e),
    }
    return key, {"keys": [jwk]}


def make_id_token(key, *, kid: str = "test-key", **overrides) -> str:
    """Signed ID token; claims default to a valid token for CLIENT_ID at ISSUER. None removes a claim."""
    now = int(time.time())
    payload = {
        "iss": ISSUER,
        "sub": "user-42",
        "aud": CLIENT_ID,
        "exp": now + 3600,
        "iat": now,
        "email": "user42@example.com",
        "name": "User Forty-Two",
        "picture": "https://issuer.example/u42.png",
    }
    payload.update(overrides)
    payload = {k: v for k, v in payload.items() if v is not None}
    token = jwt.encode(payload, key, algorithm="RS256", headers={"kid": kid})
    return token.decode("utf-8") if isinstance(token, bytes) else token


class MockResponse:
    """Minimal stand-in for httpx.Response."""

    def __init__(self, body=None, status_code: int = 200, content_type: str = "application/json"):
        self._body = body
        self.status_code = status_code
        self.headers = {"content-type": content_type}
        self.text = str(body)

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope="session")
def key_and_jwks():
    return make_key_and_jwks()


@pytest.fixture
def signin_config():
    return SignInConfig(
        client_id=CLIENT_ID,
        redirect_uri=REDIRECT_URI,
        scopes=("openid", "email"),
        issuer=ISSUER,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(autouse=True)
def _reset_key_caches():
    """Force each test to fetch its own JWKS (for mocks to apply)."""
    clear_key_caches()
    yield
    clear_key_caches()
