"""Tests for OpenID Connect discovery."""
from unittest.mock import patch

import httpx
import pytest

from conftest import ISSUER, MockResponse
from signin_client.discovery import discover_config, fetch_provider_metadata
from signin_client.errors import ErrorKind, SignInFailed

DOCUMENT = {
    "issuer": ISSUER,
    "authorization_endpoint": f"{ISSUER}/o/oauth2/v2/auth",
    "token_endpoint": "https://oauth2.issuer.example/token",
    "jwks_uri": f"{ISSUER}/oauth2/v3/certs",
    "code_challenge_methods_supported": ["plain", "S256"],
    "id_token_signing_alg_values_supported": ["RS256"],
}


def test_fetch_provider_metadata():
    with patch("signin_client.discovery.httpx.get", return_value=MockResponse(DOCUMENT)) as get:
        meta = fetch_provider_metadata(ISSUER + "/")
    assert get.call_args.args[0] == f"{ISSUER}/.well-known/openid-configuration"
    assert meta.token_endpoint == "https://oauth2.issuer.example/token"
    assert "S256" in meta.code_challenge_methods_supported


def test_discover_config_fills_endpoints(signin_config):
    with patch("signin_client.discovery.httpx.get", return_value=MockResponse(DOCUMENT)):
        config = discover_config(signin_config)
    assert config.authorize_url == f"{ISSUER}/o/oauth2/v2/auth"
    assert config.token_url == "https://oauth2.issuer.example/token"
    assert config.jwks_url == f"{ISSUER}/oauth2/v3/certs"
    assert config.client_id == signin_config.client_id


def test_discover_config_keeps_explicit_endpoints(signin_config):
    from dataclasses import replace

    explicit = replace(signin_config, token_endpoint="https://proxy.example/token")
    with patch("signin_client.discovery.httpx.get", return_value=MockResponse(DOCUMENT)):
        config = discover_config(explicit)
    assert config.token_url == "https://proxy.example/token"


def test_issuer_mismatch():
    doc = dict(DOCUMENT, issuer="https://evil.example")
    with patch("signin_client.discovery.httpx.get", return_value=MockResponse(doc)):
        with pytest.raises(SignInFailed) as exc:
            fetch_provider_metadata(ISSUER)
    assert exc.value.kind is ErrorKind.ISSUER_MISMATCH


def test_missing_endpoint_is_invalid_config():
    doc = {k: v for k, v in DOCUMENT.items() if k != "jwks_uri"}
    with patch("signin_client.discovery.httpx.get", return_value=MockResponse(doc)):
        with pytest.raises(SignInFailed) as exc:
            fetch_provider_metadata(ISSUER)
    assert exc.value.kind is ErrorKind.INVALID_CONFIG
    assert "jwks_uri" in exc.value.error.message


def test_unreachable_provider():
    with patch("signin_client.discovery.httpx.get", side_effect=httpx.ConnectError("refused")):
        with pytest.raises(SignInFailed) as exc:
            fetch_provider_metadata(ISSUER)
    assert exc.value.kind is ErrorKind.NETWORK_FAILURE
    assert exc.value.error.is_transient
