"""Tests for PKCE and authorization URL building."""
import hashlib
import re
from base64 import urlsafe_b64encode
from urllib.parse import parse_qs, urlparse

import pytest

from signin_client.errors import ErrorKind, SignInFailed
from signin_client.flow_store import FlowStore
from signin_client.pkce import (
    build_authorization_url,
    code_challenge,
    generate_code_verifier,
    generate_nonce,
    generate_state,
    launch_user_agent,
)


def test_generate_state_length():
    s = generate_state()
    assert len(s) >= 32
    assert re.match(r"^[A-Za-z0-9_-]+$", s)
    assert generate_state() != s


def test_generate_nonce_length():
    n = generate_nonce()
    assert len(n) >= 32
    assert re.match(r"^[A-Za-z0-9_-]+$", n)


def test_code_verifier_bounds():
    assert len(generate_code_verifier()) == 43
    assert len(generate_code_verifier(96)) == 128
    with pytest.raises(ValueError):
        generate_code_verifier(16)
    with pytest.raises(ValueError):
        generate_code_verifier(97)


def test_code_challenge_is_s256_of_verifier():
    verifier = "M25iVXpKU3puUjFaYWg3T1NDTDQtcW1ROUY2dEpKTmtt"
    # known answer: sha256 | base64url, padding stripped
    assert code_challenge(verifier) == "WrKZucIFkPlEzJB0XWHKZ6vobGN5-dA06wxpFRREU8Y"


def test_every_flow_challenge_matches_verifier(signin_config):
    store = FlowStore()
    for _ in range(20):
        flow = store.create(signin_config)
        assert 43 <= len(flow.code_verifier) <= 128
        digest = hashlib.sha256(flow.code_verifier.encode("ascii")).digest()
        assert flow.code_challenge == urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def test_build_authorization_url_includes_required_params(signin_config):
    flow = FlowStore().create(signin_config)
    url = build_authorization_url("abc", "app://cb", ["openid", "email"], flow, endpoint="https://issuer.example/authorize")

    assert url.startswith("https://issuer.example/authorize?")
    assert "client_id=abc&redirect_uri=app%3A%2F%2Fcb&response_type=code&code_challenge_method=S256" in url
    params = parse_qs(urlparse(url).query)
    assert params["scope"] == ["openid email"]
    assert params["state"] == [flow.state]
    assert params["code_challenge"] == [code_challenge(flow.code_verifier)]
    assert params["nonce"] == [flow.nonce]


def test_build_authorization_url_is_deterministic(signin_config):
    flow = FlowStore().create(signin_config)
    a = build_authorization_url("abc", "app://cb", ["openid"], flow, endpoint="https://as/authorize")
    b = build_authorization_url("abc", "app://cb", ["openid"], flow, endpoint="https://as/authorize")
    assert a == b


def test_build_authorization_url_without_nonce(signin_config):
    from dataclasses import replace

    config = replace(signin_config, scopes=("email",))
    flow = FlowStore().create(config)
    assert flow.nonce is None
    url = build_authorization_url("abc", "app://cb", config.scopes, flow, endpoint="https://as/authorize")
    assert "nonce=" not in url


def test_build_authorization_url_keeps_existing_query(signin_config):
    flow = FlowStore().create(signin_config)
    url = build_authorization_url("abc", "app://cb", ["openid"], flow, endpoint="https://as/o/auth?tenant=x")
    assert url.startswith("https://as/o/auth?tenant=x&client_id=abc")


@pytest.mark.parametrize("client_id,redirect_uri", [("", "app://cb"), ("abc", "")])
def test_build_authorization_url_rejects_empty_config(signin_config, client_id, redirect_uri):
    flow = FlowStore().create(signin_config)
    with pytest.raises(SignInFailed) as exc:
        build_authorization_url(client_id, redirect_uri, ["openid"], flow, endpoint="https://as/authorize")
    assert exc.value.kind is ErrorKind.INVALID_CONFIG


def test_launch_user_agent_uses_opener():
    opened = []
    assert launch_user_agent("https://as/authorize?x=1", opener=lambda u: opened.append(u) or True) is True
    assert opened == ["https://as/authorize?x=1"]


def test_launch_user_agent_reports_no_browser():
    assert launch_user_agent("https://as/authorize", opener=lambda u: False) is False
