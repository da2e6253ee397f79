"""
PKCE (RFC 7636) and authorization request helpers for sign-in initiation.
S256 only; state and nonce generation.
"""
import hashlib
import logging
import secrets
import webbrowser
from base64 import urlsafe_b64encode
from typing import Callable, Iterable
from urllib.parse import urlencode

from signin_client.errors import ErrorKind, SignInFailed
from signin_client.models import SignInFlow

logger = logging.getLogger(__name__)

# RFC 7636: verifier is 43..128 chars of [A-Z a-z 0-9 - . _ ~]
VERIFIER_MIN_LENGTH = 43
VERIFIER_MAX_LENGTH = 128


def generate_state() -> str:
    """Opaque value for CSRF protection; returned in callback."""
    return secrets.token_urlsafe(32)


def generate_nonce() -> str:
    """Random value for ID token binding; sent when openid scope is requested."""
    return secrets.token_urlsafe(32)


def generate_code_verifier(n_bytes: int = 32) -> str:
    """
    Random code_verifier. 32 bytes -> 43 chars (256 bits entropy), 96 bytes -> 128 chars.
    """
    verifier = secrets.token_urlsafe(n_bytes)
    if not VERIFIER_MIN_LENGTH <= len(verifier) <= VERIFIER_MAX_LENGTH:
        raise ValueError(f"code_verifier must be {VERIFIER_MIN_LENGTH}-{VERIFIER_MAX_LENGTH} chars, got {len(verifier)}")
    return verifier


def code_challenge(code_verifier: str) -> str:
    """S256: base64url(SHA256(verifier)) without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def build_authorization_url(
    client_id: str,
    redirect_uri: str,
    scopes: Iterable[str],
    flow: SignInFlow,
    *,
    endpoint: str,
) -> str:
    """Build the provider authorization URL for this flow. Pure; same inputs give the same URL."""
    if not client_id:
        raise SignInFailed(ErrorKind.INVALID_CONFIG, "client_id is required")
    if not redirect_uri:
        raise SignInFailed(ErrorKind.INVALID_CONFIG, "redirect_uri is required")
    if not endpoint:
        raise SignInFailed(ErrorKind.INVALID_CONFIG, "authorization endpoint is required")

    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "code_challenge_method": "S256",
        "scope": " ".join(scopes),
        "state": flow.state,
        "code_challenge": code_challenge(flow.code_verifier),
    }
    if flow.nonce:
        params["nonce"] = flow.nonce
    separator = "&" if "?" in endpoint else "?"
    return f"{endpoint}{separator}{urlencode(params)}"


def launch_user_agent(url: str, opener: Callable[[str], bool] = webbrowser.open) -> bool:
    """Hand the authorization URL to the external user agent. Returns False if it could not be opened."""
    try:
        opened = bool(opener(url))
    except webbrowser.Error as e:
        logger.warning("Could not open user agent: %s", e)
        return False
    if not opened:
        logger.warning("No user agent available to open the authorization URL")
    return opened
