"""
OpenID Connect discovery: read {issuer}/.well-known/openid-configuration and fill in endpoints.
The embedding host applies discover_config to its settings when OAUTH_DISCOVERY is set;
library callers can apply it to any SignInConfig before begin_sign_in.
"""
import logging
from dataclasses import dataclass, replace

import httpx

from signin_client.config import FLOW_TIMEOUT_SECONDS
from signin_client.errors import ErrorKind, SignInFailed
from signin_client.models import SignInConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderMetadata:
    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    jwks_uri: str
    code_challenge_methods_supported: tuple[str, ...] = ()
    id_token_signing_alg_values_supported: tuple[str, ...] = ()


def fetch_provider_metadata(issuer: str, timeout: float = FLOW_TIMEOUT_SECONDS) -> ProviderMetadata:
    """Fetch and check the discovery document. Its issuer must equal the one asked for."""
    issuer = issuer.rstrip("/")
    url = f"{issuer}/.well-known/openid-configuration"
    try:
        r = httpx.get(url, headers={"Accept": "application/json"}, timeout=timeout)
    except httpx.HTTPError as e:
        raise SignInFailed(ErrorKind.NETWORK_FAILURE, "Discovery document unreachable", cause=e)
    if r.status_code != 200:
        raise SignInFailed(ErrorKind.NETWORK_FAILURE, f"Discovery endpoint returned {r.status_code}")
    try:
        doc = r.json()
    except ValueError as e:
        raise SignInFailed(ErrorKind.INVALID_CONFIG, "Discovery document is not JSON", cause=e)
    if not isinstance(doc, dict):
        raise SignInFailed(ErrorKind.INVALID_CONFIG, "Discovery document is not a JSON object")

    if str(doc.get("issuer", "")).rstrip("/") != issuer:
        raise SignInFailed(ErrorKind.ISSUER_MISMATCH, "Discovery document issuer does not match")
    missing = [k for k in ("authorization_endpoint", "token_endpoint", "jwks_uri") if not doc.get(k)]
    if missing:
        raise SignInFailed(ErrorKind.INVALID_CONFIG, f"Discovery document missing {', '.join(missing)}")

    methods = tuple(doc.get("code_challenge_methods_supported") or ())
    if methods and "S256" not in methods:
        logger.warning("Provider %s does not advertise S256 PKCE", issuer)
    return ProviderMetadata(
        issuer=doc["issuer"],
        authorization_endpoint=doc["authorization_endpoint"],
        token_endpoint=doc["token_endpoint"],
        jwks_uri=doc["jwks_uri"],
        code_challenge_methods_supported=methods,
        id_token_signing_alg_values_supported=tuple(doc.get("id_token_signing_alg_values_supported") or ()),
    )


def discover_config(config: SignInConfig) -> SignInConfig:
    """Copy of config with endpoints from the provider's discovery document (explicit values win)."""
    meta = fetch_provider_metadata(config.issuer, timeout=config.timeout)
    return replace(
        config,
        issuer=meta.issuer,
        authorization_endpoint=config.authorization_endpoint or meta.authorization_endpoint,
        token_endpoint=config.token_endpoint or meta.token_endpoint,
        jwks_uri=config.jwks_uri or meta.jwks_uri,
    )
