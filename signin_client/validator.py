"""
ID token verification: structure, signature (provider JWKS), iss, aud, exp, nonce, in that order.
The first failing check decides the error kind.
"""
import hmac
import logging
import time

import jwt

from signin_client.config import CLOCK_SKEW_SECONDS
from signin_client.errors import ErrorKind, SignInFailed
from signin_client.jwks import JwksCache
from signin_client.models import IdentityToken, SignInFlow, TokenResponse

logger = logging.getLogger(__name__)

_jws = jwt.PyJWS()


def _parse(raw: str) -> tuple[dict, dict]:
    """Unverified header and claims. Raises MalformedToken unless three well-formed segments."""
    parts = raw.split(".") if raw else []
    if len(parts) != 3 or not all(parts):
        raise SignInFailed(ErrorKind.MALFORMED_TOKEN, "ID token must have three non-empty segments")
    try:
        header = jwt.get_unverified_header(raw)
        claims = jwt.decode(raw, options={"verify_signature": False})
    except jwt.InvalidTokenError as e:
        raise SignInFailed(ErrorKind.MALFORMED_TOKEN, "ID token is not valid encoded data", cause=e)
    return header, claims


def _verify_signature(raw: str, header: dict, key_cache: JwksCache, algorithms: tuple[str, ...]) -> None:
    alg = header.get("alg")
    if alg not in algorithms:
        raise SignInFailed(ErrorKind.SIGNATURE_INVALID, f"ID token algorithm {alg!r} not accepted")
    kid = header.get("kid")
    generation, key = key_cache.get_signing_key(kid)
    try:
        _verify_with(raw, key, alg)
        return
    except SignInFailed as e:
        # Provider may have rotated keys under the same kid; retry once with a fresh set
        logger.info("ID token signature check failed with cached keys; refreshing JWKS")
        first_failure = e
    try:
        key_cache.refresh(seen_generation=generation)
        _, key = key_cache.get_signing_key(kid)
    except SignInFailed as e:
        if e.kind is not ErrorKind.KEY_FETCH_FAILURE:
            raise
        # The signature already failed against a published key; stays a signature failure
        logger.warning("JWKS refresh after failed signature check failed: %s", e.error.message)
        raise SignInFailed(ErrorKind.SIGNATURE_INVALID, first_failure.error.message, cause=e) from e
    _verify_with(raw, key, alg)


def _verify_with(raw: str, key: jwt.PyJWK, alg: str) -> None:
    try:
        _jws.decode(raw, key.key, algorithms=[alg])
    except (jwt.PyJWTError, TypeError, ValueError) as e:
        raise SignInFailed(ErrorKind.SIGNATURE_INVALID, "ID token signature verification failed", cause=e)


def _audience_matches(aud, expected: str) -> bool:
    if isinstance(aud, str):
        return aud == expected
    if isinstance(aud, list):
        return expected in aud
    return False


def _int_claim(claims: dict, name: str) -> int | None:
    value = claims.get(name)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def validate_id_token(
    token_response: TokenResponse,
    flow: SignInFlow,
    expected_issuer: str,
    expected_audience: str,
    *,
    key_cache: JwksCache,
    algorithms: tuple[str, ...] = ("RS256",),
    leeway: int = CLOCK_SKEW_SECONDS,
    now: float | None = None,
) -> IdentityToken:
    """
    Verify the ID token in token_response for flow. Returns IdentityToken; raises SignInFailed.
    Missing email/name/picture claims default to "".
    """
    raw = token_response.id_token
    header, claims = _parse(raw)
    if not isinstance(claims.get("sub"), str) or not claims["sub"]:
        raise SignInFailed(ErrorKind.MALFORMED_TOKEN, "ID token has no sub claim")
    exp = _int_claim(claims, "exp")
    if exp is None:
        raise SignInFailed(ErrorKind.MALFORMED_TOKEN, "ID token has no numeric exp claim")

    _verify_signature(raw, header, key_cache, algorithms)

    if claims.get("iss") != expected_issuer:
        logger.warning("ID token issuer mismatch for flow %s", flow.flow_id)
        raise SignInFailed(ErrorKind.ISSUER_MISMATCH, "ID token issuer does not match")

    if not _audience_matches(claims.get("aud"), expected_audience):
        logger.warning("ID token audience mismatch for flow %s", flow.flow_id)
        raise SignInFailed(ErrorKind.AUDIENCE_MISMATCH, "ID token audience does not match client_id")

    current = time.time() if now is None else now
    if exp + leeway <= current:
        raise SignInFailed(ErrorKind.TOKEN_EXPIRED, "ID token expired")

    if flow.nonce is not None:
        nonce = claims.get("nonce")
        if not isinstance(nonce, str) or not hmac.compare_digest(nonce.encode(), flow.nonce.encode()):
            logger.warning("ID token nonce mismatch for flow %s", flow.flow_id)
            raise SignInFailed(ErrorKind.NONCE_MISMATCH, "ID token nonce does not match")

    aud = claims["aud"]
    return IdentityToken(
        subject=claims["sub"],
        email=str(claims.get("email") or ""),
        display_name=str(claims.get("name") or ""),
        picture_url=str(claims.get("picture") or ""),
        raw_id_token=raw,
        issuer=claims["iss"],
        audience=aud if isinstance(aud, str) else expected_audience,
        issued_at=_int_claim(claims, "iat") or 0,
        expires_at=exp,
    )
