"""
Provider signing keys (JWKS) for ID token verification.
One cache per JWKS URI and fetch settings, shared process-wide. Keys are trusted for a lifespan, refetched on
unknown kid or failed signature (key rotation). Refresh is single-writer: concurrent callers
that saw the same generation wait on the lock and reuse the one fetch.
"""
import logging
import threading
import time
from typing import Callable

import httpx
import jwt

from signin_client.config import FLOW_TIMEOUT_SECONDS, JWKS_CACHE_SECONDS
from signin_client.errors import ErrorKind, SignInFailed

logger = logging.getLogger(__name__)


class JwksCache:
    def __init__(
        self,
        jwks_uri: str,
        *,
        fallback_uri: str | None = None,
        lifespan: float = JWKS_CACHE_SECONDS,
        timeout: float = FLOW_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.jwks_uri = jwks_uri
        self.fallback_uri = fallback_uri
        self.lifespan = lifespan
        self.timeout = timeout
        self._clock = clock
        self._lock = threading.Lock()
        # (generation, fetched_at, keys); replaced as a whole so readers never see a partial update
        self._state: tuple[int, float, dict[str | None, jwt.PyJWK]] = (0, 0.0, {})

    @property
    def generation(self) -> int:
        return self._state[0]

    def keys(self) -> tuple[int, dict[str | None, jwt.PyJWK]]:
        """Current (generation, keys); fetches when empty or older than lifespan."""
        generation, fetched_at, keys = self._state
        if generation == 0 or self._clock() - fetched_at > self.lifespan:
            return self.refresh(seen_generation=generation)
        return generation, keys

    def refresh(self, seen_generation: int | None = None) -> tuple[int, dict[str | None, jwt.PyJWK]]:
        """
        Refetch the key set. When seen_generation is given and another caller already refreshed
        past it, the newer keys are returned without a second fetch.
        """
        with self._lock:
            generation, _, keys = self._state
            if seen_generation is not None and generation != seen_generation:
                return generation, keys
            keys = self._fetch()
            generation += 1
            self._state = (generation, self._clock(), keys)
        logger.info("Loaded %d signing key(s) from %s", len(keys), self.jwks_uri)
        return generation, keys

    def get_signing_key(self, kid: str | None) -> tuple[int, jwt.PyJWK]:
        """Signing key for kid; refreshes once if the kid is unknown. Raises SignatureInvalid if still absent."""
        generation, keys = self.keys()
        key = _select(keys, kid)
        if key is None:
            logger.info("kid %s not in cached key set; refreshing", kid)
            generation, keys = self.refresh(seen_generation=generation)
            key = _select(keys, kid)
        if key is None:
            raise SignInFailed(ErrorKind.SIGNATURE_INVALID, "No provider signing key matches the token")
        return generation, key

    def _fetch(self) -> dict[str | None, jwt.PyJWK]:
        """GET the JWKS; one retry (fallback URI if configured) on network failure."""
        last_error: Exception | None = None
        for uri in (self.jwks_uri, self.fallback_uri or self.jwks_uri):
            try:
                r = httpx.get(uri, headers={"Accept": "application/json"}, timeout=self.timeout)
            except httpx.HTTPError as e:
                logger.warning("JWKS fetch from %s failed: %s", uri, e)
                last_error = e
                continue
            if r.status_code >= 500:
                logger.warning("JWKS fetch from %s returned %s", uri, r.status_code)
                last_error = None
                continue
            if r.status_code != 200:
                raise SignInFailed(ErrorKind.KEY_FETCH_FAILURE, f"JWKS endpoint returned {r.status_code}")
            try:
                data = r.json()
                if not isinstance(data, dict):
                    raise ValueError("JWKS is not a JSON object")
                key_set = jwt.PyJWKSet.from_dict(data)
            except (ValueError, jwt.PyJWKSetError) as e:
                raise SignInFailed(ErrorKind.KEY_FETCH_FAILURE, "JWKS document is invalid", cause=e)
            return {k.key_id: k for k in key_set.keys}
        raise SignInFailed(ErrorKind.KEY_FETCH_FAILURE, "Could not fetch provider signing keys", cause=last_error)


def _select(keys: dict[str | None, jwt.PyJWK], kid: str | None) -> jwt.PyJWK | None:
    if kid is not None:
        return keys.get(kid)
    # No kid in the token header: only unambiguous with a single key
    if len(keys) == 1:
        return next(iter(keys.values()))
    return None


_caches: dict[tuple[str, str | None, float, float], JwksCache] = {}
_caches_lock = threading.Lock()


def get_key_cache(
    jwks_uri: str,
    *,
    fallback_uri: str | None = None,
    lifespan: float = JWKS_CACHE_SECONDS,
    timeout: float = FLOW_TIMEOUT_SECONDS,
) -> JwksCache:
    """
    Process-wide cache for jwks_uri (created on first use). Configs that differ in fallback,
    lifespan or timeout get their own cache.
    """
    cache_key = (jwks_uri, fallback_uri, lifespan, timeout)
    with _caches_lock:
        cache = _caches.get(cache_key)
        if cache is None:
            cache = JwksCache(jwks_uri, fallback_uri=fallback_uri, lifespan=lifespan, timeout=timeout)
            _caches[cache_key] = cache
        return cache


def clear_key_caches() -> None:
    """Forget all cached key sets (next verification refetches)."""
    with _caches_lock:
        _caches.clear()
