"""
Sign-in client configuration. Identifiers and endpoints only; no secrets here.
Every value can be overridden from the environment.
"""
import os

# Identity provider (issuer). Endpoints default to {ISSUER}/authorize, /token, /.well-known/jwks.json
ISSUER = os.environ.get("OAUTH_ISSUER", "http://127.0.0.1:9000").rstrip("/")

# Our client_id (registered at the provider); also the expected ID token audience
CLIENT_ID = os.environ.get("OAUTH_CLIENT_ID", "test-client")

# Where the provider redirects after authorization
REDIRECT_URI = os.environ.get("OAUTH_REDIRECT_URI", "http://127.0.0.1:8000/callback")

# openid so an ID token (and nonce binding) is issued
DEFAULT_SCOPE = os.environ.get("OAUTH_SCOPE", "openid email profile")

# Optional explicit JWKS locations (secondary one is tried when the first fetch fails)
JWKS_URI = os.environ.get("OAUTH_JWKS_URI", "").strip() or None
FALLBACK_JWKS_URI = os.environ.get("OAUTH_FALLBACK_JWKS_URI", "").strip() or None

# Seconds a flow may stay pending; also the HTTP timeout for token exchange and key fetch
FLOW_TIMEOUT_SECONDS = float(os.environ.get("OAUTH_FLOW_TIMEOUT", "30"))

# Terminal flows are kept this long so late callbacks get FlowExpired / UnknownFlow, then purged
FLOW_RETENTION_SECONDS = float(os.environ.get("OAUTH_FLOW_RETENTION", "600"))

# Tolerance for exp checks on ID tokens
CLOCK_SKEW_SECONDS = int(os.environ.get("OAUTH_CLOCK_SKEW", "5"))

# How long fetched signing keys are trusted before refetching
JWKS_CACHE_SECONDS = int(os.environ.get("OAUTH_JWKS_CACHE_SECONDS", "300"))

# Accepted ID token signing algorithms (never "none" or HMAC)
ID_TOKEN_ALGORITHMS = tuple(
    a.strip() for a in os.environ.get("OAUTH_ID_TOKEN_ALGORITHMS", "RS256").split(",") if a.strip()
)

# Read endpoints from {ISSUER}/.well-known/openid-configuration (explicit OAUTH_JWKS_URI still wins)
DISCOVERY = os.environ.get("OAUTH_DISCOVERY", "").lower() in ("1", "true", "yes")
