"""
Value types shared by the sign-in components: configuration, flow state, tokens.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from signin_client import config as settings
from signin_client.errors import ErrorKind, SignInFailed


@dataclass(frozen=True)
class SignInConfig:
    """Where and how to sign in. Endpoints left as None are derived from the issuer."""

    client_id: str
    redirect_uri: str
    scopes: tuple[str, ...] = ("openid",)
    issuer: str = settings.ISSUER
    authorization_endpoint: str | None = None
    token_endpoint: str | None = None
    jwks_uri: str | None = None
    fallback_jwks_uri: str | None = None
    audience: str | None = None
    algorithms: tuple[str, ...] = ("RS256",)
    timeout: float = settings.FLOW_TIMEOUT_SECONDS
    clock_skew: int = settings.CLOCK_SKEW_SECONDS

    @classmethod
    def from_env(cls) -> "SignInConfig":
        return cls(
            client_id=settings.CLIENT_ID,
            redirect_uri=settings.REDIRECT_URI,
            scopes=tuple(settings.DEFAULT_SCOPE.split()),
            issuer=settings.ISSUER,
            jwks_uri=settings.JWKS_URI,
            fallback_jwks_uri=settings.FALLBACK_JWKS_URI,
            algorithms=settings.ID_TOKEN_ALGORITHMS,
            timeout=settings.FLOW_TIMEOUT_SECONDS,
            clock_skew=settings.CLOCK_SKEW_SECONDS,
        )

    @property
    def authorize_url(self) -> str:
        return self.authorization_endpoint or f"{self.issuer.rstrip('/')}/authorize"

    @property
    def token_url(self) -> str:
        return self.token_endpoint or f"{self.issuer.rstrip('/')}/token"

    @property
    def jwks_url(self) -> str:
        return self.jwks_uri or f"{self.issuer.rstrip('/')}/.well-known/jwks.json"

    @property
    def expected_audience(self) -> str:
        return self.audience or self.client_id

    @property
    def wants_id_token(self) -> bool:
        return "openid" in self.scopes


class FlowStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"

    @property
    def terminal(self) -> bool:
        return self is not FlowStatus.PENDING


@dataclass
class SignInFlow:
    flow_id: str
    state: str
    code_verifier: str
    code_challenge: str
    config: SignInConfig
    created_at: float
    expires_at: float
    nonce: str | None = None
    status: FlowStatus = FlowStatus.PENDING
    failure_reason: str | None = None
    claimed: bool = False
    finished_at: float | None = None

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class IdentityToken:
    subject: str
    email: str
    display_name: str
    picture_url: str
    raw_id_token: str
    issuer: str
    audience: str
    issued_at: int
    expires_at: int

    def to_dict(self, include_token: bool = True) -> dict:
        data = {
            "sub": self.subject,
            "email": self.email,
            "name": self.display_name,
            "picture": self.picture_url,
            "iss": self.issuer,
            "aud": self.audience,
            "iat": self.issued_at,
            "exp": self.expires_at,
        }
        if include_token:
            data["id_token"] = self.raw_id_token
        return data


@dataclass(frozen=True)
class TokenResponse:
    id_token: str
    access_token: str = ""
    token_type: str = ""
    expires_in: int = 0
    scope: str = ""
    refresh_token: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: Any) -> "TokenResponse":
        """Parse a token endpoint body. Requires a non-empty string id_token."""
        if not isinstance(data, dict):
            raise SignInFailed(ErrorKind.MALFORMED_TOKEN, "Token response is not a JSON object")
        id_token = data.get("id_token")
        if not isinstance(id_token, str) or not id_token:
            raise SignInFailed(ErrorKind.MALFORMED_TOKEN, "Token response contains no id_token")
        try:
            expires_in = int(data.get("expires_in") or 0)
        except (TypeError, ValueError):
            expires_in = 0
        known = {"id_token", "access_token", "token_type", "expires_in", "scope", "refresh_token"}
        return cls(
            id_token=id_token,
            access_token=str(data.get("access_token") or ""),
            token_type=str(data.get("token_type") or ""),
            expires_in=expires_in,
            scope=str(data.get("scope") or ""),
            refresh_token=str(data.get("refresh_token") or ""),
            extra={k: v for k, v in data.items() if k not in known},
        )
