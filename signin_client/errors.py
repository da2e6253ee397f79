"""
Error kinds for sign-in flows.
SignInError is the value handed to callers; SignInFailed carries one through the call stack.
"""
from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    INVALID_CONFIG = "invalid_config"
    UNKNOWN_FLOW = "unknown_flow"
    FLOW_EXPIRED = "flow_expired"
    PROVIDER_DENIED = "provider_denied"
    STATE_MISMATCH = "state_mismatch"
    INVALID_CALLBACK = "invalid_callback"
    MALFORMED_TOKEN = "malformed_token"
    SIGNATURE_INVALID = "signature_invalid"
    ISSUER_MISMATCH = "issuer_mismatch"
    AUDIENCE_MISMATCH = "audience_mismatch"
    TOKEN_EXPIRED = "token_expired"
    NONCE_MISMATCH = "nonce_mismatch"
    NETWORK_FAILURE = "network_failure"
    KEY_FETCH_FAILURE = "key_fetch_failure"
    CANCELLED = "cancelled"
    INTERNAL = "internal"


# A failed security check; must stay distinguishable from transient failures
SECURITY_KINDS = frozenset(
    {
        ErrorKind.STATE_MISMATCH,
        ErrorKind.SIGNATURE_INVALID,
        ErrorKind.ISSUER_MISMATCH,
        ErrorKind.AUDIENCE_MISMATCH,
        ErrorKind.NONCE_MISMATCH,
    }
)

# Starting a fresh flow may succeed
TRANSIENT_KINDS = frozenset(
    {
        ErrorKind.NETWORK_FAILURE,
        ErrorKind.KEY_FETCH_FAILURE,
        ErrorKind.FLOW_EXPIRED,
    }
)


@dataclass(frozen=True)
class SignInError:
    kind: ErrorKind
    message: str
    cause: BaseException | None = None

    @property
    def is_security_violation(self) -> bool:
        return self.kind in SECURITY_KINDS

    @property
    def is_transient(self) -> bool:
        return self.kind in TRANSIENT_KINDS

    def to_dict(self) -> dict:
        """OAuth-style error body (no cause details)."""
        return {"error": self.kind.value, "error_description": self.message}


class SignInFailed(Exception):
    """Raised inside the client; SignInClient turns it into a returned SignInError."""

    def __init__(self, kind: ErrorKind, message: str, cause: BaseException | None = None):
        super().__init__(f"{kind.value}: {message}")
        self.error = SignInError(kind=kind, message=message, cause=cause)

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind
