"""
In-memory store for sign-in flows (flow_id -> state, nonce, code_verifier, config).
Used between begin_sign_in and complete_sign_in. One lock guards the mapping so flows can be
created and completed from different threads.
"""
import logging
import secrets
import threading
import time
from dataclasses import replace
from typing import Callable

from signin_client.config import FLOW_RETENTION_SECONDS
from signin_client.errors import ErrorKind, SignInFailed
from signin_client.models import FlowStatus, SignInConfig, SignInFlow
from signin_client.pkce import code_challenge, generate_code_verifier, generate_nonce, generate_state

logger = logging.getLogger(__name__)


class FlowStore:
    def __init__(
        self,
        retention: float = FLOW_RETENTION_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._flows: dict[str, SignInFlow] = {}
        self._lock = threading.Lock()
        self._retention = retention
        self._clock = clock

    def now(self) -> float:
        return self._clock()

    def create(self, config: SignInConfig, ttl: float | None = None) -> SignInFlow:
        """Start a pending flow with fresh state, PKCE verifier and (for openid) nonce."""
        verifier = generate_code_verifier()
        created_at = self._clock()
        flow = SignInFlow(
            flow_id=secrets.token_urlsafe(16),
            state=generate_state(),
            code_verifier=verifier,
            code_challenge=code_challenge(verifier),
            config=config,
            created_at=created_at,
            expires_at=created_at + (config.timeout if ttl is None else ttl),
            nonce=generate_nonce() if config.wants_id_token else None,
        )
        with self._lock:
            while flow.flow_id in self._flows:
                flow.flow_id = secrets.token_urlsafe(16)
            self._flows[flow.flow_id] = flow
        logger.debug("flow %s created (client_id=%s)", flow.flow_id, config.client_id)
        return replace(flow)

    def get(self, flow_id: str) -> SignInFlow | None:
        with self._lock:
            flow = self._flows.get(flow_id)
            return replace(flow) if flow is not None else None

    def claim(self, flow_id: str) -> SignInFlow:
        """
        Reserve a pending flow for its single callback.
        Raises UnknownFlow if absent, terminal or already claimed; FlowExpired if past its deadline.
        """
        with self._lock:
            flow = self._flows.get(flow_id)
            if flow is None:
                raise SignInFailed(ErrorKind.UNKNOWN_FLOW, "Unknown sign-in flow")
            if flow.status is FlowStatus.EXPIRED or (
                flow.status is FlowStatus.PENDING and flow.expired(self._clock())
            ):
                raise SignInFailed(ErrorKind.FLOW_EXPIRED, "Sign-in flow expired")
            if flow.status.terminal:
                raise SignInFailed(ErrorKind.UNKNOWN_FLOW, f"Sign-in flow already {flow.status.value}")
            if flow.claimed:
                raise SignInFailed(ErrorKind.UNKNOWN_FLOW, "Sign-in flow callback already in progress")
            flow.claimed = True
            return replace(flow)

    def complete(self, flow_id: str) -> bool:
        return self._finish(flow_id, FlowStatus.COMPLETED)

    def fail(self, flow_id: str, reason: str) -> bool:
        return self._finish(flow_id, FlowStatus.FAILED, reason)

    def expire(self, flow_id: str) -> bool:
        return self._finish(flow_id, FlowStatus.EXPIRED, "timed out")

    def _finish(self, flow_id: str, status: FlowStatus, reason: str | None = None) -> bool:
        """Move a pending flow to a terminal status. True only for the call that made the transition."""
        with self._lock:
            flow = self._flows.get(flow_id)
            if flow is None or flow.status.terminal:
                return False
            flow.status = status
            flow.failure_reason = reason
            flow.finished_at = self._clock()
        logger.debug("flow %s -> %s", flow_id, status.value)
        return True

    def evict(self, flow_id: str) -> None:
        with self._lock:
            self._flows.pop(flow_id, None)

    def expire_stale(self) -> list[str]:
        """
        Expire pending flows past their deadline and purge terminal flows older than the retention window.
        Returns the ids of flows expired by this call.
        """
        now = self._clock()
        expired = []
        with self._lock:
            for flow_id, flow in list(self._flows.items()):
                if flow.status is FlowStatus.PENDING and flow.expired(now):
                    flow.status = FlowStatus.EXPIRED
                    flow.failure_reason = "timed out"
                    # retention counts from the deadline, not from when the sweep noticed it
                    flow.finished_at = flow.expires_at
                    expired.append(flow_id)
                if flow.status.terminal and flow.finished_at is not None and now - flow.finished_at > self._retention:
                    del self._flows[flow_id]
        if expired:
            logger.info("expired %d pending sign-in flow(s)", len(expired))
        return expired

    def __len__(self) -> int:
        with self._lock:
            return len(self._flows)
