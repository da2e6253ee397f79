"""
SignInClient: begin_sign_in / complete_sign_in over the flow store, callback handler and ID token validator.

complete_sign_in never raises; it returns an IdentityToken or a SignInError. Notifications are tied to
the flow's single terminal transition, so each flow produces exactly one LoginSuccess or LoginError.
"""
import logging
import time
from typing import Callable, Mapping

from signin_client.callback import exchange_code, handle_callback
from signin_client.errors import ErrorKind, SignInError, SignInFailed
from signin_client.events import EVENT_DEBUG, EVENT_LOGIN_ERROR, EVENT_LOGIN_SUCCESS, EventDispatcher
from signin_client.flow_store import FlowStore
from signin_client.jwks import JwksCache, get_key_cache
from signin_client.models import IdentityToken, SignInConfig
from signin_client.pkce import build_authorization_url
from signin_client.validator import validate_id_token

logger = logging.getLogger(__name__)


def _key_cache_for(config: SignInConfig) -> JwksCache:
    return get_key_cache(config.jwks_url, fallback_uri=config.fallback_jwks_uri, timeout=config.timeout)


class SignInClient:
    def __init__(
        self,
        store: FlowStore | None = None,
        events: EventDispatcher | None = None,
        *,
        key_cache_for: Callable[[SignInConfig], JwksCache] = _key_cache_for,
        clock: Callable[[], float] = time.time,
    ):
        # FlowStore defines __len__, so an empty store is falsy
        self.store = store if store is not None else FlowStore()
        self.events = events if events is not None else EventDispatcher()
        self._key_cache_for = key_cache_for
        self._clock = clock

    def _debug(self, message: str) -> None:
        logger.debug(message)
        self.events.dispatch(EVENT_DEBUG, message)

    def begin_sign_in(self, config: SignInConfig) -> tuple[str, str]:
        """
        Create a flow and its authorization URL. Returns (flow_id, authorization_url).
        Raises SignInFailed(InvalidConfig); no flow is left behind in that case.
        Timed-out flows are expired and old finished flows purged first.
        """
        self.expire_stale()
        flow = self.store.create(config)
        try:
            url = build_authorization_url(
                config.client_id,
                config.redirect_uri,
                config.scopes,
                flow,
                endpoint=config.authorize_url,
            )
        except SignInFailed:
            self.store.evict(flow.flow_id)
            raise
        logger.info("Sign-in started: flow %s client_id=%s", flow.flow_id, config.client_id)
        self._debug(f"Authorization request built for flow {flow.flow_id}")
        return flow.flow_id, url

    def complete_sign_in(self, flow_id: str, callback_params: Mapping[str, str]) -> IdentityToken | SignInError:
        """Finish flow_id from the redirect's query parameters (state, code, or error)."""
        self._debug(f"Callback received for flow {flow_id}")
        try:
            request = handle_callback(
                self.store,
                flow_id,
                received_state=callback_params.get("state"),
                code=callback_params.get("code"),
                error_param=callback_params.get("error"),
                error_description=callback_params.get("error_description"),
            )
            self._debug(f"Exchanging authorization code for flow {flow_id}")
            tokens = exchange_code(request)
            config = request.flow.config
            self._debug(f"Verifying ID token for flow {flow_id}")
            identity = validate_id_token(
                tokens,
                request.flow,
                config.issuer,
                config.expected_audience,
                key_cache=self._key_cache_for(config),
                algorithms=config.algorithms,
                leeway=config.clock_skew,
                now=self._clock(),
            )
        except SignInFailed as e:
            return self._fail(flow_id, e.error)
        except Exception as e:
            logger.exception("Unexpected error completing flow %s", flow_id)
            return self._fail(flow_id, SignInError(ErrorKind.INTERNAL, "Unexpected sign-in error", cause=e))

        if not self.store.complete(flow_id):
            # Cancelled or swept while the exchange was in flight; that path already notified
            return SignInError(ErrorKind.UNKNOWN_FLOW, "Sign-in flow ended before completion")
        logger.info("Sign-in completed: flow %s sub=%s", flow_id, identity.subject)
        self.events.dispatch(EVENT_LOGIN_SUCCESS, identity)
        return identity

    def cancel(self, flow_id: str) -> bool:
        """Abandon a pending flow. True if it was pending."""
        error = SignInError(ErrorKind.CANCELLED, "Sign-in cancelled")
        if not self.store.fail(flow_id, error.message):
            return False
        logger.info("Sign-in cancelled: flow %s", flow_id)
        self.events.dispatch(EVENT_LOGIN_ERROR, error)
        return True

    def expire_stale(self) -> list[str]:
        """Expire pending flows past their deadline and notify LoginError(FlowExpired) for each."""
        expired = self.store.expire_stale()
        for flow_id in expired:
            self.events.dispatch(EVENT_LOGIN_ERROR, SignInError(ErrorKind.FLOW_EXPIRED, "Sign-in flow expired"))
        return expired

    def _fail(self, flow_id: str, error: SignInError) -> SignInError:
        if error.kind is ErrorKind.UNKNOWN_FLOW:
            # Not ours to finish: absent, already finished, or owned by another callback
            transitioned = False
        elif error.kind is ErrorKind.FLOW_EXPIRED:
            transitioned = self.store.expire(flow_id)
        else:
            transitioned = self.store.fail(flow_id, error.message)

        if error.is_security_violation:
            logger.warning("Sign-in security check failed: flow %s kind=%s", flow_id, error.kind.value)
        else:
            logger.info("Sign-in failed: flow %s kind=%s", flow_id, error.kind.value)
        if transitioned:
            self.events.dispatch(EVENT_LOGIN_ERROR, error)
        return error
