"""
Redirect callback handling: match the callback to its flow, check state, exchange the code.
Flow status is not changed here; SignInClient finishes the flow once the ID token is checked.
"""
import hmac
import logging
from dataclasses import dataclass

import httpx

from signin_client.errors import ErrorKind, SignInFailed
from signin_client.flow_store import FlowStore
from signin_client.models import SignInFlow, TokenResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExchangeRequest:
    flow: SignInFlow
    token_endpoint: str
    data: dict[str, str]
    timeout: float


def handle_callback(
    store: FlowStore,
    flow_id: str,
    received_state: str | None,
    code: str | None,
    error_param: str | None,
    error_description: str | None = None,
) -> ExchangeRequest:
    """
    Validate a provider redirect for flow_id and build the token exchange request.
    Raises SignInFailed: UnknownFlow, FlowExpired, ProviderDenied, StateMismatch, InvalidCallback.
    """
    flow = store.claim(flow_id)

    if error_param:
        logger.info("Provider returned error=%s for flow %s", error_param, flow_id)
        raise SignInFailed(ErrorKind.PROVIDER_DENIED, error_description or error_param)

    if not received_state or not hmac.compare_digest(received_state.encode(), flow.state.encode()):
        logger.warning("State mismatch on callback for flow %s", flow_id)
        raise SignInFailed(ErrorKind.STATE_MISMATCH, "Callback state does not match sign-in flow")

    if not code:
        raise SignInFailed(ErrorKind.INVALID_CALLBACK, "Missing code parameter")

    config = flow.config
    return ExchangeRequest(
        flow=flow,
        token_endpoint=config.token_url,
        data={
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": config.redirect_uri,
            "client_id": config.client_id,
            "code_verifier": flow.code_verifier,
        },
        timeout=config.timeout,
    )


def _post(request: ExchangeRequest) -> httpx.Response:
    """POST the exchange; one retry on transport failure."""
    last_error: httpx.HTTPError | None = None
    for attempt in (1, 2):
        try:
            return httpx.post(
                request.token_endpoint,
                data=request.data,
                headers={"Accept": "application/json"},
                timeout=request.timeout,
            )
        except httpx.HTTPError as e:
            logger.warning("Token exchange attempt %d for flow %s failed: %s", attempt, request.flow.flow_id, e)
            last_error = e
    raise SignInFailed(ErrorKind.NETWORK_FAILURE, "Token endpoint unreachable", cause=last_error)


def exchange_code(request: ExchangeRequest) -> TokenResponse:
    """Exchange the authorization code for tokens. Raises SignInFailed."""
    r = _post(request)
    is_json = r.headers.get("content-type", "").startswith("application/json")

    if r.status_code >= 500:
        raise SignInFailed(ErrorKind.NETWORK_FAILURE, f"Token endpoint returned {r.status_code}")
    if r.status_code != 200:
        err = {}
        if is_json:
            try:
                body = r.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                # FastAPI-style servers nest the OAuth error under "detail"
                err = body.get("detail") if isinstance(body.get("detail"), dict) else body
        err_desc = err.get("error_description") or err.get("error") or "Token exchange failed"
        logger.info("Token endpoint rejected code for flow %s: %s", request.flow.flow_id, err.get("error"))
        raise SignInFailed(ErrorKind.PROVIDER_DENIED, str(err_desc))

    try:
        data = r.json()
    except ValueError as e:
        raise SignInFailed(ErrorKind.MALFORMED_TOKEN, "Token response is not JSON", cause=e)
    return TokenResponse.from_json(data)
