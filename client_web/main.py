"""
Sign-in host: hands the authorization URL to the browser and delivers the redirect back to SignInClient.
GET /start-login, /callback; POST /cancel-login. Results are JSON; no UI.
"""
import logging
from functools import lru_cache

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse

from client_web.config import COOKIE_SECURE, FLOW_COOKIE, HOST, PORT
from signin_client.client import SignInClient
from signin_client.config import DISCOVERY
from signin_client.discovery import discover_config
from signin_client.errors import ErrorKind, SignInError, SignInFailed
from signin_client.events import EVENT_DEBUG
from signin_client.models import SignInConfig

logger = logging.getLogger(__name__)

app = FastAPI(title="Sign-In Client", version="0.1.0")

signin = SignInClient()
signin.events.subscribe(EVENT_DEBUG, lambda message: logger.debug("signin: %s", message))


def _error_response(error: SignInError) -> JSONResponse:
    if error.is_security_violation:
        status_code = 403
    elif error.is_transient and error.kind is not ErrorKind.FLOW_EXPIRED:
        status_code = 502
    else:
        status_code = 400
    return JSONResponse(error.to_dict(), status_code=status_code)


@lru_cache(maxsize=1)
def _signin_config() -> SignInConfig:
    """Client settings from the environment; endpoints from provider discovery when OAUTH_DISCOVERY is set."""
    config = SignInConfig.from_env()
    if DISCOVERY:
        config = discover_config(config)
        logger.info("Provider endpoints discovered for %s", config.issuer)
    return config


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "client_web"}


@app.get("/start-login")
def start_login():
    """
    Begin a sign-in flow; remember its flow_id in a cookie and redirect to the provider.
    """
    try:
        config = _signin_config()
        flow_id, url = signin.begin_sign_in(config)
    except SignInFailed as e:
        logger.error("Cannot start sign-in: %s", e.error.message)
        if e.kind is ErrorKind.INVALID_CONFIG:
            return JSONResponse(e.error.to_dict(), status_code=500)
        return _error_response(e.error)

    response = RedirectResponse(url=url, status_code=302)
    response.set_cookie(
        FLOW_COOKIE,
        flow_id,
        max_age=int(config.timeout) + 1,
        httponly=True,
        samesite="lax",
        secure=COOKIE_SECURE,
    )
    return response


@app.get("/callback")
def callback(request: Request):
    """
    Redirect target: ?code=...&state=... or ?error=...&state=...
    Returns the verified identity, or the typed error.
    """
    flow_id = request.cookies.get(FLOW_COOKIE, "")
    result = signin.complete_sign_in(flow_id, dict(request.query_params))

    if isinstance(result, SignInError):
        response = _error_response(result)
    else:
        response = JSONResponse({"status": "ok", "identity": result.to_dict()})
    response.delete_cookie(FLOW_COOKIE)
    return response


@app.post("/cancel-login")
def cancel_login(request: Request):
    """Abandon the pending flow named by the cookie."""
    flow_id = request.cookies.get(FLOW_COOKIE, "")
    cancelled = signin.cancel(flow_id) if flow_id else False
    response = JSONResponse({"cancelled": cancelled})
    response.delete_cookie(FLOW_COOKIE)
    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "client_web.main:app",
        host=HOST,
        port=PORT,
        reload=True,
    )
