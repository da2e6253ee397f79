"""
Embedding host configuration. Provider/client settings live in signin_client.config.
"""
import os

# Cookie that carries the flow_id from /start-login to /callback
FLOW_COOKIE = os.environ.get("SIGNIN_FLOW_COOKIE", "signin_flow")

# Set when served over HTTPS so the flow cookie is never sent in clear
COOKIE_SECURE = os.environ.get("SIGNIN_COOKIE_SECURE", "").lower() in ("1", "true", "yes")

HOST = os.environ.get("SIGNIN_HOST", "127.0.0.1")
PORT = int(os.environ.get("SIGNIN_PORT", "8000"))
