"""Authentication handlers for the content-delivery Graph API.

Provides pluggable authentication via the Auth protocol. Handlers receive
the request method, path and body so signing schemes (HMAC) can be
computed per request.
"""

import base64
import hashlib
import hmac
import secrets
from datetime import datetime, timezone
from typing import Dict, Protocol, runtime_checkable


@runtime_checkable
class Auth(Protocol):
    """Protocol for authentication handlers.

    Example:
        class TenantAuth:
            def __init__(self, token: str, tenant: str):
                self.token = token
                self.tenant = tenant

            def get_headers(self, method="POST", path="/", body=""):
                return {
                    "Authorization": f"Bearer {self.token}",
                    "X-Tenant": self.tenant,
                }
    """

    def get_headers(self, method: str = "POST", path: str = "/", body: str = "") -> Dict[str, str]:
        """Return headers to include in a request."""
        ...


class SingleKeyAuth:
    """Graph single-key authentication (`epi-single <key>`).

    Example:
        auth = SingleKeyAuth("abc123")
    """

    def __init__(self, single_key: str):
        self.single_key = single_key

    def get_headers(self, method: str = "POST", path: str = "/", body: str = "") -> Dict[str, str]:
        return {"Authorization": f"epi-single {self.single_key}"}


class HmacAuth:
    """HMAC-SHA256 request signing.

    The signature covers method, path, timestamp, nonce and body, one per
    line, and is sent base64 encoded.

    Example:
        auth = HmacAuth(app_key="key", secret="secret")
    """

    def __init__(self, app_key: str, secret: str):
        self.app_key = app_key
        self.secret = secret

    def sign(self, method: str, path: str, timestamp: str, nonce: str, body: str = "") -> str:
        base = "\n".join([method.upper(), path, timestamp, nonce, body or ""])
        digest = hmac.new(self.secret.encode(), base.encode(), hashlib.sha256).digest()
        return base64.b64encode(digest).decode()

    def get_headers(self, method: str = "POST", path: str = "/", body: str = "") -> Dict[str, str]:
        timestamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        nonce = secrets.token_hex(16)
        return {
            "X-App-Key": self.app_key,
            "X-Timestamp": timestamp,
            "X-Nonce": nonce,
            "X-HMAC-SHA256": self.sign(method, path, timestamp, nonce, body),
        }


class BearerAuth:
    """Bearer token authentication (also used for OIDC tokens).

    Example:
        auth = BearerAuth("eyJhbGciOiJIUzI1NiIs...")
    """

    def __init__(self, token: str):
        self.token = token

    def get_headers(self, method: str = "POST", path: str = "/", body: str = "") -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


class BasicAuth:
    """HTTP Basic authentication.

    Example:
        auth = BasicAuth("user", "pass")
    """

    def __init__(self, username: str, password: str):
        self.username = username
        self.password = password

    def get_headers(self, method: str = "POST", path: str = "/", body: str = "") -> Dict[str, str]:
        credentials = f"{self.username}:{self.password}"
        encoded = base64.b64encode(credentials.encode()).decode()
        return {"Authorization": f"Basic {encoded}"}


class NoAuth:
    """No authentication (public endpoints or testing)."""

    def get_headers(self, method: str = "POST", path: str = "/", body: str = "") -> Dict[str, str]:
        return {}
