"""Read-only client for the REST content-management API (CMA).

Authenticates with the OAuth client-credentials grant and caches the
access token until one minute before it expires.
"""

import time
from typing import Any, Callable

import httpx

from ..logging_config import get_logger
from .errors import AuthenticationError, CmsError, RequestTimeoutError, ValidationError
from .executor import raise_for_response, with_retry

logger = get_logger("cma_client")

TOKEN_EXPIRY_BUFFER = 60  # seconds


class ContentManagementClient:
    """GET access to the CMA with automatic token handling.

    Example:
        async with ContentManagementClient(base_url, client_id, client_secret) as cma:
            types = await cma.list_content_types()
    """

    def __init__(
        self,
        base_url: str,
        client_id: str,
        client_secret: str,
        *,
        grant_type: str = "client_credentials",
        scope: str = "api:admin",
        token_endpoint: str | None = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the client.

        Args:
            base_url: API root, e.g. https://api.cms.example/preview3
            client_id: OAuth client id
            client_secret: OAuth client secret
            grant_type: OAuth grant type
            scope: OAuth scope
            token_endpoint: Token URL (defaults to <base_url>/oauth/token)
            timeout: Request timeout in seconds
            max_retries: Retries for timeouts, rate limits and 5xx responses
            retry_delay: Base delay of the exponential backoff
            transport: Optional httpx transport (used by tests)
            clock: Monotonic time source for token expiry
        """
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.grant_type = grant_type
        self.scope = scope
        self.token_endpoint = token_endpoint or f"{self.base_url}/oauth/token"
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._transport = transport
        self._clock = clock
        self._client: httpx.AsyncClient | None = None
        self._access_token: str | None = None
        self._token_expiry = 0.0

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ContentManagementClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    @property
    def has_valid_token(self) -> bool:
        return self._access_token is not None and self._clock() < self._token_expiry

    async def _ensure_token(self) -> str:
        if not self.has_valid_token:
            await self._authenticate()
        return self._access_token

    async def _authenticate(self) -> None:
        logger.info("Authenticating with Content Management API")
        client = await self._get_client()
        form = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": self.grant_type,
            "scope": self.scope,
        }
        try:
            response = await client.post(self.token_endpoint, data=form)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"Token request timed out after {self.timeout}s", self.timeout) from e
        except httpx.HTTPError as e:
            raise AuthenticationError(f"Failed to authenticate: {e}") from e

        if not response.is_success:
            raise AuthenticationError(
                f"Authentication failed: {response.reason_phrase}",
                {"status": response.status_code, "body": response.text},
            )
        token = response.json()
        if not token.get("access_token"):
            raise AuthenticationError("Token response has no access_token")

        self._access_token = token["access_token"]
        expires_in = float(token.get("expires_in", 3600))
        self._token_expiry = self._clock() + max(expires_in - TOKEN_EXPIRY_BUFFER, 0)
        logger.info(f"Authentication successful (expires in {expires_in:.0f}s)")

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET `<base_url><path>` and return the decoded body.

        Raises:
            AuthenticationError: On token failure or 401/403 (token is dropped)
            NotFoundError: On 404
            ValidationError: On 400
            CmsError: Other HTTP failures after retries
        """
        url = f"{self.base_url}{path}"

        async def send() -> Any:
            token = await self._ensure_token()
            client = await self._get_client()
            logger.debug(f"GET {url}")
            try:
                response = await client.get(
                    url,
                    params=params,
                    headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
                )
            except httpx.TimeoutException as e:
                raise RequestTimeoutError(f"Request timed out after {self.timeout}s", self.timeout) from e

            if response.status_code == 401:
                self._access_token = None
                raise AuthenticationError("Token expired or invalid")
            if response.status_code == 400:
                try:
                    details = response.json()
                except ValueError:
                    details = {"body": response.text}
                raise ValidationError("Validation failed", details if isinstance(details, dict) else {"body": details})
            raise_for_response(response)

            if response.status_code == 204 or not response.content:
                return {}
            if "application/json" in response.headers.get("content-type", ""):
                return response.json()
            return response.text

        return await with_retry(send, max_retries=self.max_retries, retry_delay=self.retry_delay, what=f"GET {path}")

    async def list_content_types(self) -> list[dict[str, Any]]:
        """All content type definitions (`/contentTypes`)."""
        data = await self.get("/contentTypes")
        if isinstance(data, dict):
            return list(data.get("items") or [])
        return list(data or [])

    async def get_content_type(self, key: str) -> dict[str, Any]:
        """One content type definition, including its `properties`."""
        return await self.get(f"/contentTypes/{key}")

    async def test_connection(self) -> bool:
        try:
            await self.list_content_types()
            return True
        except CmsError as e:
            logger.error(f"CMA connection test failed: {e}")
            return False
