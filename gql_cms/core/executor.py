"""GraphQL client for the content-delivery Graph API.

Handles HTTP communication, authentication, retry with backoff and
classification of failures into the errors of `gql_cms.core.errors`.
"""

import json
from typing import Any
from urllib.parse import urlparse

import httpx
from graphql import get_introspection_query
from pydantic import BaseModel
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_exponential

from ..logging_config import get_logger
from .auth import Auth
from .errors import (
    APIError,
    AuthenticationError,
    CmsError,
    GraphQLError,
    NotFoundError,
    RateLimitError,
    RequestTimeoutError,
    is_retryable,
)

logger = get_logger("graph_client")


def raise_for_response(response: httpx.Response) -> None:
    """Translate an unsuccessful HTTP response into a CmsError."""
    if response.is_success:
        return

    try:
        body: Any = response.json()
    except ValueError:
        body = {"message": response.text}
    if not isinstance(body, dict):
        body = {"body": body}
    message = body.get("message") or body.get("error") or response.reason_phrase

    status = response.status_code
    if status == 401:
        raise AuthenticationError(message, body)
    if status == 403:
        raise AuthenticationError(f"Forbidden: {message}", body)
    if status == 404:
        raise NotFoundError(f"Not found: {message}", body)
    if status == 429:
        retry_after = response.headers.get("retry-after")
        raise RateLimitError(
            f"Rate limited: {message}",
            float(retry_after) if retry_after and retry_after.isdigit() else None,
        )
    raise APIError(f"API error ({status}): {message}", status, body)


def retry_wait(retry_delay: float):
    """Exponential backoff from `retry_delay`, stretched to a server's Retry-After."""
    backoff = wait_exponential(multiplier=retry_delay)

    def wait(retry_state: RetryCallState) -> float:
        delay = backoff(retry_state)
        error = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(error, RateLimitError) and error.retry_after:
            delay = max(delay, error.retry_after)
        return delay

    return wait


async def with_retry(call, *, max_retries: int, retry_delay: float, what: str):
    """Run `call()` retrying retryable CmsErrors with exponential backoff."""

    def log_retry(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception()
        logger.warning(
            f"{what} failed ({error.code}), retry {retry_state.attempt_number}/{max_retries} "
            f"in {retry_state.next_action.sleep:.1f}s"
        )

    retrying = AsyncRetrying(
        retry=retry_if_exception(is_retryable),
        stop=stop_after_attempt(max_retries + 1),
        wait=retry_wait(retry_delay),
        before_sleep=log_retry,
        reraise=True,
    )
    return await retrying(call)


class GraphClient:
    """Executes GraphQL documents against the Graph endpoint.

    Examples:
        client = GraphClient(url, auth=SingleKeyAuth(key))
        data = await client.query("query { __typename }")
        schema = await client.introspect()
    """

    def __init__(
        self,
        url: str,
        auth: Auth,
        *,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            url: GraphQL endpoint URL
            auth: Authentication handler (implements Auth protocol)
            timeout: Request timeout in seconds
            max_retries: Retries for timeouts, rate limits and 5xx responses
            retry_delay: Base delay of the exponential backoff, in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.url = url
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._auth = auth
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._path = urlparse(url).path or "/"

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Content-Type": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GraphClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def query(
        self,
        query: str,
        variables: dict[str, Any] | None = None,
        operation_name: str | None = None,
    ) -> dict[str, Any]:
        """Execute a GraphQL document.

        Args:
            query: GraphQL document
            variables: Query variables
            operation_name: Operation to run when the document has several

        Returns:
            The 'data' portion of the response

        Raises:
            GraphQLError: If the response contains errors
            CmsError: For HTTP level failures (after retries)
        """
        payload: dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = self._serialize_variables(variables)
        if operation_name:
            payload["operationName"] = operation_name
        body = json.dumps(payload)

        async def send() -> dict[str, Any]:
            client = await self._get_client()
            headers = self._auth.get_headers("POST", self._path, body)
            logger.debug(f"POST {self.url} operation={operation_name} length={len(query)}")
            try:
                response = await client.post(self.url, content=body, headers=headers)
            except httpx.TimeoutException as e:
                raise RequestTimeoutError(f"Request timed out after {self.timeout}s", self.timeout) from e
            raise_for_response(response)
            return response.json()

        result = await with_retry(
            send,
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
            what=f"GraphQL request {operation_name or ''}".strip(),
        )

        if result.get("errors"):
            error_messages = "; ".join(e.get("message", str(e)) for e in result["errors"])
            raise GraphQLError(f"GraphQL errors: {error_messages}", result["errors"])

        return result.get("data") or {}

    async def introspect(self) -> dict[str, Any]:
        """Fetch the full introspection result (`{"__schema": ...}`)."""
        return await self.query(get_introspection_query(descriptions=True), operation_name="IntrospectionQuery")

    async def test_connection(self) -> bool:
        """Check that the endpoint answers a trivial query."""
        try:
            await self.query("query TestConnection { __typename }")
            return True
        except CmsError as e:
            logger.error(f"GraphQL connection test failed: {e}")
            return False

    def _serialize_variables(self, variables: dict[str, Any]) -> dict[str, Any]:
        """Serialize variables for the request, converting Pydantic models to dicts."""
        result = {}
        for key, value in variables.items():
            if value is None:
                continue  # Skip None values
            if isinstance(value, BaseModel):
                result[key] = value.model_dump(by_alias=True, exclude_none=True)
            elif isinstance(value, list):
                result[key] = [
                    v.model_dump(by_alias=True, exclude_none=True) if isinstance(v, BaseModel) else v
                    for v in value
                ]
            else:
                result[key] = value
        return result
