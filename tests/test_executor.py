"""Tests for the Graph client."""

import json

import httpx
import pytest
from tenacity import AsyncRetrying, RetryCallState

from gql_cms.core.auth import SingleKeyAuth
from gql_cms.core.errors import (
    APIError,
    AuthenticationError,
    GraphQLError,
    NotFoundError,
    RateLimitError,
    RequestTimeoutError,
    is_retryable,
)
from gql_cms.core.executor import GraphClient, retry_wait, with_retry

URL = "https://cg.example/content/v2"


class Recorder:
    """httpx handler that replays canned responses and records requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return httpx.Response(response.status_code, headers=response.headers, content=response.content)


class RecordingAuth:
    def __init__(self):
        self.calls = []

    def get_headers(self, method="POST", path="/", body=""):
        self.calls.append((method, path, body))
        return {"X-Test": "1"}


def make_client(handler, auth=None, max_retries=2):
    return GraphClient(
        URL,
        auth or SingleKeyAuth("key"),
        max_retries=max_retries,
        retry_delay=0,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
class TestGraphClientQuery:
    """Tests for successful requests."""

    async def test_returns_data(self):
        """Test the data envelope is unwrapped and the payload is complete."""
        handler = Recorder(httpx.Response(200, json={"data": {"_Content": {"total": 3}}}))
        async with make_client(handler) as client:
            data = await client.query("query Q($limit: Int) { x }", {"limit": 5, "skip": None}, "Q")
        assert data == {"_Content": {"total": 3}}

        request = handler.requests[0]
        payload = json.loads(request.content)
        assert payload == {"query": "query Q($limit: Int) { x }", "variables": {"limit": 5}, "operationName": "Q"}
        assert request.headers["Authorization"] == "epi-single key"
        assert request.headers["Content-Type"] == "application/json"

    async def test_auth_sees_path_and_body(self):
        """Test handlers receive what they need to sign the request."""
        auth = RecordingAuth()
        handler = Recorder(httpx.Response(200, json={"data": {}}))
        async with make_client(handler, auth=auth) as client:
            await client.query("{ x }")
        method, path, body = auth.calls[0]
        assert (method, path) == ("POST", "/content/v2")
        assert json.loads(body) == {"query": "{ x }"}
        assert handler.requests[0].headers["X-Test"] == "1"

    async def test_null_data(self):
        """Test a null data member reads as an empty dict."""
        async with make_client(Recorder(httpx.Response(200, json={"data": None}))) as client:
            assert await client.query("{ x }") == {}

    async def test_introspect(self):
        """Test introspection names its operation."""
        handler = Recorder(httpx.Response(200, json={"data": {"__schema": {"types": []}}}))
        async with make_client(handler) as client:
            result = await client.introspect()
        assert result == {"__schema": {"types": []}}
        assert json.loads(handler.requests[0].content)["operationName"] == "IntrospectionQuery"


@pytest.mark.asyncio
class TestGraphClientErrors:
    """Tests for failure classification and retry."""

    async def test_graphql_errors(self):
        """Test an errors array raises GraphQLError with every message."""
        body = {"data": None, "errors": [{"message": "bad field"}, {"message": "bad arg"}]}
        async with make_client(Recorder(httpx.Response(200, json=body))) as client:
            with pytest.raises(GraphQLError) as exc_info:
                await client.query("{ x }")
        assert str(exc_info.value) == "GraphQL errors: bad field; bad arg"
        assert len(exc_info.value.errors) == 2

    @pytest.mark.parametrize("status,error", [
        (401, AuthenticationError),
        (403, AuthenticationError),
        (404, NotFoundError),
        (400, APIError),
    ])
    async def test_status_mapping_not_retried(self, status, error):
        """Test client errors are classified and never retried."""
        handler = Recorder(httpx.Response(status, json={"message": "nope"}))
        async with make_client(handler) as client:
            with pytest.raises(error):
                await client.query("{ x }")
        assert len(handler.requests) == 1

    async def test_server_error_retried_then_succeeds(self):
        """Test a 5xx is retried."""
        handler = Recorder(
            httpx.Response(503, text="Service Unavailable"),
            httpx.Response(200, json={"data": {"ok": True}}),
        )
        async with make_client(handler) as client:
            assert await client.query("{ ok }") == {"ok": True}
        assert len(handler.requests) == 2

    async def test_retries_exhausted(self):
        """Test the last error surfaces after max_retries retries."""
        handler = Recorder(httpx.Response(500, json={"message": "boom"}))
        async with make_client(handler, max_retries=2) as client:
            with pytest.raises(APIError) as exc_info:
                await client.query("{ x }")
        assert exc_info.value.status_code == 500
        assert "boom" in exc_info.value.message
        assert len(handler.requests) == 3

    async def test_rate_limit(self):
        """Test 429 carries Retry-After and is retried."""
        handler = Recorder(httpx.Response(429, headers={"retry-after": "0"}, json={"message": "slow down"}))
        async with make_client(handler, max_retries=1) as client:
            with pytest.raises(RateLimitError):
                await client.query("{ x }")
        assert len(handler.requests) == 2

    async def test_timeout(self):
        """Test transport timeouts become RequestTimeoutError."""
        handler = Recorder(httpx.ReadTimeout("timed out"))
        async with make_client(handler, max_retries=1) as client:
            with pytest.raises(RequestTimeoutError) as exc_info:
                await client.query("{ x }")
        assert exc_info.value.code == "TIMEOUT"
        assert len(handler.requests) == 2

    async def test_connection_check(self):
        """Test test_connection reports failures as False."""
        async with make_client(Recorder(httpx.Response(500, json={})), max_retries=0) as client:
            assert await client.test_connection() is False
        async with make_client(Recorder(httpx.Response(200, json={"data": {"__typename": "Query"}}))) as client:
            assert await client.test_connection() is True


class TestErrors:
    """Tests for the error taxonomy."""

    def test_retryable(self):
        """Test which errors are retried."""
        assert is_retryable(APIError("x", 502))
        assert not is_retryable(APIError("x", 400))
        assert is_retryable(RateLimitError("x"))
        assert is_retryable(RequestTimeoutError("x", 1.0))
        assert not is_retryable(NotFoundError("x"))

    def test_format(self):
        """Test tool text rendering."""
        text = NotFoundError("Content not found", {"id": "abc"}).format()
        assert text.startswith("Error: Content not found\nCode: NOT_FOUND\nStatus: 404\nDetails:")
        assert '"id": "abc"' in text


def failed_attempt(error, attempt_number):
    """Retry state of an attempt that raised `error`."""
    state = RetryCallState(AsyncRetrying(), fn=None, args=(), kwargs={})
    state.attempt_number = attempt_number
    state.set_exception((type(error), error, None))
    return state


class TestRetryWait:
    """Tests for the backoff between attempts."""

    def test_exponential(self):
        """Test the delay doubles from the base delay."""
        wait = retry_wait(0.5)
        error = APIError("x", 503)
        assert [wait(failed_attempt(error, n)) for n in (1, 2, 3)] == [0.5, 1.0, 2.0]

    def test_retry_after_stretches_delay(self):
        """Test a longer Retry-After wins over the backoff."""
        wait = retry_wait(1.0)
        assert wait(failed_attempt(RateLimitError("slow down", 30.0), 1)) == 30.0
        assert wait(failed_attempt(RateLimitError("slow down", 0.5), 2)) == 2.0


@pytest.mark.asyncio
class TestWithRetry:
    """Tests for with_retry."""

    async def test_succeeds_after_retryable_failures(self):
        """Test the call is repeated until it succeeds."""
        calls = []

        async def call():
            calls.append(1)
            if len(calls) < 3:
                raise APIError("unavailable", 503)
            return "ok"

        assert await with_retry(call, max_retries=3, retry_delay=0, what="test") == "ok"
        assert len(calls) == 3

    async def test_non_retryable_raised_once(self):
        """Test errors outside the retry policy propagate unchanged."""
        calls = []

        async def call():
            calls.append(1)
            raise NotFoundError("gone")

        with pytest.raises(NotFoundError):
            await with_retry(call, max_retries=3, retry_delay=0, what="test")
        assert len(calls) == 1
