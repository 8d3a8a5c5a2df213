"""Tests for the content-management API client."""

from urllib.parse import parse_qs

import httpx
import pytest

from gql_cms.core.cma import ContentManagementClient
from gql_cms.core.errors import AuthenticationError, NotFoundError, ValidationError

BASE = "https://api.cms.example/preview3"


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class CmaServer:
    """Routes token and content-type requests; counts token grants."""

    def __init__(self, *, expires_in=3600, token_status=200, routes=None):
        self.expires_in = expires_in
        self.token_status = token_status
        self.routes = routes or {}
        self.token_requests = []
        self.api_requests = []

    def __call__(self, request):
        if request.url.path.endswith("/oauth/token"):
            self.token_requests.append(parse_qs(request.content.decode()))
            if self.token_status != 200:
                return httpx.Response(self.token_status, text="invalid_client")
            n = len(self.token_requests)
            return httpx.Response(200, json={"access_token": f"token-{n}", "expires_in": self.expires_in})
        self.api_requests.append(request)
        response = self.routes.get(request.url.path, httpx.Response(404, json={"message": "missing"}))
        return httpx.Response(response.status_code, headers=response.headers, content=response.content)


def make_client(server, clock=None, **kwargs):
    return ContentManagementClient(
        BASE,
        "client",
        "secret",
        retry_delay=0,
        transport=httpx.MockTransport(server),
        clock=clock or FakeClock(),
        **kwargs,
    )


@pytest.mark.asyncio
class TestTokenHandling:
    """Tests for the client-credentials flow."""

    async def test_token_request_form(self):
        """Test the grant is posted as a form to the default endpoint."""
        server = CmaServer(routes={"/preview3/contentTypes": httpx.Response(200, json={"items": []})})
        async with make_client(server) as cma:
            assert cma.token_endpoint == f"{BASE}/oauth/token"
            await cma.list_content_types()
        form = server.token_requests[0]
        assert form["client_id"] == ["client"]
        assert form["client_secret"] == ["secret"]
        assert form["grant_type"] == ["client_credentials"]
        assert form["scope"] == ["api:admin"]
        assert server.api_requests[0].headers["Authorization"] == "Bearer token-1"

    async def test_token_reused_until_buffer(self):
        """Test the token is refreshed one minute before it expires."""
        clock = FakeClock()
        server = CmaServer(expires_in=120, routes={"/preview3/contentTypes": httpx.Response(200, json=[])})
        async with make_client(server, clock) as cma:
            await cma.list_content_types()
            clock.now = 59
            await cma.list_content_types()
            assert len(server.token_requests) == 1
            clock.now = 60
            assert not cma.has_valid_token
            await cma.list_content_types()
        assert len(server.token_requests) == 2
        assert server.api_requests[-1].headers["Authorization"] == "Bearer token-2"

    async def test_token_failure(self):
        """Test a rejected grant raises AuthenticationError."""
        server = CmaServer(token_status=401)
        async with make_client(server) as cma:
            with pytest.raises(AuthenticationError) as exc_info:
                await cma.get_content_type("ArticlePage")
        assert exc_info.value.details["status"] == 401
        assert server.api_requests == []

    async def test_401_drops_token(self):
        """Test an API 401 clears the cached token."""
        server = CmaServer(routes={"/preview3/contentTypes/ArticlePage": httpx.Response(401)})
        async with make_client(server) as cma:
            with pytest.raises(AuthenticationError):
                await cma.get_content_type("ArticlePage")
            assert not cma.has_valid_token


@pytest.mark.asyncio
class TestContentTypes:
    """Tests for the content-type endpoints."""

    async def test_list_items_envelope(self):
        """Test both `{"items": [...]}` and bare list bodies."""
        items = [{"key": "ArticlePage"}]
        server = CmaServer(routes={"/preview3/contentTypes": httpx.Response(200, json={"items": items})})
        async with make_client(server) as cma:
            assert await cma.list_content_types() == items

    async def test_get_content_type(self):
        """Test a definition is returned as decoded JSON."""
        definition = {"key": "ArticlePage", "properties": {"Title": {"dataType": "String"}}}
        server = CmaServer(routes={"/preview3/contentTypes/ArticlePage": httpx.Response(200, json=definition)})
        async with make_client(server) as cma:
            assert await cma.get_content_type("ArticlePage") == definition
        assert server.api_requests[0].headers["Accept"] == "application/json"

    async def test_not_found(self):
        """Test 404 raises NotFoundError."""
        async with make_client(CmaServer()) as cma:
            with pytest.raises(NotFoundError):
                await cma.get_content_type("Missing")

    async def test_bad_request(self):
        """Test 400 raises ValidationError with the body as details."""
        server = CmaServer(routes={"/preview3/contentTypes/x": httpx.Response(400, json={"title": "bad key"})})
        async with make_client(server) as cma:
            with pytest.raises(ValidationError) as exc_info:
                await cma.get_content_type("x")
        assert exc_info.value.details == {"title": "bad key"}

    async def test_empty_body(self):
        """Test 204 decodes to an empty dict."""
        server = CmaServer(routes={"/preview3/ping": httpx.Response(204)})
        async with make_client(server) as cma:
            assert await cma.get("/ping") == {}

    async def test_server_error_retried(self):
        """Test 5xx responses are retried up to max_retries."""
        server = CmaServer(routes={"/preview3/contentTypes": httpx.Response(502, json={"message": "bad gateway"})})
        async with make_client(server, max_retries=2) as cma:
            assert await cma.test_connection() is False
        assert len(server.api_requests) == 3
