"""Exception taxonomy shared by the clients, the engine and the tools."""

import json
from typing import Any


class CmsError(Exception):
    """Base class for every error raised by gql-cms."""

    code = "CMS_ERROR"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    def format(self) -> str:
        """Render the error as tool output text."""
        lines = [f"Error: {self.message}", f"Code: {self.code}"]
        if self.status_code:
            lines.append(f"Status: {self.status_code}")
        if self.details:
            lines.append(f"Details: {json.dumps(self.details, indent=2, default=str)}")
        return "\n".join(lines)


class AuthenticationError(CmsError):
    code = "AUTHENTICATION_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status_code=401, details=details)


class APIError(CmsError):
    code = "API_ERROR"

    def __init__(self, message: str, status_code: int, details: dict[str, Any] | None = None):
        super().__init__(message, status_code=status_code, details=details)


class NotFoundError(APIError):
    code = "NOT_FOUND"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, 404, details)


class RateLimitError(APIError):
    code = "RATE_LIMIT"

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message, 429, {"retryAfter": retry_after})
        self.retry_after = retry_after


class RequestTimeoutError(CmsError):
    code = "TIMEOUT"

    def __init__(self, message: str, timeout: float):
        super().__init__(message, status_code=408, details={"timeout": timeout})
        self.timeout = timeout


class GraphQLError(CmsError):
    """The endpoint answered with a GraphQL `errors` array."""

    code = "GRAPHQL_ERROR"

    def __init__(self, message: str, errors: list[dict[str, Any]]):
        super().__init__(message, status_code=400, details={"errors": errors})
        self.errors = errors


class ValidationError(CmsError):
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status_code=400, details=details)


class QueryCapabilityError(CmsError):
    """The schema lacks something every generated query depends on."""

    code = "QUERY_CAPABILITY_ERROR"

    def __init__(self, capability: str, message: str):
        super().__init__(message, details={"capability": capability})
        self.capability = capability


def is_retryable(error: Exception) -> bool:
    """Retry on rate limits, timeouts and 5xx responses."""
    if isinstance(error, (RateLimitError, RequestTimeoutError)):
        return True
    if isinstance(error, APIError):
        return error.status_code is not None and error.status_code >= 500
    return False
