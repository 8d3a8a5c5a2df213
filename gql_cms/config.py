"""Settings for gql-cms, read from environment variables.

The CLI loads a `.env` file (python-dotenv) before calling
`Settings.from_env()`.
"""

import os
from pathlib import Path
from typing import Literal, Mapping

from pydantic import BaseModel, Field, field_validator, model_validator

from .core.auth import Auth, BasicAuth, BearerAuth, HmacAuth, NoAuth, SingleKeyAuth

AuthMethod = Literal["single_key", "hmac", "basic", "bearer", "none"]

DEFAULT_CACHE_DIR = ".cache/gql-cms"


class GraphSettings(BaseModel):
    """Content-delivery Graph API."""
    endpoint: str
    auth_method: AuthMethod = "single_key"
    single_key: str | None = None
    app_key: str | None = None
    secret: str | None = None
    username: str | None = None
    password: str | None = None
    token: str | None = None

    @field_validator("endpoint")
    @classmethod
    def _check_endpoint(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("GRAPH_ENDPOINT must be an http(s) URL")
        return value

    @model_validator(mode="after")
    def _check_credentials(self) -> "GraphSettings":
        required = {
            "single_key": ("single_key",),
            "hmac": ("app_key", "secret"),
            "basic": ("username", "password"),
            "bearer": ("token",),
            "none": (),
        }[self.auth_method]
        missing = [name for name in required if not getattr(self, name)]
        if missing:
            raise ValueError(f"auth method {self.auth_method!r} requires {', '.join(missing)}")
        return self


class CmaSettings(BaseModel):
    """Content-management REST API (optional)."""
    base_url: str
    client_id: str
    client_secret: str
    grant_type: str = "client_credentials"
    scope: str = "api:admin"
    token_endpoint: str | None = None


class OptionsSettings(BaseModel):
    cache_dir: Path = Path(DEFAULT_CACHE_DIR)
    max_retries: int = Field(default=3, ge=0)
    timeout: float = Field(default=30.0, gt=0)
    log_level: str = "INFO"
    log_file: str | None = None


class Settings(BaseModel):
    graph: GraphSettings
    cma: CmaSettings | None = None
    options: OptionsSettings = Field(default_factory=OptionsSettings)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from environment variables.

        The CMA section is present only when CMA_BASE_URL, CMA_CLIENT_ID and
        CMA_CLIENT_SECRET are all set.

        Raises:
            pydantic.ValidationError: On missing or malformed values
        """
        env = os.environ if env is None else env

        def get(name: str) -> str | None:
            value = env.get(name)
            return value if value else None

        graph = {
            "endpoint": get("GRAPH_ENDPOINT") or "",
            "auth_method": (get("GRAPH_AUTH_METHOD") or "single_key").lower(),
            "single_key": get("GRAPH_SINGLE_KEY"),
            "app_key": get("GRAPH_APP_KEY"),
            "secret": get("GRAPH_SECRET"),
            "username": get("GRAPH_USERNAME"),
            "password": get("GRAPH_PASSWORD"),
            "token": get("GRAPH_TOKEN"),
        }

        cma = None
        if get("CMA_BASE_URL") and get("CMA_CLIENT_ID") and get("CMA_CLIENT_SECRET"):
            cma = {
                "base_url": get("CMA_BASE_URL"),
                "client_id": get("CMA_CLIENT_ID"),
                "client_secret": get("CMA_CLIENT_SECRET"),
                "grant_type": get("CMA_GRANT_TYPE") or "client_credentials",
                "scope": get("CMA_SCOPE") or "api:admin",
                "token_endpoint": get("CMA_TOKEN_ENDPOINT"),
            }

        options = {
            key: value
            for key, value in {
                "cache_dir": get("CACHE_DIR"),
                "max_retries": get("MAX_RETRIES"),
                "timeout": get("TIMEOUT"),
                "log_level": get("LOG_LEVEL"),
                "log_file": get("LOG_FILE"),
            }.items()
            if value is not None
        }
        return cls.model_validate({"graph": graph, "cma": cma, "options": options})


def build_graph_auth(graph: GraphSettings) -> Auth:
    """Auth handler for the configured Graph auth method."""
    if graph.auth_method == "single_key":
        return SingleKeyAuth(graph.single_key)
    if graph.auth_method == "hmac":
        return HmacAuth(graph.app_key, graph.secret)
    if graph.auth_method == "basic":
        return BasicAuth(graph.username, graph.password)
    if graph.auth_method == "bearer":
        return BearerAuth(graph.token)
    return NoAuth()
