"""
Jira OAuth client configuration.
Read once from the environment (and an optional .env file) into an immutable Settings value
that is passed explicitly to the app, workflow and API client.
"""
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from jira_client_web.errors import ConfigurationError

REQUIRED_ENV_VARS = (
    "ATLASSIAN_CLIENT_ID",
    "ATLASSIAN_CLIENT_SECRET",
    "CALLBACK_URL",
    "SESSION_SECRET",
)

# Atlassian 3LO endpoints
DEFAULT_AUTHORIZATION_URL = "https://auth.atlassian.com/authorize"
DEFAULT_TOKEN_URL = "https://auth.atlassian.com/oauth/token"
DEFAULT_API_BASE_URL = "https://api.atlassian.com"
DEFAULT_AUDIENCE = "api.atlassian.com"
DEFAULT_SCOPES = ("read:jira-work", "read:jira-user", "write:jira-work", "offline_access")

# A pending login must come back through /auth/callback within 5 minutes
PKCE_TTL_SECONDS = 300

# Refresh access tokens this long before the provider would reject them
REFRESH_BUFFER_SECONDS = 300

# Browser session lifetime, independent of token lifetime
SESSION_TTL_SECONDS = 24 * 60 * 60

DEFAULT_HTTP_TIMEOUT = 10.0


@dataclass(frozen=True)
class Settings:
    client_id: str
    client_secret: str
    callback_url: str
    session_secret: str
    authorization_url: str = DEFAULT_AUTHORIZATION_URL
    token_url: str = DEFAULT_TOKEN_URL
    api_base_url: str = DEFAULT_API_BASE_URL
    audience: str = DEFAULT_AUDIENCE
    scopes: tuple[str, ...] = DEFAULT_SCOPES
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    pkce_ttl_seconds: int = PKCE_TTL_SECONDS
    refresh_buffer_seconds: int = REFRESH_BUFFER_SECONDS
    session_ttl_seconds: int = SESSION_TTL_SECONDS
    environment: str = "development"
    log_level: str = "INFO"
    port: int = 3000

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


def _parse_number(name: str, raw: str, cast):
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number (got {raw!r})") from None
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive (got {raw!r})")
    return value


def load_settings(env: dict[str, str] | None = None, *, env_file: str | None = ".env") -> Settings:
    """
    Build Settings from the environment. Raises ConfigurationError listing every missing
    required variable, so the process refuses to start without client credentials.
    """
    if env is None:
        if env_file:
            # Real environment variables win over the file
            load_dotenv(env_file, override=False)
        env = dict(os.environ)

    missing = [name for name in REQUIRED_ENV_VARS if not env.get(name, "").strip()]
    if missing:
        raise ConfigurationError(f"Missing required environment variables: {', '.join(missing)}")

    scopes_raw = env.get("OAUTH_SCOPES", "").strip()
    scopes = tuple(scopes_raw.replace(",", " ").split()) if scopes_raw else DEFAULT_SCOPES

    return Settings(
        client_id=env["ATLASSIAN_CLIENT_ID"].strip(),
        client_secret=env["ATLASSIAN_CLIENT_SECRET"].strip(),
        callback_url=env["CALLBACK_URL"].strip(),
        session_secret=env["SESSION_SECRET"],
        authorization_url=env.get("ATLASSIAN_AUTHORIZATION_URL", DEFAULT_AUTHORIZATION_URL).strip(),
        token_url=env.get("ATLASSIAN_TOKEN_URL", DEFAULT_TOKEN_URL).strip(),
        api_base_url=env.get("ATLASSIAN_API_BASE_URL", DEFAULT_API_BASE_URL).strip().rstrip("/"),
        audience=env.get("ATLASSIAN_AUDIENCE", DEFAULT_AUDIENCE).strip(),
        scopes=scopes,
        http_timeout=_parse_number("HTTP_TIMEOUT_SECONDS", env.get("HTTP_TIMEOUT_SECONDS", "10"), float),
        # NODE_ENV kept for parity with existing deployment env files
        environment=(env.get("APP_ENV") or env.get("NODE_ENV") or "development").strip().lower(),
        log_level=env.get("LOG_LEVEL", "INFO").strip().upper(),
        port=_parse_number("PORT", env.get("PORT", "3000"), int),
    )
