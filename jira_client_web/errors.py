"""
Error types for the OAuth workflow and the Jira proxy.
Provider detail (status, body) stays on the exception for server-side logs; only the
generic messages below are ever shown to the browser.
"""


class ConfigurationError(Exception):
    """Required client credentials or URLs are missing; the process must not start."""


class ValidationError(Exception):
    """Callback failed validation (provider error, missing params, state mismatch, stale login)."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class TokenEndpointError(Exception):
    """Token endpoint call failed (non-2xx, network error, timeout or malformed payload)."""

    def __init__(self, message: str, *, status_code: int | None = None, body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class TokenExchangeError(TokenEndpointError):
    """authorization_code grant failed. Codes are single-use, so never retried."""


class TokenRefreshError(TokenEndpointError):
    """refresh_token grant failed. The session must re-authorize."""


class AuthenticationRequiredError(Exception):
    """No usable access token for this session (never logged in, logged out, or refresh failed)."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)
        self.message = message


class JiraApiError(Exception):
    """Jira REST call failed."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class RateLimitedError(JiraApiError):
    """Jira answered 429; retry_after is in seconds."""

    def __init__(self, retry_after: int):
        super().__init__(f"Rate limited. Retry after {retry_after} seconds", status_code=429)
        self.retry_after = retry_after


class ClientDisconnectedError(Exception):
    """Browser disconnected while an outbound call was in flight; the call was cancelled."""
