"""
Token data held in a browser session after a successful login.
TokenResponse is the provider payload decoded once at the network boundary; TokenRecord is
what the session keeps, with expires_at computed when the response is received.
"""
import time
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class TokenResponse:
    access_token: str
    expires_in: int
    refresh_token: str | None = None
    scope: str = ""

    @classmethod
    def from_payload(cls, payload: Any) -> "TokenResponse":
        """
        Decode a token endpoint JSON body. Raises ValueError on anything malformed
        (callers wrap it in the exchange/refresh error for their grant).
        """
        if not isinstance(payload, dict):
            raise ValueError("token response is not a JSON object")
        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("token response has no access_token")
        expires_in = payload.get("expires_in")
        # bool is an int subclass; reject it explicitly
        if isinstance(expires_in, bool) or expires_in is None:
            raise ValueError("token response has no usable expires_in")
        try:
            expires_in = int(expires_in)
        except (TypeError, ValueError):
            raise ValueError("token response has no usable expires_in") from None
        if expires_in < 0:
            raise ValueError("token response has negative expires_in")
        refresh_token = payload.get("refresh_token") or None
        scope = payload.get("scope") or ""
        if not isinstance(refresh_token, (str, type(None))) or not isinstance(scope, str):
            raise ValueError("token response has non-string refresh_token or scope")
        return cls(
            access_token=access_token,
            expires_in=expires_in,
            refresh_token=refresh_token,
            scope=scope,
        )


@dataclass(frozen=True)
class TokenRecord:
    access_token: str
    refresh_token: str | None
    expires_at: float
    scope: str = ""

    @classmethod
    def from_response(
        cls,
        response: TokenResponse,
        *,
        received_at: float | None = None,
        previous: "TokenRecord | None" = None,
    ) -> "TokenRecord":
        """
        Build the session record from a token response. expires_at is derived from the
        receipt time, never taken from anything the browser sent. On refresh, the previous
        refresh token and scope are kept when the provider omits them.
        """
        if received_at is None:
            received_at = time.time()
        refresh_token = response.refresh_token
        scope = response.scope
        if previous is not None:
            refresh_token = refresh_token or previous.refresh_token
            scope = scope or previous.scope
        return cls(
            access_token=response.access_token,
            refresh_token=refresh_token,
            expires_at=received_at + response.expires_in,
            scope=scope,
        )

    @property
    def expires_at_ms(self) -> int:
        """expires_at as epoch milliseconds, the unit browser code compares against Date.now()."""
        return int(self.expires_at * 1000)


def is_token_expired(expires_at: float, buffer_seconds: int = 300, now: float | None = None) -> bool:
    """
    True if the token expires within buffer_seconds (or already has).
    expires_at and now are epoch seconds.
    """
    if now is None:
        now = time.time()
    return expires_at - buffer_seconds <= now
