"""
Token endpoint calls: authorization_code exchange and refresh_token grant.
One POST each, bounded timeout, no retries. Provider status/body are logged here and carried on
the raised error; callers only show a generic message.
"""
import logging

import httpx

from jira_client_web.config import Settings
from jira_client_web.errors import TokenEndpointError, TokenExchangeError, TokenRefreshError
from jira_client_web.token_store import TokenResponse

logger = logging.getLogger(__name__)

_HEADERS = {"Accept": "application/json"}


async def _post_token_request(
    data: dict[str, str],
    *,
    token_url: str,
    timeout: float,
    http_client: httpx.AsyncClient | None,
    error_cls: type[TokenEndpointError],
) -> TokenResponse:
    grant = data["grant_type"]
    try:
        if http_client is None:
            async with httpx.AsyncClient(timeout=timeout) as client:
                r = await client.post(token_url, data=data, headers=_HEADERS)
        else:
            r = await http_client.post(token_url, data=data, headers=_HEADERS, timeout=timeout)
    except httpx.HTTPError as e:
        logger.error("Token request (%s) to %s failed: %s", grant, token_url, e)
        raise error_cls(f"{grant} request failed: {e}") from e

    if not r.is_success:
        logger.error("Token request (%s) rejected: status=%d body=%s", grant, r.status_code, r.text)
        raise error_cls(f"{grant} rejected with status {r.status_code}", status_code=r.status_code, body=r.text)

    # Success bodies carry credentials; never log them
    try:
        return TokenResponse.from_payload(r.json())
    except ValueError as e:
        logger.error("Token request (%s) returned a malformed payload: %s", grant, e)
        raise error_cls(f"{grant} returned a malformed payload: {e}", status_code=r.status_code) from e


async def exchange_code_for_token(
    code: str,
    code_verifier: str,
    client_id: str,
    client_secret: str,
    redirect_uri: str,
    *,
    token_url: str,
    timeout: float = 10.0,
    http_client: httpx.AsyncClient | None = None,
) -> TokenResponse:
    """Exchange an authorization code (+ PKCE verifier) for tokens. Raises TokenExchangeError."""
    data = {
        "grant_type": "authorization_code",
        "client_id": client_id,
        "client_secret": client_secret,
        "code": code,
        "redirect_uri": redirect_uri,
        "code_verifier": code_verifier,
    }
    return await _post_token_request(
        data, token_url=token_url, timeout=timeout, http_client=http_client, error_cls=TokenExchangeError
    )


async def refresh_access_token(
    refresh_token: str,
    client_id: str,
    client_secret: str,
    *,
    token_url: str,
    timeout: float = 10.0,
    http_client: httpx.AsyncClient | None = None,
) -> TokenResponse:
    """Trade a refresh token for a new token pair. Raises TokenRefreshError."""
    data = {
        "grant_type": "refresh_token",
        "client_id": client_id,
        "client_secret": client_secret,
        "refresh_token": refresh_token,
    }
    return await _post_token_request(
        data, token_url=token_url, timeout=timeout, http_client=http_client, error_cls=TokenRefreshError
    )


class TokenClient:
    """Token endpoint calls bound to the configured client credentials."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None):
        self._settings = settings
        self._http_client = http_client

    async def exchange_code(self, code: str, code_verifier: str) -> TokenResponse:
        s = self._settings
        return await exchange_code_for_token(
            code,
            code_verifier,
            s.client_id,
            s.client_secret,
            s.callback_url,
            token_url=s.token_url,
            timeout=s.http_timeout,
            http_client=self._http_client,
        )

    async def refresh(self, refresh_token: str) -> TokenResponse:
        s = self._settings
        return await refresh_access_token(
            refresh_token,
            s.client_id,
            s.client_secret,
            token_url=s.token_url,
            timeout=s.http_timeout,
            http_client=self._http_client,
        )
