"""
Authorization workflow: login -> callback -> authenticated access (with refresh) -> logout.
Every state change to a session's PKCE record or token record goes through this class.
"""
import hmac
import logging
import time
from typing import Any

from starlette.requests import Request

from jira_client_web.config import Settings
from jira_client_web.errors import (
    AuthenticationRequiredError,
    TokenRefreshError,
    ValidationError,
)
from jira_client_web.oauth_client import TokenClient
from jira_client_web.pkce import build_authorization_url, generate_challenge, generate_state, generate_verifier
from jira_client_web.session_store import PendingAuthorization, SessionContext
from jira_client_web.token_store import TokenRecord, is_token_expired

logger = logging.getLogger(__name__)

REASON_MISSING_PARAMS = "Missing authorization code or state"
REASON_INVALID_STATE = "Invalid state parameter"
REASON_SESSION_EXPIRED = "OAuth session expired"
REASON_AUTH_FAILED = "Authentication failed"
REFRESH_FAILED_MESSAGE = "Token refresh failed, please re-authenticate"


class AuthorizationWorkflow:
    def __init__(self, settings: Settings, token_client: TokenClient):
        self.settings = settings
        self.token_client = token_client

    def begin_login(self, session: SessionContext, *, now: float | None = None) -> str:
        """
        Start a new authorization attempt and return the provider URL to redirect to.
        Replaces any pending attempt; only one may be in flight per session.
        """
        verifier = generate_verifier()
        state = generate_state()
        session.set_pending_authorization(
            PendingAuthorization(
                state=state,
                code_verifier=verifier,
                created_at=time.time() if now is None else now,
            )
        )
        logger.info("Initiating OAuth flow")
        return build_authorization_url(
            self.settings.client_id,
            self.settings.callback_url,
            state,
            generate_challenge(verifier),
            authorization_url=self.settings.authorization_url,
            audience=self.settings.audience,
            scopes=self.settings.scopes,
        )

    async def complete_callback(
        self,
        session: SessionContext,
        *,
        code: str | None,
        state: str | None,
        error: str | None = None,
        error_description: str | None = None,
        now: float | None = None,
    ) -> TokenRecord:
        """
        Validate the provider redirect and exchange the code.
        Raises ValidationError (nothing exchanged) or TokenExchangeError. The pending record is
        consumed whatever the outcome.
        """
        pending = session.get_pending_authorization()
        session.clear_pending_authorization()

        if error:
            logger.error("OAuth error from provider: %s %s", error, error_description or "")
            raise ValidationError(error_description or error)
        if not code or not state:
            raise ValidationError(REASON_MISSING_PARAMS)
        if pending is None or not hmac.compare_digest(pending.state.encode(), state.encode()):
            logger.warning("State mismatch on OAuth callback - possible CSRF")
            raise ValidationError(REASON_INVALID_STATE)
        if now is None:
            now = time.time()
        if pending.expired(self.settings.pkce_ttl_seconds, now=now):
            raise ValidationError(REASON_SESSION_EXPIRED)

        logger.info("Exchanging authorization code for tokens")
        response = await self.token_client.exchange_code(code, pending.code_verifier)
        tokens = TokenRecord.from_response(response)
        session.set_tokens(tokens)
        logger.info("Authentication successful (scope=%s)", tokens.scope)
        return tokens

    async def get_valid_access_token(self, session: SessionContext) -> str:
        """
        Return an access token for a downstream call, refreshing it first if it is near expiry.
        Raises AuthenticationRequiredError when there is no token or the refresh fails.
        """
        tokens = session.get_tokens()
        if tokens is None:
            raise AuthenticationRequiredError()
        if not is_token_expired(tokens.expires_at, self.settings.refresh_buffer_seconds):
            return tokens.access_token

        async with session.refresh_lock:
            # Another request on this session may have refreshed while we waited
            tokens = session.get_tokens()
            if tokens is None:
                raise AuthenticationRequiredError(REFRESH_FAILED_MESSAGE)
            if not is_token_expired(tokens.expires_at, self.settings.refresh_buffer_seconds):
                return tokens.access_token
            if not tokens.refresh_token:
                logger.info("Access token expired and no refresh token was granted")
                session.clear_tokens()
                raise AuthenticationRequiredError(REFRESH_FAILED_MESSAGE)

            logger.info("Access token expired, refreshing")
            try:
                response = await self.token_client.refresh(tokens.refresh_token)
            except TokenRefreshError:
                session.clear_tokens()
                raise AuthenticationRequiredError(REFRESH_FAILED_MESSAGE) from None
            refreshed = TokenRecord.from_response(response, previous=tokens)
            session.set_tokens(refreshed)
            logger.info("Token refreshed successfully")
            return refreshed.access_token

    def status(self, session: SessionContext) -> dict[str, Any]:
        tokens = session.get_tokens()
        if tokens is None or not tokens.access_token:
            return {"authenticated": False}
        return {"authenticated": True, "expiresAt": tokens.expires_at_ms}

    def logout(self, session: SessionContext) -> None:
        """End the session. Safe to call on a session that holds nothing."""
        session.destroy()
        logger.info("User logged out")


def get_workflow(request: Request) -> AuthorizationWorkflow:
    """FastAPI dependency: the workflow built by create_app."""
    return request.app.state.workflow
