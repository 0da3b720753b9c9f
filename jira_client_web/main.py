"""
Jira OAuth client web app.
Authorization code + PKCE login against Atlassian, server-side session tokens, and a small
read-only Jira proxy under /api. Pages: GET /, /dashboard, /health. The /auth routes live in
auth.py, the /api routes in jira_api.py.
"""
import html
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from jira_client_web.auth import DASHBOARD_PATH, HOME_PATH
from jira_client_web.auth import router as auth_router
from jira_client_web.config import Settings, load_settings
from jira_client_web.errors import (
    AuthenticationRequiredError,
    ClientDisconnectedError,
    JiraApiError,
    RateLimitedError,
)
from jira_client_web.jira_api import JiraClient
from jira_client_web.jira_api import router as jira_router
from jira_client_web.logging_config import configure_logging
from jira_client_web.oauth_client import TokenClient
from jira_client_web.session_store import SESSION_COOKIE, SessionContext, SessionStore, get_session
from jira_client_web.workflow import AuthorizationWorkflow

logger = logging.getLogger(__name__)

router = APIRouter(tags=["pages"])


def _home_page(error: str | None) -> str:
    error_html = f'<p class="error">{html.escape(error)}</p>' if error else ""
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Jira OAuth</title></head>
<body>
  <h1>Jira OAuth 2.0 (3LO) + PKCE</h1>
  {error_html}
  <p><a href="/auth/login">Log in with Jira</a></p>
</body>
</html>"""


DASHBOARD_PAGE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Jira dashboard</title></head>
<body>
  <h1>Jira dashboard</h1>
  <ul>
    <li><a href="/api/me">My account</a></li>
    <li><a href="/api/resources">Accessible sites</a></li>
    <li><a href="/api/my-tickets">My tickets</a></li>
    <li><a href="/api/stats">Ticket stats</a></li>
    <li><a href="/auth/status">Session status</a></li>
  </ul>
  <button id="logout">Log out</button>
  <script>
    document.getElementById("logout").addEventListener("click", async () => {
      await fetch("/auth/logout", {method: "POST"});
      window.location = "/";
    });
  </script>
</body>
</html>"""


@router.get("/health")
def health(request: Request):
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": request.app.state.settings.environment,
    }


@router.get(HOME_PATH, response_class=HTMLResponse)
def home(error: str | None = None, session: SessionContext = Depends(get_session)):
    """Landing page; already-authenticated sessions go straight to the dashboard."""
    if session.get_tokens() is not None:
        return RedirectResponse(url=DASHBOARD_PATH, status_code=302)
    return HTMLResponse(_home_page(error))


@router.get(DASHBOARD_PATH, response_class=HTMLResponse)
def dashboard(session: SessionContext = Depends(get_session)):
    if session.get_tokens() is None:
        return RedirectResponse(url=HOME_PATH, status_code=302)
    return HTMLResponse(DASHBOARD_PAGE)



def _register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(AuthenticationRequiredError)
    async def _auth_required(request: Request, exc: AuthenticationRequiredError):
        return JSONResponse({"error": exc.message}, status_code=401)

    @app.exception_handler(RateLimitedError)
    async def _rate_limited(request: Request, exc: RateLimitedError):
        return JSONResponse(
            {"error": exc.message, "retryAfter": exc.retry_after},
            status_code=429,
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(JiraApiError)
    async def _jira_error(request: Request, exc: JiraApiError):
        return JSONResponse({"error": exc.message}, status_code=500)

    @app.exception_handler(ClientDisconnectedError)
    async def _disconnected(request: Request, exc: ClientDisconnectedError):
        # Nobody is listening; nginx's "client closed request"
        return Response(status_code=499)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return JSONResponse({"error": "Not found"}, status_code=404)
        return await http_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def _server_error(request: Request, exc: Exception):
        logger.error("Server error on %s %s", request.method, request.url.path, exc_info=exc)
        body = {"error": "Internal server error"}
        if settings.is_development:
            body["message"] = str(exc)
        return JSONResponse(body, status_code=500)


def create_app(
    settings: Settings | None = None,
    *,
    token_client: TokenClient | None = None,
    jira_client: JiraClient | None = None,
    session_store: SessionStore | None = None,
) -> FastAPI:
    """Build the app. Raises ConfigurationError when required credentials are missing."""
    if settings is None:
        settings = load_settings()
    configure_logging(settings.log_level)

    store = session_store if session_store is not None else SessionStore(ttl_seconds=settings.session_ttl_seconds)
    if token_client is None:
        token_client = TokenClient(settings)
    if jira_client is None:
        jira_client = JiraClient(settings)

    app = FastAPI(title="Jira OAuth Client", version="1.0.0")
    app.state.settings = settings
    app.state.session_store = store
    app.state.workflow = AuthorizationWorkflow(settings, token_client)
    app.state.jira_client = jira_client

    # Cookie holds only the session id; records stay in the store
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        session_cookie=SESSION_COOKIE,
        max_age=settings.session_ttl_seconds,
        same_site="lax",
        https_only=settings.is_production,
    )
    _register_exception_handlers(app, settings)
    app.include_router(router)
    app.include_router(auth_router)
    app.include_router(jira_router)

    logger.info(
        "Jira OAuth client ready  client_id=%s... callback=%s env=%s",
        settings.client_id[:10],
        settings.callback_url,
        settings.environment,
    )
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "jira_client_web.main:app",
        host="127.0.0.1",
        port=app.state.settings.port,
        reload=app.state.settings.is_development,
    )
