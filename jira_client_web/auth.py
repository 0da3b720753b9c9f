"""
Browser-facing OAuth routes: GET /auth/login, GET /auth/callback, GET /auth/status,
POST /auth/logout.
"""
import logging
from urllib.parse import quote

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse

from jira_client_web.errors import TokenEndpointError, ValidationError
from jira_client_web.http_utils import run_until_disconnected
from jira_client_web.session_store import SessionContext, forget_session, get_session, remember_session
from jira_client_web.workflow import REASON_AUTH_FAILED, AuthorizationWorkflow, get_workflow

logger = logging.getLogger(__name__)

HOME_PATH = "/"
DASHBOARD_PATH = "/dashboard"

router = APIRouter(prefix="/auth", tags=["auth"])


def _error_redirect(reason: str) -> RedirectResponse:
    return RedirectResponse(url=f"{HOME_PATH}?error={quote(reason, safe='')}", status_code=302)


@router.get("/login")
def login(
    request: Request,
    session: SessionContext = Depends(get_session),
    workflow: AuthorizationWorkflow = Depends(get_workflow),
):
    """Generate verifier/challenge/state, remember them in the session, redirect to Atlassian."""
    try:
        url = workflow.begin_login(session)
    except Exception:
        logger.exception("OAuth initialization error")
        return PlainTextResponse("Failed to initiate OAuth flow", status_code=500)
    remember_session(request, session)
    return RedirectResponse(url=url, status_code=302)


@router.get("/callback")
async def callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
    session: SessionContext = Depends(get_session),
    workflow: AuthorizationWorkflow = Depends(get_workflow),
):
    """Provider redirect target: validate state and age, exchange the code, store tokens."""
    try:
        await run_until_disconnected(
            request,
            workflow.complete_callback(
                session, code=code, state=state, error=error, error_description=error_description
            ),
        )
    except ValidationError as e:
        return _error_redirect(e.reason)
    except TokenEndpointError:
        # Status/body already logged by the token client
        return _error_redirect(REASON_AUTH_FAILED)
    return RedirectResponse(url=DASHBOARD_PATH, status_code=302)


@router.get("/status")
def status(
    session: SessionContext = Depends(get_session),
    workflow: AuthorizationWorkflow = Depends(get_workflow),
):
    return workflow.status(session)


@router.post("/logout")
def logout(
    request: Request,
    session: SessionContext = Depends(get_session),
    workflow: AuthorizationWorkflow = Depends(get_workflow),
):
    try:
        workflow.logout(session)
        forget_session(request, session)
    except Exception:
        logger.exception("Logout error")
        return JSONResponse({"error": "Logout failed"}, status_code=500)
    return {"success": True}
