"""
Read-only Jira Cloud proxy (/api/*) for the logged-in browser session.
Every route gets its bearer token from the workflow (refreshing when near expiry) and
calls api.atlassian.com on the user's behalf.
"""
import logging
from typing import Any
from urllib.parse import quote

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from jira_client_web.config import Settings
from jira_client_web.errors import JiraApiError, RateLimitedError
from jira_client_web.http_utils import run_until_disconnected
from jira_client_web.session_store import SessionContext, get_session
from jira_client_web.workflow import AuthorizationWorkflow, get_workflow

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER = 60

MY_TICKETS_JQL = "(assignee = currentUser() OR reporter = currentUser()) ORDER BY updated DESC"
MY_TICKETS_FIELDS = "summary,status,priority,assignee,reporter,updated,issuetype,created"
MY_TICKETS_LIMIT = 50

STATS_QUERIES = {
    "totalAssigned": "assignee = currentUser()",
    "inProgress": 'assignee = currentUser() AND status = "In Progress"',
    "toDo": 'assignee = currentUser() AND status = "To Do"',
    "reported": "reporter = currentUser()",
    "done": "assignee = currentUser() AND status = Done",
}

NO_SITES_MESSAGE = "No JIRA instances accessible"


def _retry_after(response: httpx.Response) -> int:
    raw = response.headers.get("retry-after", "")
    try:
        return max(0, int(raw))
    except ValueError:
        # Absent, or an HTTP-date we don't bother parsing
        return DEFAULT_RETRY_AFTER


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        messages = body.get("errorMessages")
        if isinstance(messages, list) and messages:
            return str(messages[0])
        if body.get("message"):
            return str(body["message"])
    return f"API request failed with status {response.status_code}"


class JiraClient:
    """Minimal Jira Cloud REST client; one GET per call, bounded timeout, no retries."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None):
        self.api_base_url = settings.api_base_url
        self.timeout = settings.http_timeout
        self._http_client = http_client

    async def get(self, url: str, access_token: str, *, params: dict[str, Any] | None = None) -> Any:
        headers = {"Authorization": f"Bearer {access_token}", "Accept": "application/json"}
        try:
            if self._http_client is None:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    r = await client.get(url, headers=headers, params=params)
            else:
                r = await self._http_client.get(url, headers=headers, params=params, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.error("Jira request to %s failed: %s", url, e)
            raise JiraApiError(str(e) or "API request failed") from e

        if r.status_code == 429:
            retry_after = _retry_after(r)
            logger.warning("Jira rate limited %s; retry after %ss", url, retry_after)
            raise RateLimitedError(retry_after)
        if not r.is_success:
            message = _error_message(r)
            logger.error("Jira request to %s failed: status=%d %s", url, r.status_code, message)
            raise JiraApiError(message, status_code=r.status_code)
        return r.json()

    async def me(self, access_token: str) -> Any:
        return await self.get(f"{self.api_base_url}/me", access_token)

    async def accessible_resources(self, access_token: str) -> list[dict[str, Any]]:
        resources = await self.get(f"{self.api_base_url}/oauth/token/accessible-resources", access_token)
        return resources or []

    async def search(
        self,
        access_token: str,
        cloud_id: str,
        jql: str,
        *,
        max_results: int,
        fields: str | None = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"jql": jql, "maxResults": max_results}
        if fields:
            params["fields"] = fields
        return await self.get(
            f"{self.api_base_url}/ex/jira/{cloud_id}/rest/api/3/search", access_token, params=params
        )

    async def issue(self, access_token: str, cloud_id: str, key: str) -> dict[str, Any]:
        return await self.get(
            f"{self.api_base_url}/ex/jira/{cloud_id}/rest/api/3/issue/{quote(key, safe='')}", access_token
        )


def summarize_issue(issue: dict[str, Any], site_url: str) -> dict[str, Any]:
    """Flatten a Jira issue into the ticket shape the dashboard renders."""
    fields = issue.get("fields") or {}
    status = fields.get("status") or {}
    assignee = fields.get("assignee") or {}
    reporter = fields.get("reporter") or {}
    return {
        "key": issue.get("key"),
        "id": issue.get("id"),
        "summary": fields.get("summary"),
        "status": status.get("name"),
        "statusCategory": (status.get("statusCategory") or {}).get("name"),
        "priority": (fields.get("priority") or {}).get("name") or "None",
        "assignee": assignee.get("displayName") or "Unassigned",
        "assigneeEmail": assignee.get("emailAddress"),
        "reporter": reporter.get("displayName") or "Unknown",
        "reporterEmail": reporter.get("emailAddress"),
        "issueType": (fields.get("issuetype") or {}).get("name"),
        "updated": fields.get("updated"),
        "created": fields.get("created"),
        "url": f"{site_url}/browse/{issue.get('key')}",
    }


def describe_issue(issue: dict[str, Any], site_url: str) -> dict[str, Any]:
    """Ticket shape plus description, labels and comment count."""
    fields = issue.get("fields") or {}
    details = summarize_issue(issue, site_url)
    details["description"] = fields.get("description")
    details["labels"] = fields.get("labels") or []
    details["comments"] = len((fields.get("comment") or {}).get("comments") or [])
    return details


def get_jira_client(request: Request) -> JiraClient:
    return request.app.state.jira_client


async def require_access_token(
    request: Request,
    session: SessionContext = Depends(get_session),
    workflow: AuthorizationWorkflow = Depends(get_workflow),
) -> str:
    """Dependency: a valid bearer token for this session (401 via AuthenticationRequiredError)."""
    return await run_until_disconnected(request, workflow.get_valid_access_token(session))


router = APIRouter(prefix="/api", tags=["jira"])


@router.get("/me")
async def me(
    request: Request,
    token: str = Depends(require_access_token),
    jira: JiraClient = Depends(get_jira_client),
):
    """Current Atlassian account."""
    return await run_until_disconnected(request, jira.me(token))


@router.get("/resources")
async def resources(
    request: Request,
    token: str = Depends(require_access_token),
    jira: JiraClient = Depends(get_jira_client),
):
    """Jira Cloud sites this token can reach."""
    return await run_until_disconnected(request, jira.accessible_resources(token))


@router.get("/my-tickets")
async def my_tickets(
    request: Request,
    token: str = Depends(require_access_token),
    jira: JiraClient = Depends(get_jira_client),
):
    """Tickets where the user is assignee or reporter, on the first accessible site."""
    sites = await run_until_disconnected(request, jira.accessible_resources(token))
    if not sites:
        return {"tickets": [], "message": NO_SITES_MESSAGE}
    site = sites[0]
    results = await run_until_disconnected(
        request,
        jira.search(token, site["id"], MY_TICKETS_JQL, max_results=MY_TICKETS_LIMIT, fields=MY_TICKETS_FIELDS),
    )
    return {
        "tickets": [summarize_issue(issue, site["url"]) for issue in results.get("issues") or []],
        "total": results.get("total", 0),
        "cloudId": site["id"],
        "siteName": site.get("name"),
        "siteUrl": site["url"],
    }


@router.get("/ticket/{key}")
async def ticket(
    key: str,
    request: Request,
    token: str = Depends(require_access_token),
    jira: JiraClient = Depends(get_jira_client),
):
    """Details for one ticket on the first accessible site."""
    sites = await run_until_disconnected(request, jira.accessible_resources(token))
    if not sites:
        return JSONResponse({"error": NO_SITES_MESSAGE}, status_code=404)
    site = sites[0]
    issue = await run_until_disconnected(request, jira.issue(token, site["id"], key))
    return describe_issue(issue, site["url"])


@router.get("/stats")
async def stats(
    request: Request,
    token: str = Depends(require_access_token),
    jira: JiraClient = Depends(get_jira_client),
):
    """Ticket counts for the current user; a count that fails to load reads as 0."""
    sites = await run_until_disconnected(request, jira.accessible_resources(token))
    if not sites:
        return {"stats": {}, "message": NO_SITES_MESSAGE}
    cloud_id = sites[0]["id"]
    counts: dict[str, int] = {}
    for name, jql in STATS_QUERIES.items():
        try:
            result = await run_until_disconnected(request, jira.search(token, cloud_id, jql, max_results=0))
            counts[name] = int(result.get("total", 0))
        except JiraApiError as e:
            logger.error("Error getting %s count: %s", name, e.message)
            counts[name] = 0
    return {"stats": counts}
