"""Jira Cloud REST v3 connector for chat context.

Authenticates with the caller's own email and API token (HTTP Basic).  The
project inventory is always listed; ticket detail, the active sprint,
blocked work, unassigned work and a keyword search are added depending on
the detected intent.  Every search runs concurrently and the resulting
issues are merged by key in a fixed order, first occurrence wins.

User text reaches JQL only through ``escape_jql`` and the key validators in
``app.services.intent``.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx
import structlog

from app.services.demo import demo_jira_evidence, is_demo_secret
from app.services.evidence import JiraEvidence, JiraIssue, JiraProject
from app.services.fanout import settle
from app.services.intent import safe_project_key, safe_ticket_key
from app.services.sanitize import sanitize_external_text

if TYPE_CHECKING:
    from app.services.integrations import JiraCredentials
    from app.services.intent import DetectedIntent

logger = structlog.get_logger()

FIELDS_BASE = "summary,status,priority,assignee,reporter,project,issuetype,created,updated,labels,customfield_10020"
FIELDS_FULL = f"{FIELDS_BASE},description,comment,parent,sprint"

MAX_RESULTS = 20
SPRINT_MAX_RESULTS = 30
UNASSIGNED_MAX_RESULTS = 10
MAX_PROJECTS = 50
MAX_RECENT_COMMENTS = 3
KEYWORD_TERMS = 4
MIN_SEARCH_TERM_LENGTH = 3

BODY_MAX_CHARS = 400
COMMENT_MAX_CHARS = 200
TITLE_MAX_CHARS = 200
NAME_MAX_CHARS = 100
JQL_MAX_CHARS = 100

_JQL_UNSAFE = str.maketrans("", "", "\"'\\();")


def escape_jql(value: str) -> str:
    """Make *value* safe to embed inside a quoted JQL string literal."""
    return value.translate(_JQL_UNSAFE)[:JQL_MAX_CHARS].strip()


def extract_adf_text(node: object) -> str:
    """Flatten an Atlassian Document Format tree into space-joined text."""
    texts: list[str] = []
    stack = [node]
    while stack:
        current = stack.pop()
        if not isinstance(current, dict):
            continue
        if current.get("type") == "text" and isinstance(current.get("text"), str):
            texts.append(current["text"])
        children = current.get("content")
        if isinstance(children, list):
            stack.extend(reversed(children))
    return " ".join(texts)


def _auth(creds: JiraCredentials) -> httpx.BasicAuth:
    return httpx.BasicAuth(creds.email, creds.api_token)


async def _get_json(
    client: httpx.AsyncClient,
    creds: JiraCredentials,
    path: str,
    params: dict[str, Any] | None = None,
) -> Any | None:
    """GET a Jira API path and return its JSON, or None on any failure."""
    url = f"{creds.base_url}{path}"
    try:
        resp = await client.get(
            url, params=params, auth=_auth(creds), headers={"Accept": "application/json"}
        )
    except httpx.HTTPError as exc:
        logger.warning("jira_fetch_error", path=path, error=repr(exc))
        return None
    if resp.status_code == 404:
        return None
    if resp.is_error:
        logger.warning("jira_fetch_status", path=path, status=resp.status_code)
        return None
    try:
        return resp.json()
    except ValueError:
        logger.warning("jira_fetch_bad_json", path=path)
        return None


def _named(value: object, key: str = "name") -> str | None:
    if isinstance(value, dict) and value.get(key):
        return sanitize_external_text(value[key], NAME_MAX_CHARS) or None
    return None


def map_issue(issue: dict, base_url: str) -> JiraIssue:
    """Convert a raw Jira issue payload into a ``JiraIssue``."""
    fields = issue.get("fields") or {}
    key = sanitize_external_text(issue.get("key"), NAME_MAX_CHARS)

    sprint_field = fields.get("sprint")
    if not sprint_field:
        sprints = fields.get("customfield_10020")
        sprint_field = sprints[0] if isinstance(sprints, list) and sprints else None

    comment = fields.get("comment")
    comment_count = comment.get("total") if isinstance(comment, dict) else None
    project = fields.get("project") or {}

    return JiraIssue(
        key=key,
        title=sanitize_external_text(fields.get("summary"), TITLE_MAX_CHARS),
        status=_named(fields.get("status")) or "Unknown",
        priority=_named(fields.get("priority")) or "Medium",
        type=_named(fields.get("issuetype")) or "Task",
        project=_named(project) or "",
        project_key=_named(project, "key") or "",
        updated_at=str(fields.get("updated") or "")[:10],
        assignee=_named(fields.get("assignee"), "displayName"),
        reporter=_named(fields.get("reporter"), "displayName"),
        labels=[sanitize_external_text(label, NAME_MAX_CHARS) for label in fields.get("labels") or []],
        sprint=_named(sprint_field),
        url=f"{base_url}/browse/{key}",
        description=sanitize_external_text(extract_adf_text(fields.get("description")), BODY_MAX_CHARS),
        comment_count=comment_count if isinstance(comment_count, int) else None,
    )


async def fetch_all_projects(client: httpx.AsyncClient, creds: JiraCredentials) -> list[JiraProject]:
    """List projects the caller can browse, ordered by name."""
    data = await _get_json(
        client,
        creds,
        "/rest/api/3/project/search",
        {"maxResults": MAX_PROJECTS, "orderBy": "name"},
    )
    if not isinstance(data, dict):
        return []
    return [
        JiraProject(
            key=sanitize_external_text(p.get("key"), NAME_MAX_CHARS),
            name=sanitize_external_text(p.get("name"), NAME_MAX_CHARS),
            type=sanitize_external_text(p.get("projectTypeKey"), NAME_MAX_CHARS) or "software",
        )
        for p in data.get("values") or []
        if isinstance(p, dict)
    ]


async def search_issues(
    client: httpx.AsyncClient,
    creds: JiraCredentials,
    jql: str,
    max_results: int = MAX_RESULTS,
) -> list[JiraIssue]:
    """Run a JQL search and map every returned issue."""
    data = await _get_json(
        client,
        creds,
        "/rest/api/3/search/jql",
        {"jql": jql, "fields": FIELDS_BASE, "maxResults": max_results},
    )
    if not isinstance(data, dict):
        return []
    return [
        map_issue(issue, creds.base_url)
        for issue in data.get("issues") or []
        if isinstance(issue, dict)
    ]


async def fetch_ticket_detail(
    client: httpx.AsyncClient,
    creds: JiraCredentials,
    key: str,
) -> JiraIssue | None:
    """Fetch one ticket with its description and last few comments."""
    safe = safe_ticket_key(key)
    if safe is None:
        return None

    data = await _get_json(client, creds, f"/rest/api/3/issue/{quote(safe)}", {"fields": FIELDS_FULL})
    if not isinstance(data, dict):
        return None

    issue = map_issue(data, creds.base_url)
    comments = ((data.get("fields") or {}).get("comment") or {}).get("comments") or []

    snippets = []
    for c in comments[-MAX_RECENT_COMMENTS:]:
        if not isinstance(c, dict):
            continue
        text = sanitize_external_text(extract_adf_text(c.get("body")), COMMENT_MAX_CHARS)
        if text:
            author = _named(c.get("author"), "displayName") or "unknown"
            snippets.append(f"    [{author} @ {str(c.get('created') or '')[:10]}]: {text}")

    if snippets:
        joined = "\n".join(snippets)
        issue.description = (
            f"{issue.description}\n  Recent comments:\n{joined}"
            if issue.description
            else f"Recent comments:\n{joined}"
        )
    return issue


async def fetch_active_sprint_issues(
    client: httpx.AsyncClient,
    creds: JiraCredentials,
    project_key: str | None = None,
) -> list[JiraIssue]:
    """Issues in any open sprint, highest priority first."""
    jql = f"{_project_clause(project_key)}sprint in openSprints() ORDER BY priority DESC, updated DESC"
    return await search_issues(client, creds, jql, SPRINT_MAX_RESULTS)


def _project_clause(project_key: str | None) -> str:
    safe = safe_project_key(project_key)
    return f'project = "{safe}" AND ' if safe else ""


def _merge_by_key(*batches: list[JiraIssue]) -> list[JiraIssue]:
    seen: set[str] = set()
    merged: list[JiraIssue] = []
    for batch in batches:
        for issue in batch:
            if issue.key not in seen:
                seen.add(issue.key)
                merged.append(issue)
    return merged


# ---------------------------------------------------------------------------
# Section formatting
# ---------------------------------------------------------------------------


def format_sprint_summary(sprint_issues: list[JiraIssue]) -> str:
    """Render status counts and completion for the active sprint."""
    total = len(sprint_issues)
    if total == 0:
        return ""
    counts = {"Done": 0, "In Progress": 0, "To Do": 0, "Blocked": 0}
    for issue in sprint_issues:
        if issue.status in counts:
            counts[issue.status] += 1
    completion = round(counts["Done"] / total * 100)
    return (
        "<jira_sprint_summary>\n"
        f"  total={total} | done={counts['Done']} | in_progress={counts['In Progress']}"
        f" | to_do={counts['To Do']} | blocked={counts['Blocked']}\n"
        f"  completion={completion}%\n"
        "</jira_sprint_summary>"
    )


def _format_issue(i: JiraIssue) -> str:
    sprint = f" | sprint: {i.sprint}" if i.sprint else ""
    labels = f" | labels: [{', '.join(i.labels)}]" if i.labels else ""
    comments = f" | comments: {i.comment_count}" if i.comment_count else ""
    lines = [
        f'  [{i.type.upper()}] {i.key}: "{i.title}"',
        f"  status={i.status} | priority={i.priority} | project={i.project}{sprint}",
        f"  assignee={i.assignee or 'unassigned'} | reporter={i.reporter or 'unknown'}"
        f" | updated={i.updated_at}{labels}{comments}",
    ]
    if i.description:
        lines.append(f"  description: {i.description}")
    return "\n".join(lines)


def format_jira_context(evidence: JiraEvidence) -> str:
    """Render Jira evidence as tagged sections, skipping empty categories."""
    parts: list[str] = []
    if evidence.projects:
        lines = "\n".join(f"  {p.key}: {p.name} ({p.type})" for p in evidence.projects)
        parts.append(f"<jira_projects>\n{lines}\n</jira_projects>")
    summary = format_sprint_summary(evidence.sprint_issues)
    if summary:
        parts.append(summary)
    if evidence.issues:
        body = "\n\n".join(_format_issue(i) for i in evidence.issues)
        parts.append(f"<jira_context>\n{body}\n</jira_context>")
    return "\n\n".join(parts)


# ---------------------------------------------------------------------------
# Context assembly
# ---------------------------------------------------------------------------


async def _none() -> None:
    return None


async def _empty() -> list[JiraIssue]:
    return []


async def build_jira_context(
    client: httpx.AsyncClient,
    creds: JiraCredentials,
    intent: DetectedIntent,
) -> str:
    """Build the Jira part of the context block for *intent*.

    Demo credentials short-circuit to canned evidence without any request.
    """
    if is_demo_secret(creds.api_token):
        logger.info("jira_demo_context")
        return format_jira_context(demo_jira_evidence())

    ticket = safe_ticket_key(intent.ticket_hint)
    clause = _project_clause(intent.project_hint)

    want_sprint = intent.wants_sprint_status or intent.mentions("sprint", "velocity", "burndown")
    want_blocked = intent.wants_blocked_items or intent.mentions("blocked", "blocker", "stuck")
    search_term = escape_jql(" ".join(intent.keywords[:KEYWORD_TERMS])) if not ticket else ""
    want_keyword = len(search_term) >= MIN_SEARCH_TERM_LENGTH

    projects, detail, sprint, blocked, unassigned, found = await asyncio.gather(
        settle(fetch_all_projects(client, creds), [], label="jira_projects"),
        settle(fetch_ticket_detail(client, creds, ticket) if ticket else _none(), None, label="jira_ticket"),
        settle(
            fetch_active_sprint_issues(client, creds, intent.project_hint) if want_sprint else _empty(),
            [],
            label="jira_sprint",
        ),
        settle(
            search_issues(client, creds, f'{clause}status = "Blocked" ORDER BY priority DESC')
            if want_blocked
            else _empty(),
            [],
            label="jira_blocked",
        ),
        settle(
            search_issues(
                client,
                creds,
                f'{clause}assignee is EMPTY AND status != "Done" ORDER BY priority DESC',
                UNASSIGNED_MAX_RESULTS,
            )
            if intent.wants_assignment
            else _empty(),
            [],
            label="jira_unassigned",
        ),
        settle(
            search_issues(
                client,
                creds,
                f'{clause}text ~ "{search_term}" AND status != "Done" ORDER BY updated DESC',
            )
            if want_keyword
            else _empty(),
            [],
            label="jira_keyword",
        ),
    )

    issues = _merge_by_key([detail] if detail else [], sprint, blocked, unassigned, found)
    logger.info(
        "jira_context_built",
        projects=len(projects),
        sprint_issues=len(sprint),
        issues=len(issues),
        ticket=ticket,
    )
    return format_jira_context(JiraEvidence(projects=projects, sprint_issues=sprint, issues=issues))
