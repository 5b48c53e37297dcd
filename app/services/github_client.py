"""GitHub REST API connector that deep-crawls a connected account for chat context.

Always lists the repository inventory, then, depending on the detected
intent, fetches open pull requests, open issues, recent commits and README
snippets for a handful of "deep" repositories.  Every GET goes through
``_get_json``, which turns 404s, error statuses, transport failures and bad
JSON into ``None``; a missing category is simply left out of the context.

The token belongs to the caller, so results are scoped to their own repos
and organisations.  GitHub allows 5,000 requests/hour per token; one chat
turn issues at most ``1 + 3 * MAX_DEEP_REPOS + MAX_README_REPOS`` calls.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx
import structlog

from app.config import settings
from app.services.demo import demo_github_evidence, is_demo_secret
from app.services.evidence import (
    CommitSummary,
    GitHubEvidence,
    PullRequest,
    ReadmeSnippet,
    RepoIssue,
    RepoSummary,
)
from app.services.fanout import gather_settled, settle
from app.services.sanitize import sanitize_external_text

if TYPE_CHECKING:
    from app.services.integrations import GitHubCredentials
    from app.services.intent import DetectedIntent

logger = structlog.get_logger()

PER_PAGE_REPOS = 50
PER_PAGE_PRS = 15
PER_PAGE_ISSUES = 10
PER_PAGE_COMMITS = 10
MAX_DEEP_REPOS = 5
MAX_HINT_REPOS = 2
MAX_README_REPOS = 3
MAX_TOPICS = 8

README_MAX_CHARS = 800
BODY_MAX_CHARS = 500
SEARCH_BODY_MAX_CHARS = 300
TITLE_MAX_CHARS = 200
DESCRIPTION_MAX_CHARS = 200
COMMIT_MESSAGE_MAX_CHARS = 150
NAME_MAX_CHARS = 100

COMMIT_KEYWORDS = ("commit", "push", "recent", "changes", "history")
README_KEYWORDS = ("readme", "about", "what", "purpose", "does")

_GITHUB_HEADERS_BASE = {
    "Accept": "application/vnd.github+json",
    "X-GitHub-Api-Version": "2022-11-28",
    "User-Agent": "pm-companion-chat",
}


def _auth_headers(token: str) -> dict[str, str]:
    """Build GitHub API headers with Bearer auth."""
    return {**_GITHUB_HEADERS_BASE, "Authorization": f"Bearer {token}"}


async def _get_json(
    client: httpx.AsyncClient,
    token: str,
    path: str,
    params: dict[str, Any] | None = None,
) -> Any | None:
    """GET a GitHub API path and return its JSON, or None on any failure."""
    url = f"{settings.github_api_base}{path}"
    try:
        resp = await client.get(url, params=params, headers=_auth_headers(token))
    except httpx.HTTPError as exc:
        logger.warning("github_fetch_error", path=path, error=repr(exc))
        return None
    if resp.status_code == 404:
        return None
    if resp.is_error:
        logger.warning("github_fetch_status", path=path, status=resp.status_code)
        return None
    try:
        return resp.json()
    except ValueError:
        logger.warning("github_fetch_bad_json", path=path)
        return None


def _short(value: object) -> str:
    return sanitize_external_text(value, NAME_MAX_CHARS)


def _day(value: object) -> str:
    return str(value or "")[:10]


def _repo_name(full_name: str) -> str:
    return full_name.split("/", 1)[-1]


def _login(user: object) -> str:
    if isinstance(user, dict):
        return _short(user.get("login")) or "unknown"
    return "unknown"


def _labels(item: dict) -> list[str]:
    return [_short(label.get("name")) for label in item.get("labels") or [] if isinstance(label, dict)]


# ---------------------------------------------------------------------------
# Fetchers
# ---------------------------------------------------------------------------


async def fetch_all_repos(client: httpx.AsyncClient, creds: GitHubCredentials) -> list[RepoSummary]:
    """List repositories visible to the token, most recently updated first."""
    if creds.org:
        path = f"/orgs/{quote(creds.org, safe='')}/repos"
        params: dict[str, Any] = {"sort": "updated", "per_page": PER_PAGE_REPOS, "type": "all"}
    else:
        path = "/user/repos"
        params = {
            "affiliation": "owner,collaborator,organization_member",
            "sort": "updated",
            "per_page": PER_PAGE_REPOS,
        }

    data = await _get_json(client, creds.token, path, params)
    if not isinstance(data, list):
        return []

    return [
        RepoSummary(
            full_name=_short(repo.get("full_name")),
            name=_short(repo.get("name")),
            description=sanitize_external_text(repo.get("description"), DESCRIPTION_MAX_CHARS),
            language=_short(repo.get("language")) or "unknown",
            stars=repo.get("stargazers_count") or 0,
            open_issues=repo.get("open_issues_count") or 0,
            updated_at=_day(repo.get("updated_at")),
            topics=[_short(t) for t in (repo.get("topics") or [])[:MAX_TOPICS]],
        )
        for repo in data
        if isinstance(repo, dict) and repo.get("full_name")
    ]


async def fetch_readme_snippet(client: httpx.AsyncClient, token: str, full_name: str) -> str:
    """Return the sanitized start of a repository README, or ``""``."""
    data = await _get_json(client, token, f"/repos/{full_name}/readme")
    if not isinstance(data, dict) or not data.get("content"):
        return ""
    try:
        decoded = base64.b64decode(str(data["content"]).replace("\n", ""))
    except (binascii.Error, ValueError):
        return ""
    return sanitize_external_text(decoded.decode("utf-8", errors="replace"), README_MAX_CHARS)


async def fetch_repo_prs(
    client: httpx.AsyncClient,
    token: str,
    full_name: str,
    state: str = "open",
) -> list[PullRequest]:
    """List pull requests of one repository, most recently updated first."""
    data = await _get_json(
        client,
        token,
        f"/repos/{full_name}/pulls",
        {"state": state, "sort": "updated", "direction": "desc", "per_page": PER_PAGE_PRS},
    )
    if not isinstance(data, list):
        return []

    repo = _repo_name(full_name)
    return [
        PullRequest(
            repo=repo,
            number=pr.get("number") or 0,
            title=sanitize_external_text(pr.get("title"), TITLE_MAX_CHARS),
            state=_short(pr.get("state")),
            author=_login(pr.get("user")),
            updated_at=_day(pr.get("updated_at")),
            reviewers=[
                *(_login(r) for r in pr.get("requested_reviewers") or []),
                *(_short(t.get("slug")) for t in pr.get("requested_teams") or [] if isinstance(t, dict)),
            ],
            labels=_labels(pr),
            additions=pr.get("additions") or 0,
            deletions=pr.get("deletions") or 0,
            body_snippet=sanitize_external_text(pr.get("body"), BODY_MAX_CHARS),
            url=str(pr.get("html_url") or ""),
        )
        for pr in data
        if isinstance(pr, dict)
    ]


async def fetch_org_wide_prs(
    client: httpx.AsyncClient,
    creds: GitHubCredentials,
    limit: int = PER_PAGE_PRS,
) -> list[PullRequest]:
    """Search open pull requests across the whole org or user account."""
    if creds.org:
        scope = f"org:{creds.org}"
    elif creds.username:
        scope = f"user:{creds.username}"
    else:
        return []

    data = await _get_json(
        client,
        creds.token,
        "/search/issues",
        {"q": f"is:pr is:open {scope}", "sort": "updated", "per_page": limit},
    )
    if not isinstance(data, dict):
        return []

    return [
        PullRequest(
            repo=_short(str(item.get("repository_url") or "").rsplit("/", 1)[-1]) or "unknown",
            number=item.get("number") or 0,
            title=sanitize_external_text(item.get("title"), TITLE_MAX_CHARS),
            state=_short(item.get("state")),
            author=_login(item.get("user")),
            updated_at=_day(item.get("updated_at")),
            labels=_labels(item),
            body_snippet=sanitize_external_text(item.get("body"), SEARCH_BODY_MAX_CHARS),
            url=str(item.get("html_url") or ""),
        )
        for item in data.get("items") or []
        if isinstance(item, dict)
    ]


async def fetch_repo_issues(client: httpx.AsyncClient, token: str, full_name: str) -> list[RepoIssue]:
    """List open issues of one repository, excluding pull requests."""
    data = await _get_json(
        client,
        token,
        f"/repos/{full_name}/issues",
        {"state": "open", "sort": "updated", "per_page": PER_PAGE_ISSUES},
    )
    if not isinstance(data, list):
        return []

    repo = _repo_name(full_name)
    return [
        RepoIssue(
            repo=repo,
            number=issue.get("number") or 0,
            title=sanitize_external_text(issue.get("title"), TITLE_MAX_CHARS),
            state=_short(issue.get("state")),
            author=_login(issue.get("user")),
            updated_at=_day(issue.get("updated_at")),
            labels=_labels(issue),
            body_snippet=sanitize_external_text(issue.get("body"), BODY_MAX_CHARS),
            url=str(issue.get("html_url") or ""),
        )
        for issue in data
        if isinstance(issue, dict) and "pull_request" not in issue
    ]


async def fetch_repo_commits(client: httpx.AsyncClient, token: str, full_name: str) -> list[CommitSummary]:
    """List the most recent commits of one repository (first message line only)."""
    data = await _get_json(
        client, token, f"/repos/{full_name}/commits", {"per_page": PER_PAGE_COMMITS}
    )
    if not isinstance(data, list):
        return []

    repo = _repo_name(full_name)
    commits: list[CommitSummary] = []
    for c in data:
        if not isinstance(c, dict):
            continue
        commit = c.get("commit") or {}
        author = commit.get("author") or {}
        first_line = str(commit.get("message") or "").split("\n", 1)[0]
        commits.append(
            CommitSummary(
                repo=repo,
                sha=str(c.get("sha") or "")[:7],
                message=sanitize_external_text(first_line, COMMIT_MESSAGE_MAX_CHARS),
                author=_short(author.get("name")) or _login(c.get("author")),
                date=_day(author.get("date")),
                url=str(c.get("html_url") or ""),
            )
        )
    return commits


def select_deep_repos(repos: list[RepoSummary], repo_hint: str | None) -> list[RepoSummary]:
    """Pick up to ``MAX_DEEP_REPOS`` repos: hint matches first, then most recent."""
    deep: list[RepoSummary] = []
    if repo_hint:
        hint = repo_hint.lower()
        deep = [
            r for r in repos if hint in r.name.lower() or hint in r.full_name.lower()
        ][:MAX_HINT_REPOS]

    chosen = {r.full_name for r in deep}
    for repo in repos:
        if len(deep) >= MAX_DEEP_REPOS:
            break
        if repo.full_name not in chosen:
            deep.append(repo)
            chosen.add(repo.full_name)
    return deep


# ---------------------------------------------------------------------------
# Section formatting
# ---------------------------------------------------------------------------


def _section(tag: str, lines: list[str], sep: str = "\n\n") -> str:
    return f"<{tag}>\n{sep.join(lines)}\n</{tag}>"


def format_github_context(evidence: GitHubEvidence) -> str:
    """Render GitHub evidence as tagged sections, skipping empty categories."""
    parts: list[str] = []

    if evidence.repos:
        lines = []
        for r in evidence.repos:
            topics = f" [{', '.join(r.topics)}]" if r.topics else ""
            lines.append(
                f"  {r.full_name} | {r.language} | ★{r.stars} | {r.open_issues} open issues"
                f" | updated {r.updated_at}{topics}\n    {r.description or '(no description)'}"
            )
        parts.append(_section("github_repos", lines))

    if evidence.pull_requests:
        lines = []
        for pr in evidence.pull_requests:
            reviewers = (
                f" | reviewers: {', '.join('@' + r for r in pr.reviewers)}" if pr.reviewers else ""
            )
            diff = f" | +{pr.additions}/-{pr.deletions}" if pr.additions + pr.deletions > 0 else ""
            labels = f" | [{', '.join(pr.labels)}]" if pr.labels else ""
            summary = f"\n  summary: {pr.body_snippet}" if pr.body_snippet else ""
            lines.append(
                f'  [PR] {pr.repo}#{pr.number}: "{pr.title}"\n'
                f"  state={pr.state} | author=@{pr.author} | updated={pr.updated_at}"
                f"{reviewers}{diff}{labels}{summary}"
            )
        parts.append(_section("github_prs", lines))

    if evidence.issues:
        lines = []
        for i in evidence.issues:
            labels = f" | [{', '.join(i.labels)}]" if i.labels else ""
            summary = f"\n  summary: {i.body_snippet}" if i.body_snippet else ""
            lines.append(
                f'  [ISSUE] {i.repo}#{i.number}: "{i.title}"\n'
                f"  state={i.state} | author=@{i.author} | updated={i.updated_at}{labels}{summary}"
            )
        parts.append(_section("github_issues", lines))

    if evidence.commits:
        lines = [
            f'  [{c.repo}] {c.sha} {c.date}: "{c.message}" by {c.author}' for c in evidence.commits
        ]
        parts.append(_section("github_commits", lines, sep="\n"))

    if evidence.readmes:
        lines = [f"  [{r.repo} README]\n  {r.snippet}" for r in evidence.readmes]
        parts.append(_section("github_readmes", lines))

    return "\n\n".join(parts)


# ---------------------------------------------------------------------------
# Context assembly
# ---------------------------------------------------------------------------


async def _collect_pull_requests(
    client: httpx.AsyncClient,
    creds: GitHubCredentials,
    intent: DetectedIntent,
    deep: list[RepoSummary],
) -> list[PullRequest]:
    per_repo = bool(intent.repo_hint and deep) or not (creds.org or creds.username)
    if not per_repo:
        return await fetch_org_wide_prs(client, creds)
    batches = await gather_settled(
        *(fetch_repo_prs(client, creds.token, r.full_name) for r in deep), label="github_prs"
    )
    return [pr for batch in batches for pr in batch]


async def _collect_issues(
    client: httpx.AsyncClient, token: str, deep: list[RepoSummary]
) -> list[RepoIssue]:
    batches = await gather_settled(
        *(fetch_repo_issues(client, token, r.full_name) for r in deep), label="github_issues"
    )
    return [issue for batch in batches for issue in batch]


async def _collect_commits(
    client: httpx.AsyncClient, token: str, deep: list[RepoSummary]
) -> list[CommitSummary]:
    batches = await gather_settled(
        *(fetch_repo_commits(client, token, r.full_name) for r in deep), label="github_commits"
    )
    return [commit for batch in batches for commit in batch]


async def _collect_readmes(
    client: httpx.AsyncClient, token: str, deep: list[RepoSummary]
) -> list[ReadmeSnippet]:
    repos = deep[:MAX_README_REPOS]
    snippets = await asyncio.gather(
        *(settle(fetch_readme_snippet(client, token, r.full_name), "", label="github_readme") for r in repos)
    )
    return [ReadmeSnippet(repo=r.name, snippet=s) for r, s in zip(repos, snippets) if s]


async def _skip() -> list:
    return []


async def build_github_context(
    client: httpx.AsyncClient,
    creds: GitHubCredentials,
    intent: DetectedIntent,
) -> str:
    """Build the GitHub part of the context block for *intent*.

    Demo credentials short-circuit to canned evidence without any request.
    """
    if is_demo_secret(creds.token):
        logger.info("github_demo_context")
        return format_github_context(demo_github_evidence())

    repos = await fetch_all_repos(client, creds)
    deep = select_deep_repos(repos, intent.repo_hint)

    want_commits = intent.wants_commits or intent.mentions(*COMMIT_KEYWORDS)
    want_readmes = intent.repo_hint is not None or intent.mentions(*README_KEYWORDS)

    prs, issues, commits, readmes = await asyncio.gather(
        settle(_collect_pull_requests(client, creds, intent, deep), [], label="github_prs"),
        settle(_collect_issues(client, creds.token, deep) if intent.wants_issues else _skip(), [], label="github_issues"),
        settle(_collect_commits(client, creds.token, deep) if want_commits else _skip(), [], label="github_commits"),
        settle(_collect_readmes(client, creds.token, deep) if want_readmes else _skip(), [], label="github_readmes"),
    )

    logger.info(
        "github_context_built",
        repos=len(repos),
        deep_repos=len(deep),
        pull_requests=len(prs),
        issues=len(issues),
        commits=len(commits),
        readmes=len(readmes),
    )
    return format_github_context(
        GitHubEvidence(
            repos=repos,
            pull_requests=prs,
            issues=issues,
            commits=commits,
            readmes=readmes,
        )
    )
