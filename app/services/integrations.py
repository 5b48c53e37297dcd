"""Per-caller credential and team roster reads.

Both are read fresh on every chat request; nothing is cached.  Only
connected integrations with a usable secret are returned, at most one per
source.  Jira additionally needs ``base_url`` and ``email`` in its metadata.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy import select

from app.db.models import Integration, RosterEntry
from app.services.evidence import TeamMember
from app.services.sanitize import sanitize_external_text

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

NAME_MAX_CHARS = 100
EXPERTISE_MAX_ITEMS = 10


@dataclass(frozen=True)
class GitHubCredentials:
    """Personal access token plus optional account scope."""

    token: str = field(repr=False)
    username: str | None = None
    org: str | None = None


@dataclass(frozen=True)
class JiraCredentials:
    """Site URL plus email / API token for HTTP Basic auth."""

    base_url: str
    email: str
    api_token: str = field(repr=False)


@dataclass(frozen=True)
class UserIntegrations:
    """The caller's connected sources; ``None`` means not connected."""

    github: GitHubCredentials | None = None
    jira: JiraCredentials | None = None


async def load_user_integrations(session: AsyncSession, user_id: str) -> UserIntegrations:
    """Return the caller's connected GitHub and Jira credentials.

    When several connected rows exist for a source, the most recently
    updated one wins.
    """
    stmt = (
        select(
            Integration.type,
            Integration.access_token,
            Integration.metadata_.label("meta"),
        )
        .where(Integration.user_id == user_id, Integration.status == "connected")
        .order_by(Integration.updated_at.desc())
    )
    result = await session.execute(stmt)

    github: GitHubCredentials | None = None
    jira: JiraCredentials | None = None
    for row in result:
        meta = row.meta if isinstance(row.meta, dict) else {}
        if not row.access_token:
            continue

        if row.type == "github" and github is None:
            github = GitHubCredentials(
                token=row.access_token,
                username=meta.get("username") or None,
                org=meta.get("org") or None,
            )
        elif row.type == "jira" and jira is None and meta.get("base_url") and meta.get("email"):
            jira = JiraCredentials(
                base_url=str(meta["base_url"]).rstrip("/"),
                email=str(meta["email"]),
                api_token=row.access_token,
            )

    return UserIntegrations(github=github, jira=jira)


async def load_team_members(session: AsyncSession, user_id: str) -> list[TeamMember]:
    """Return the caller's full team roster ordered by name."""
    stmt = (
        select(
            RosterEntry.name,
            RosterEntry.role,
            RosterEntry.github,
            RosterEntry.expertise,
            RosterEntry.capacity,
            RosterEntry.active_tasks,
        )
        .where(RosterEntry.user_id == user_id)
        .order_by(RosterEntry.name)
    )
    result = await session.execute(stmt)
    return [
        TeamMember(
            name=sanitize_external_text(row.name, NAME_MAX_CHARS) or "Unknown",
            role=sanitize_external_text(row.role, NAME_MAX_CHARS),
            github=sanitize_external_text(row.github, NAME_MAX_CHARS) or None,
            expertise=[
                sanitize_external_text(e, NAME_MAX_CHARS)
                for e in (row.expertise or [])[:EXPERTISE_MAX_ITEMS]
            ],
            capacity=row.capacity if isinstance(row.capacity, int) else 100,
            active_tasks=row.active_tasks if isinstance(row.active_tasks, int) else 0,
        )
        for row in result
    ]


def format_team_context(members: list[TeamMember]) -> str:
    """Render the roster as a ``<team_context>`` section, or ``""`` if empty."""
    if not members:
        return ""
    blocks = []
    for m in members:
        lines = [
            f"  {m.name} ({m.role})",
            f"  expertise: {', '.join(e for e in m.expertise if e) or 'general'}",
            f"  capacity: {m.capacity}% | active tasks: {m.active_tasks}",
        ]
        if m.github:
            lines.append(f"  github: {m.github}")
        blocks.append("\n".join(lines))
    return "<team_context>\n" + "\n\n".join(blocks) + "\n</team_context>"
