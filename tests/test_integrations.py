"""Tests for credential and roster reads."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.services.evidence import TeamMember
from app.services.integrations import (
    format_team_context,
    load_team_members,
    load_user_integrations,
)


def _session(rows: list[SimpleNamespace]) -> AsyncMock:
    session = AsyncMock(spec=AsyncSession)
    session.execute.return_value = rows
    return session


def _integration(type_: str, token: str | None, meta: object) -> SimpleNamespace:
    return SimpleNamespace(type=type_, access_token=token, meta=meta)


@pytest.mark.asyncio
async def test_loads_both_sources() -> None:
    session = _session(
        [
            _integration("github", "ghp_x", {"username": "sarachen", "org": "acme"}),
            _integration("jira", "jira_tok", {"base_url": "https://acme.atlassian.net/", "email": "pm@acme.io"}),
        ]
    )

    result = await load_user_integrations(session, "user-1")

    assert result.github is not None
    assert result.github.token == "ghp_x"
    assert result.github.org == "acme"
    assert result.jira is not None
    assert result.jira.base_url == "https://acme.atlassian.net"
    assert result.jira.api_token == "jira_tok"
    session.execute.assert_awaited_once()


@pytest.mark.asyncio
async def test_first_row_per_source_wins() -> None:
    session = _session(
        [
            _integration("github", "newest", {}),
            _integration("github", "older", {"org": "old-org"}),
        ]
    )

    result = await load_user_integrations(session, "user-1")

    assert result.github is not None
    assert result.github.token == "newest"
    assert result.github.org is None


@pytest.mark.asyncio
async def test_incomplete_rows_are_not_connected() -> None:
    session = _session(
        [
            _integration("github", None, {}),
            _integration("github", "", {}),
            _integration("jira", "tok", {"base_url": "https://acme.atlassian.net"}),
            _integration("jira", "tok", None),
            _integration("slack", "xoxb", {}),
        ]
    )

    result = await load_user_integrations(session, "user-1")

    assert result.github is None
    assert result.jira is None


def test_credentials_repr_hides_secrets() -> None:
    from app.services.integrations import GitHubCredentials, JiraCredentials

    assert "ghp_secret" not in repr(GitHubCredentials(token="ghp_secret"))
    assert "tok_secret" not in repr(JiraCredentials("https://x", "a@b.c", "tok_secret"))


@pytest.mark.asyncio
async def test_team_members_are_sanitized() -> None:
    session = _session(
        [
            SimpleNamespace(
                name="<b>Sarah</b> Chen",
                role="Backend\nEngineer",
                github="sarachen",
                expertise=["payments", "<script>go</script>"],
                capacity=80,
                active_tasks=3,
            ),
            SimpleNamespace(name=None, role=None, github=None, expertise=None, capacity=None, active_tasks=None),
        ]
    )

    members = await load_team_members(session, "user-1")

    assert members[0] == TeamMember(
        name="Sarah Chen",
        role="Backend Engineer",
        github="sarachen",
        expertise=["payments", "go"],
        capacity=80,
        active_tasks=3,
    )
    assert members[1] == TeamMember(name="Unknown", role="", github=None, expertise=[], capacity=100, active_tasks=0)


def test_format_team_context() -> None:
    text = format_team_context(
        [
            TeamMember("Sarah Chen", "Backend", "sarachen", ["payments", "go"], 80, 3),
            TeamMember("Lisa Wang", "QA", None, [], 100, 0),
        ]
    )

    assert text.startswith("<team_context>\n")
    assert text.endswith("\n</team_context>")
    assert "  Sarah Chen (Backend)\n  expertise: payments, go\n  capacity: 80% | active tasks: 3\n  github: sarachen" in text
    assert "expertise: general" in text
    assert format_team_context([]) == ""
