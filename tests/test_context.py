"""Tests for live context aggregation across sources."""

from __future__ import annotations

import re
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from app.schemas.chat import ChatMessage
from app.services.context import (
    GITHUB_ERROR_MARKER,
    build_context_block,
    fetch_live_context,
    format_integration_status,
)
from app.services.evidence import TeamMember
from app.services.integrations import GitHubCredentials, JiraCredentials, UserIntegrations
from app.services.intent import DetectedIntent, detect_intent

GITHUB = GitHubCredentials(token="ghp_test", org="acme")
JIRA = JiraCredentials(base_url="https://acme.atlassian.net", email="pm@acme.io", api_token="tok")
DEMO = UserIntegrations(
    github=GitHubCredentials(token="DEMO_MODE"),
    jira=JiraCredentials(base_url="https://demo.atlassian.net", email="demo@example.com", api_token="DEMO_MODE"),
)


def _recording_client(calls: list[httpx.Request]) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(404)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_no_flags_means_no_fetches() -> None:
    calls: list[httpx.Request] = []
    intent = detect_intent([ChatMessage(role="user", content="Hello there, how are you today?")])

    with (
        patch("app.services.context.build_github_context", new_callable=AsyncMock) as gh,
        patch("app.services.context.build_jira_context", new_callable=AsyncMock) as jira,
    ):
        async with _recording_client(calls) as client:
            result = await fetch_live_context(client, intent, UserIntegrations(github=GITHUB, jira=JIRA))

    assert result == ""
    assert calls == []
    gh.assert_not_awaited()
    jira.assert_not_awaited()


@pytest.mark.asyncio
async def test_unconnected_source_is_not_fetched() -> None:
    intent = DetectedIntent(needs_github=True, needs_jira=True)

    with (
        patch("app.services.context.build_github_context", new_callable=AsyncMock) as gh,
        patch("app.services.context.build_jira_context", new_callable=AsyncMock, return_value="<jira_context>\nx\n</jira_context>") as jira,
    ):
        async with httpx.AsyncClient() as client:
            result = await fetch_live_context(client, intent, UserIntegrations(jira=JIRA))

    gh.assert_not_awaited()
    jira.assert_awaited_once()
    assert result == "<jira_context>\nx\n</jira_context>"


@pytest.mark.asyncio
async def test_failing_source_becomes_marker_and_sibling_survives() -> None:
    intent = DetectedIntent(needs_github=True, needs_jira=True)

    with (
        patch("app.services.context.build_github_context", new_callable=AsyncMock, side_effect=RuntimeError("boom")),
        patch("app.services.context.build_jira_context", new_callable=AsyncMock, return_value="<jira_projects>\n  PAY\n</jira_projects>"),
    ):
        async with httpx.AsyncClient() as client:
            result = await fetch_live_context(client, intent, UserIntegrations(github=GITHUB, jira=JIRA))

    assert result == f"{GITHUB_ERROR_MARKER}\n\n<jira_projects>\n  PAY\n</jira_projects>"


@pytest.mark.asyncio
async def test_blocked_backlog_question_reaches_only_the_tracker() -> None:
    calls: list[httpx.Request] = []
    messages = [
        ChatMessage(role="assistant", content="Hi! Ask me about your projects."),
        ChatMessage(role="user", content="What's blocked in the backlog?"),
    ]
    intent = detect_intent(messages)

    async with _recording_client(calls) as client:
        block = await build_context_block(client, intent, DEMO, [])

    assert calls == []
    assert "<jira_context>" in block
    assert "BACK-1237" in block
    assert "<github_" not in block
    assert "<integration_status>" not in block


def test_integration_status_lists_each_missing_source() -> None:
    status = format_integration_status(UserIntegrations(github=GITHUB))

    assert "Jira: not connected" in status
    assert "GitHub" not in status
    assert "Tip: Connect integrations" in status
    assert format_integration_status(UserIntegrations(github=GITHUB, jira=JIRA)) == ""


@pytest.mark.asyncio
async def test_context_block_order_team_live_status() -> None:
    team = [TeamMember(name="Sarah Chen", role="Backend", github="sarachen", expertise=["payments"], capacity=80, active_tasks=3)]
    intent = DetectedIntent(needs_github=True)

    async with httpx.AsyncClient() as client:
        block = await build_context_block(client, intent, UserIntegrations(github=DEMO.github), team)

    team_at = block.index("<team_context>")
    repos_at = block.index("<github_repos>")
    status_at = block.index("<integration_status>")
    assert team_at < repos_at < status_at
    assert "capacity: 80% | active tasks: 3" in block
    assert "Jira: not connected" in block


@pytest.mark.asyncio
async def test_nothing_connected_and_nothing_asked_still_notes_status() -> None:
    async with httpx.AsyncClient() as client:
        block = await build_context_block(client, DetectedIntent(), UserIntegrations(), [])

    assert block.startswith("<integration_status>")
    assert "GitHub: not connected" in block
    assert "Jira: not connected" in block


@pytest.mark.asyncio
async def test_demo_context_fields_are_tag_free_and_capped() -> None:
    intent = DetectedIntent(needs_github=True, needs_jira=True, wants_commits=True, wants_issues=True, repo_hint="payment-service")

    async with httpx.AsyncClient() as client:
        block = await build_context_block(client, intent, DEMO, [])

    section_tag = re.compile(r"</?[a-z_]+>")
    body = section_tag.sub("", block)
    assert "<" not in body
    assert ">" not in body
    for line in body.splitlines():
        assert len(line) < 1000
