"""End-to-end tests for the chat pipeline against live-style connectors.

Credentials and roster come from the mocked store session; GitHub and Jira
are served by ``source_handler`` through the connectors' mock transport, so
every layer between the HTTP request and the model call runs for real.
"""

from __future__ import annotations

import base64
from types import SimpleNamespace
from typing import TYPE_CHECKING

import httpx
import pytest

if TYPE_CHECKING:
    from collections.abc import Callable
    from unittest.mock import AsyncMock

    from httpx import AsyncClient

    from app.services.gemini_client import InMemoryLLMClient

QUESTION = "Which open PRs in billing-service touch WEB-42?"


def _integration_rows() -> list[SimpleNamespace]:
    return [
        SimpleNamespace(type="github", access_token="ghp_live", meta={"username": "acme-dev"}),
        SimpleNamespace(
            type="jira",
            access_token="jira-live-token",
            meta={"base_url": "https://acme.atlassian.net/", "email": "pm@acme.test"},
        ),
    ]


def _roster_rows() -> list[SimpleNamespace]:
    return [
        SimpleNamespace(
            name="Priya Shah",
            role="Backend Engineer",
            github="priya-s",
            expertise=["payments", "python"],
            capacity=80,
            active_tasks=3,
        )
    ]


def _github(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/user/repos":
        return httpx.Response(
            200,
            json=[
                {
                    "full_name": "acme/billing-service",
                    "name": "billing-service",
                    "description": "Invoices and payment retries",
                    "language": "Python",
                    "stargazers_count": 3,
                    "open_issues_count": 1,
                    "updated_at": "2026-10-01T09:00:00Z",
                    "topics": ["payments"],
                },
                {
                    "full_name": "acme/web-app",
                    "name": "web-app",
                    "description": None,
                    "language": "TypeScript",
                    "updated_at": "2026-09-28T12:00:00Z",
                },
            ],
        )
    if path == "/repos/acme/billing-service/pulls":
        return httpx.Response(
            200,
            json=[
                {
                    "number": 7,
                    "title": "Retry failed invoices (WEB-42)",
                    "state": "open",
                    "user": {"login": "priya-s"},
                    "updated_at": "2026-10-02T10:00:00Z",
                    "requested_reviewers": [{"login": "sam-k"}],
                    "labels": [{"name": "payments"}],
                    "body": "Adds exponential backoff.",
                    "html_url": "https://github.com/acme/billing-service/pull/7",
                }
            ],
        )
    if path == "/repos/acme/billing-service/readme":
        content = base64.b64encode(b"# Billing service\nHandles invoices.").decode()
        return httpx.Response(200, json={"content": content})
    return httpx.Response(404, json={"message": "Not Found"})


def _jira(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/rest/api/3/project/search":
        return httpx.Response(200, json={"values": [{"key": "WEB", "name": "Web Platform", "projectTypeKey": "software"}]})
    if path == "/rest/api/3/issue/WEB-42":
        return httpx.Response(
            200,
            json={
                "key": "WEB-42",
                "fields": {
                    "summary": "Invoice retries",
                    "status": {"name": "In Progress"},
                    "priority": {"name": "High"},
                    "issuetype": {"name": "Story"},
                    "project": {"name": "Web Platform", "key": "WEB"},
                    "assignee": {"displayName": "Priya Shah"},
                    "updated": "2026-10-02T11:00:00.000+0000",
                    "description": {
                        "type": "doc",
                        "content": [{"type": "paragraph", "content": [{"type": "text", "text": "Retry with backoff."}]}],
                    },
                    "comment": {"total": 0, "comments": []},
                },
            },
        )
    return httpx.Response(404, json={"errorMessages": ["not found"]})


@pytest.fixture
def down_hosts() -> set[str]:
    """Hosts that answer every request with 503."""
    return set()


@pytest.fixture
def source_handler(down_hosts: set[str]) -> Callable[[httpx.Request], httpx.Response]:
    """Route connector requests to fake GitHub and Jira hosts."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host in down_hosts:
            return httpx.Response(503, text="maintenance")
        if request.url.host == "api.github.com":
            return _github(request)
        if request.url.host == "acme.atlassian.net":
            return _jira(request)
        return httpx.Response(500)

    return handler


@pytest.fixture
def store_rows(mock_db_session: AsyncMock) -> AsyncMock:
    mock_db_session.execute.side_effect = [_integration_rows(), _roster_rows()]
    return mock_db_session


@pytest.mark.asyncio
async def test_full_pipeline_grounds_answer_in_live_sources(
    client: AsyncClient,
    auth_headers: dict[str, str],
    store_rows: AsyncMock,
    mock_llm_client: InMemoryLLMClient,
) -> None:
    response = await client.post(
        "/chat", json={"messages": [{"role": "user", "content": QUESTION}]}, headers=auth_headers
    )

    assert response.status_code == 200
    assert response.text.endswith("data: [DONE]\n\n")

    context = mock_llm_client.calls[0]["contents"][-1].parts[0].text
    assert "<team_context>" in context
    assert "Priya Shah (Backend Engineer)" in context
    assert "acme/billing-service | Python" in context
    assert '[PR] billing-service#7: "Retry failed invoices (WEB-42)"' in context
    assert "reviewers: @sam-k" in context
    assert "[billing-service README]" in context
    assert "  WEB: Web Platform (software)" in context
    assert '[STORY] WEB-42: "Invoice retries"' in context
    assert "description: Retry with backoff." in context
    assert "<integration_status>" not in context
    assert context.endswith(f"User question: {QUESTION}")


@pytest.mark.asyncio
async def test_connectors_authenticate_each_source(
    client: AsyncClient,
    auth_headers: dict[str, str],
    store_rows: AsyncMock,
    source_requests: list[httpx.Request],
) -> None:
    await client.post("/chat", json={"messages": [{"role": "user", "content": QUESTION}]}, headers=auth_headers)

    github = [r for r in source_requests if r.url.host == "api.github.com"]
    jira = [r for r in source_requests if r.url.host == "acme.atlassian.net"]
    assert github and jira
    assert all(r.headers["authorization"] == "Bearer ghp_live" for r in github)
    assert all(r.headers["x-github-api-version"] == "2022-11-28" for r in github)
    basic = "Basic " + base64.b64encode(b"pm@acme.test:jira-live-token").decode()
    assert all(r.headers["authorization"] == basic for r in jira)
    assert all(r.method == "GET" for r in source_requests)


@pytest.mark.asyncio
async def test_jira_outage_leaves_github_context_intact(
    client: AsyncClient,
    auth_headers: dict[str, str],
    store_rows: AsyncMock,
    mock_llm_client: InMemoryLLMClient,
    down_hosts: set[str],
) -> None:
    down_hosts.add("acme.atlassian.net")

    response = await client.post(
        "/chat", json={"messages": [{"role": "user", "content": QUESTION}]}, headers=auth_headers
    )

    assert response.status_code == 200
    context = mock_llm_client.calls[0]["contents"][-1].parts[0].text
    assert "billing-service#7" in context
    assert "<jira_context>" not in context
