"""Live context orchestration across the connected sources.

Dispatches the GitHub and Jira connectors the detected intent asks for,
concurrently, and joins the results into one context block for the model.
A failing source is replaced by an error marker; it never cancels or fails
the other source.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from app.services.github_client import build_github_context
from app.services.integrations import format_team_context
from app.services.jira_client import build_jira_context

if TYPE_CHECKING:
    import httpx

    from app.services.evidence import TeamMember
    from app.services.integrations import UserIntegrations
    from app.services.intent import DetectedIntent

logger = structlog.get_logger()

GITHUB_ERROR_MARKER = "<github_error>GitHub data temporarily unavailable</github_error>"
JIRA_ERROR_MARKER = "<jira_error>Jira data temporarily unavailable</jira_error>"


async def fetch_live_context(
    client: httpx.AsyncClient,
    intent: DetectedIntent,
    integrations: UserIntegrations,
) -> str:
    """Fetch GitHub and Jira context in parallel; ``""`` when nothing is needed."""
    sources: list[tuple[str, str]] = []
    fetches = []

    if intent.needs_github and integrations.github is not None:
        sources.append(("github", GITHUB_ERROR_MARKER))
        fetches.append(build_github_context(client, integrations.github, intent))
    if intent.needs_jira and integrations.jira is not None:
        sources.append(("jira", JIRA_ERROR_MARKER))
        fetches.append(build_jira_context(client, integrations.jira, intent))

    if not fetches:
        return ""

    results = await asyncio.gather(*fetches, return_exceptions=True)

    sections: list[str] = []
    for (source, marker), result in zip(sources, results):
        if isinstance(result, Exception):
            logger.error("source_context_failed", source=source, error=repr(result))
            sections.append(marker)
        elif isinstance(result, BaseException):
            raise result
        elif result.strip():
            sections.append(result.strip())
    return "\n\n".join(sections)


def format_integration_status(integrations: UserIntegrations) -> str:
    """Note each unconnected source, or ``""`` when both are connected."""
    lines = []
    if integrations.github is None:
        lines.append("  GitHub: not connected (no live repo data available)")
    if integrations.jira is None:
        lines.append("  Jira: not connected (no live ticket data available)")
    if not lines:
        return ""
    lines.append("  Tip: Connect integrations in the Integrations page for live data.")
    return "<integration_status>\n" + "\n".join(lines) + "\n</integration_status>"


async def build_context_block(
    client: httpx.AsyncClient,
    intent: DetectedIntent,
    integrations: UserIntegrations,
    team_members: list[TeamMember],
) -> str:
    """Assemble team roster, live source context and integration status."""
    live = await fetch_live_context(client, intent, integrations)
    parts = [format_team_context(team_members), live]
    block = "\n\n".join(p for p in parts if p)

    status = format_integration_status(integrations)
    if status:
        block = f"{block}\n{status}" if block else status
    return block
