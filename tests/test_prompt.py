"""Tests for the Gemini turn builder."""

from app.schemas.chat import ChatMessage
from app.services.prompt import QUESTION_RULE, SYSTEM_PROMPT, build_gemini_contents


def _history() -> list[ChatMessage]:
    return [
        ChatMessage(role="user", content="What's in the sprint?"),
        ChatMessage(role="assistant", content="Eleven tickets."),
        ChatMessage(role="user", content="Which are blocked?"),
    ]


def test_roles_are_mapped() -> None:
    contents = build_gemini_contents(_history(), "")
    assert [c.role for c in contents] == ["user", "model", "user"]


def test_context_only_in_last_user_turn() -> None:
    contents = build_gemini_contents(_history(), "<jira_context>\nBACK-1237\n</jira_context>")

    assert contents[0].parts[0].text == "What's in the sprint?"
    assert contents[1].parts[0].text == "Eleven tickets."
    assert contents[2].parts[0].text == (
        f"<jira_context>\nBACK-1237\n</jira_context>\n\n{QUESTION_RULE}\nUser question: Which are blocked?"
    )
    assert len(QUESTION_RULE) == 60


def test_empty_context_leaves_turn_verbatim() -> None:
    contents = build_gemini_contents(_history(), "")
    assert contents[-1].parts[0].text == "Which are blocked?"


def test_system_prompt_names_every_section_tag() -> None:
    for tag in (
        "team_context",
        "github_repos",
        "github_prs",
        "github_issues",
        "github_commits",
        "github_readmes",
        "jira_projects",
        "jira_sprint_summary",
        "jira_context",
    ):
        assert f"<{tag}>" in SYSTEM_PROMPT
    assert "READ-ONLY" in SYSTEM_PROMPT
