"""Keyword-based intent detection for chat questions.

Decides which external fetches are worth making for a question without an
extra model call.  ``detect_intent`` is a pure function of the conversation:
fixed vocabularies, a handful of regular expressions, no I/O.

Single-word vocabulary entries must match a whole token, so ``pr`` does not
fire on "project".  Multi-word phrases match on word boundaries against the
case-folded text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from app.schemas.chat import ChatMessage

RECENT_USER_TURNS = 3
MAX_KEYWORDS = 12
MIN_KEYWORD_LENGTH = 4

_TOKEN_SPLIT = re.compile(r"[\s,?.!;:()\[\]{}\"'`]+")

# Ticket keys are matched on the original-case text: PROJ-1234.
_TICKET_IN_TEXT = re.compile(r"\b([A-Z][A-Z0-9]+-\d{1,6})\b")
_TICKET_KEY = re.compile(r"[A-Z][A-Z0-9]+-\d{1,6}")
_PROJECT_KEY = re.compile(r"[A-Z][A-Z0-9]{0,9}")
_PROJECT_HINTS = (
    re.compile(r"\b(?i:project)[:\s]+([A-Z][A-Z0-9]{1,9})\b"),
    re.compile(r"\b([A-Z]{2,10})\s+(?i:project)\b"),
)
_REPO_HINTS = (
    re.compile(
        r"\b([\w-]{3,40}(?:-service|-api|-frontend|-backend|-app|-web|-gateway))\b",
        re.IGNORECASE,
    ),
    re.compile(r"\brepo(?:sitory)?\s+([A-Za-z][\w-]{2,39})", re.IGNORECASE),
)


@dataclass(frozen=True)
class Vocabulary:
    """A fixed set of single words and multi-word phrases."""

    words: frozenset[str]
    phrases: tuple[re.Pattern[str], ...]

    @classmethod
    def of(cls, *terms: str) -> Vocabulary:
        words = frozenset(t for t in terms if " " not in t)
        phrases = tuple(
            re.compile(rf"\b{re.escape(t)}\b") for t in terms if " " in t
        )
        return cls(words=words, phrases=phrases)

    def hit(self, tokens: frozenset[str], text: str) -> bool:
        """Return True if any word is a token or any phrase occurs in *text*."""
        if not self.words.isdisjoint(tokens):
            return True
        return any(p.search(text) for p in self.phrases)


GITHUB_SIGNALS = Vocabulary.of(
    "pull request", "pull requests", "pr", "prs", "merge", "merged", "branch",
    "branches", "commit", "commits", "review", "reviewer", "reviewers",
    "repository", "repositories", "repo", "repos", "code", "codebase", "diff",
    "push", "pushed", "contributor", "contributors", "fork", "who worked on",
    "recent changes", "open pr", "closed pr", "changes", "source", "file",
    "files", "readme", "workflow", "action", "actions", "github",
)

JIRA_SIGNALS = Vocabulary.of(
    "ticket", "tickets", "issue", "issues", "jira", "sprint", "sprints",
    "backlog", "story", "stories", "epic", "epics", "task", "tasks", "bug",
    "bugs", "blocked", "blocker", "blockers", "status", "priority", "assign",
    "assignee", "unassigned", "done", "in progress", "in review", "to do",
    "feature", "fix", "project", "projects", "velocity", "burndown", "roadmap",
    "milestone", "milestones", "workload", "capacity",
)

SPRINT_SIGNALS = Vocabulary.of(
    "sprint", "velocity", "burndown", "sprint status", "sprint progress",
    "current sprint", "active sprint",
)

BLOCKED_SIGNALS = Vocabulary.of(
    "blocked", "blocker", "blockers", "stuck", "impediment", "impediments",
)

ASSIGNMENT_SIGNALS = Vocabulary.of(
    "assign", "who should", "best person", "recommend", "ownership",
    "unassigned", "workload", "capacity", "available",
)

PR_REVIEW_SIGNALS = Vocabulary.of(
    "review", "reviewer", "reviewers", "needs review", "code review", "approve",
    "approved", "pending review", "who should review",
)

COMMIT_SIGNALS = Vocabulary.of(
    "commit", "commits", "push", "pushed", "recent changes", "history",
    "what changed", "changelog", "who changed",
)

ISSUE_SIGNALS = Vocabulary.of(
    "bug", "bugs", "issue", "issues", "error", "errors", "fix", "problem",
    "problems", "crash",
)


@dataclass(frozen=True)
class DetectedIntent:
    """What the current question needs from GitHub and Jira."""

    needs_github: bool = False
    needs_jira: bool = False
    keywords: tuple[str, ...] = ()
    repo_hint: str | None = None
    project_hint: str | None = None
    ticket_hint: str | None = None
    wants_sprint_status: bool = False
    wants_blocked_items: bool = False
    wants_assignment: bool = False
    wants_pr_review: bool = False
    wants_commits: bool = False
    wants_issues: bool = False

    def mentions(self, *words: str) -> bool:
        """Return True if any of *words* is among the extracted keywords."""
        return any(w in self.keywords for w in words)


def safe_ticket_key(key: str | None) -> str | None:
    """Return *key* if it is a well-formed ticket key such as ``PROJ-1234``."""
    if key and _TICKET_KEY.fullmatch(key):
        return key
    return None


def safe_project_key(key: str | None) -> str | None:
    """Return *key* if it is a well-formed project key such as ``WEB2``."""
    if key and _PROJECT_KEY.fullmatch(key):
        return key
    return None


def _first_group(patterns: tuple[re.Pattern[str], ...], text: str) -> str | None:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


def detect_intent(messages: list[ChatMessage]) -> DetectedIntent:
    """Classify the last few user turns into a ``DetectedIntent``."""
    user_turns = [m.content for m in messages if m.role == "user"]
    recent = " ".join(user_turns[-RECENT_USER_TURNS:])
    text = recent.lower()
    words = [w for w in _TOKEN_SPLIT.split(text) if w]
    tokens = frozenset(words)

    keywords = tuple(
        dict.fromkeys(w for w in words if len(w) >= MIN_KEYWORD_LENGTH)
    )[:MAX_KEYWORDS]

    ticket_match = _TICKET_IN_TEXT.search(recent)
    ticket_hint = safe_ticket_key(ticket_match.group(1) if ticket_match else None)

    project = _first_group(_PROJECT_HINTS, recent)
    project_hint = safe_project_key(project.upper() if project else None)

    repo = _first_group(_REPO_HINTS, recent)

    return DetectedIntent(
        needs_github=GITHUB_SIGNALS.hit(tokens, text),
        needs_jira=JIRA_SIGNALS.hit(tokens, text) or ticket_hint is not None,
        keywords=keywords,
        repo_hint=repo.lower() if repo else None,
        project_hint=project_hint,
        ticket_hint=ticket_hint,
        wants_sprint_status=SPRINT_SIGNALS.hit(tokens, text),
        wants_blocked_items=BLOCKED_SIGNALS.hit(tokens, text),
        wants_assignment=ASSIGNMENT_SIGNALS.hit(tokens, text),
        wants_pr_review=PR_REVIEW_SIGNALS.hit(tokens, text),
        wants_commits=COMMIT_SIGNALS.hit(tokens, text),
        wants_issues=ISSUE_SIGNALS.hit(tokens, text),
    )
