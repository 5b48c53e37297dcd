"""Request-scoped evidence items gathered from GitHub, Jira and the roster.

All text fields are already sanitized and length-capped when an item is
built; the section formatters only arrange them.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class RepoSummary:
    """One repository from the inventory listing."""

    full_name: str
    name: str
    description: str
    language: str
    stars: int
    open_issues: int
    updated_at: str
    topics: list[str] = field(default_factory=list)


@dataclass
class PullRequest:
    """An open pull request."""

    repo: str
    number: int
    title: str
    state: str
    author: str
    updated_at: str
    reviewers: list[str] = field(default_factory=list)
    labels: list[str] = field(default_factory=list)
    additions: int = 0
    deletions: int = 0
    body_snippet: str = ""
    url: str = ""


@dataclass
class RepoIssue:
    """An open GitHub issue (pull requests excluded)."""

    repo: str
    number: int
    title: str
    state: str
    author: str
    updated_at: str
    labels: list[str] = field(default_factory=list)
    body_snippet: str = ""
    url: str = ""


@dataclass
class CommitSummary:
    """First line of a recent commit."""

    repo: str
    sha: str
    message: str
    author: str
    date: str
    url: str = ""


@dataclass
class ReadmeSnippet:
    """Leading text of a repository README."""

    repo: str
    snippet: str


@dataclass
class GitHubEvidence:
    """Everything the GitHub connector found for one request."""

    repos: list[RepoSummary] = field(default_factory=list)
    pull_requests: list[PullRequest] = field(default_factory=list)
    issues: list[RepoIssue] = field(default_factory=list)
    commits: list[CommitSummary] = field(default_factory=list)
    readmes: list[ReadmeSnippet] = field(default_factory=list)


@dataclass
class JiraProject:
    """One accessible Jira project."""

    key: str
    name: str
    type: str


@dataclass
class JiraIssue:
    """A Jira ticket with the fields shown to the model."""

    key: str
    title: str
    status: str
    priority: str
    type: str
    project: str
    project_key: str
    updated_at: str
    assignee: str | None = None
    reporter: str | None = None
    labels: list[str] = field(default_factory=list)
    sprint: str | None = None
    url: str = ""
    description: str = ""
    comment_count: int | None = None


@dataclass
class JiraEvidence:
    """Everything the Jira connector found for one request."""

    projects: list[JiraProject] = field(default_factory=list)
    sprint_issues: list[JiraIssue] = field(default_factory=list)
    issues: list[JiraIssue] = field(default_factory=list)


@dataclass
class TeamMember:
    """A roster row, used for assignment and capacity questions."""

    name: str
    role: str
    github: str | None = None
    expertise: list[str] = field(default_factory=list)
    capacity: int = 100
    active_tasks: int = 0
