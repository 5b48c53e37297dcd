"""Canned evidence for the guest demo account.

An integration whose secret is ``DEMO_SENTINEL`` never reaches the network.
The connectors render the evidence below through the same section
formatters as live data, so demo context has exactly the live shape.  The
records match the seeded demo tickets, repos and team shown in the UI.
"""

from app.services.evidence import (
    CommitSummary,
    GitHubEvidence,
    JiraEvidence,
    JiraIssue,
    JiraProject,
    PullRequest,
    ReadmeSnippet,
    RepoIssue,
    RepoSummary,
)

DEMO_SENTINEL = "DEMO_MODE"


def is_demo_secret(secret: str | None) -> bool:
    """Return True if *secret* is the reserved demo value."""
    return secret == DEMO_SENTINEL


def demo_github_evidence() -> GitHubEvidence:
    """Return a fresh copy of the demo GitHub account."""
    return GitHubEvidence(
        repos=[
            RepoSummary(
                "acme-corp/payment-service", "payment-service",
                "Handles all payment processing via Stripe integration.",
                "TypeScript", 234, 3, "2026-02-26",
                ["stripe", "payments", "typescript", "microservice"],
            ),
            RepoSummary(
                "acme-corp/user-auth", "user-auth",
                "Authentication and authorization microservice.",
                "Python", 156, 2, "2026-02-26",
                ["python", "oauth2", "jwt", "authentication"],
            ),
            RepoSummary(
                "acme-corp/web-frontend", "web-frontend",
                "Main web application frontend built with React 18 and Tailwind CSS.",
                "TypeScript", 89, 5, "2026-02-26",
                ["react", "typescript", "tailwind", "frontend"],
            ),
            RepoSummary(
                "acme-corp/api-gateway", "api-gateway",
                "Central API gateway for all microservices with auth middleware and routing.",
                "Go", 67, 1, "2026-02-23",
                ["go", "gateway", "microservices", "redis"],
            ),
            RepoSummary(
                "acme-corp/notification-service", "notification-service",
                "Email, SMS, and push notification service with queue-backed delivery.",
                "JavaScript", 45, 0, "2026-02-19",
                ["nodejs", "notifications", "fcm", "apns"],
            ),
        ],
        pull_requests=[
            PullRequest(
                "payment-service", 142, "Add payment refund feature", "open", "sarachen",
                "2026-02-26", reviewers=["mtorres", "emilyr"], additions=234, deletions=45,
                body_snippet=(
                    "Implements full and partial refund flow for card and wallet payments. "
                    "Stripe /v1/refunds integrated. Ready for final review."
                ),
            ),
            PullRequest(
                "user-auth", 89, "Fix authentication token refresh", "open", "emilyr",
                "2026-02-26", reviewers=["sarachen"], additions=56, deletions=12,
                body_snippet=(
                    "Root cause was a misconfigured expiry claim in the JWT issuer. "
                    "Needs @sarachen approval."
                ),
            ),
            PullRequest(
                "web-frontend", 203, "Migrate dashboard charts to Recharts", "open", "mtorres",
                "2026-02-25", reviewers=["emilyr", "lisawang"], additions=189, deletions=67,
                body_snippet="Replaced Chart.js with Recharts. Needs QA sign-off on mobile layout.",
            ),
            PullRequest(
                "api-gateway", 34, "Add Redis rate limiting middleware", "open", "jamespark",
                "2026-02-26", reviewers=["davidkim"], additions=145, deletions=23,
                body_snippet="Token bucket rate limiter using Redis with per-client limits.",
            ),
        ],
        issues=[
            RepoIssue(
                "payment-service", 18,
                "Stripe webhook occasionally returns 200 but doesn't process",
                "open", "sarachen", "2026-02-24", labels=["bug", "payments"],
                body_snippet="Suspected race condition in the event deduplication layer.",
            ),
            RepoIssue(
                "user-auth", 15, "OAuth2 PKCE flow not implemented for mobile apps",
                "open", "mtorres", "2026-02-22", labels=["enhancement", "mobile"],
                body_snippet="Mobile clients need PKCE per RFC 7636.",
            ),
            RepoIssue(
                "web-frontend", 31, "Nav bar collapses incorrectly on 768px-900px screens",
                "open", "lisawang", "2026-02-21", labels=["bug", "responsive"],
            ),
        ],
        commits=[
            CommitSummary("payment-service", "a3f1b2c",
                          "fix: handle null metadata in refund validation", "sarachen", "2026-02-26"),
            CommitSummary("payment-service", "9d8e7f1",
                          "feat: add partial refund amount validation", "sarachen", "2026-02-25"),
            CommitSummary("user-auth", "4f7c3d2",
                          "fix: correct JWT expiry to 86400s", "emilyr", "2026-02-26"),
            CommitSummary("web-frontend", "6b2d5c8",
                          "feat: migrate KPI cards to Recharts", "mtorres", "2026-02-25"),
            CommitSummary("api-gateway", "3c7b1d9",
                          "feat: add Redis token bucket rate limiter", "jamespark", "2026-02-26"),
            CommitSummary("notification-service", "7d1c6b3",
                          "chore: update APNs cert expiry handler", "davidkim", "2026-02-20"),
        ],
        readmes=[
            ReadmeSnippet(
                "payment-service",
                "payment-service: Stripe-based payment processing. Handles charge, capture, "
                "refund and dispute flows. PostgreSQL for transactions, Redis for idempotency keys.",
            ),
            ReadmeSnippet(
                "user-auth",
                "user-auth: JWT-based authentication with OAuth2 support. Provides /login, "
                "/refresh, /logout, /me. Sessions stored in Redis with 24h TTL.",
            ),
        ],
    )


def _ticket(
    key: str,
    title: str,
    status: str,
    priority: str,
    issue_type: str,
    project: str,
    assignee: str | None,
    updated_at: str,
    description: str = "",
) -> JiraIssue:
    return JiraIssue(
        key=key,
        title=title,
        status=status,
        priority=priority,
        type=issue_type,
        project=project,
        project_key=key.split("-", 1)[0],
        updated_at=updated_at,
        assignee=assignee,
        reporter="Demo Guest",
        sprint="Sprint 14",
        description=description,
    )


def demo_jira_evidence() -> JiraEvidence:
    """Return a fresh copy of the demo Jira site."""
    sprint = [
        _ticket("PAY-1234", "Payment API refactor for v2 endpoints", "In Progress", "High",
                "Story", "Payment Gateway", "Sarah Chen", "2026-02-26",
                "Refactor v1 payment endpoints to v2 with improved error codes and pagination."),
        _ticket("PAY-1235", "Add payment refund feature", "In Review", "High",
                "Story", "Payment Gateway", "Sarah Chen", "2026-02-26",
                "PR #142 in payment-service is open and nearly ready."),
        _ticket("PAY-1236", "Fix double-charge bug on mobile checkout", "In Progress", "Critical",
                "Bug", "Payment Gateway", "Emily Rodriguez", "2026-02-26",
                "iOS users charged twice when the network drops mid-checkout."),
        _ticket("PAY-1237", "Payment webhook retry mechanism", "To Do", "Medium",
                "Task", "Payment Gateway", None, "2026-02-24"),
        _ticket("AUTH-1235", "Fix user session timeout bug", "In Review", "Critical",
                "Bug", "User Auth", "Emily Rodriguez", "2026-02-26",
                "Users logged out after 15 min instead of 24 hours. PR #89 fixes the expiry claim."),
        _ticket("AUTH-1238", "Implement OAuth2 PKCE for mobile apps", "To Do", "High",
                "Story", "User Auth", None, "2026-02-22"),
        _ticket("WEB-1236", "Add dark mode support", "To Do", "Medium",
                "Story", "Web Frontend", None, "2026-02-19"),
        _ticket("WEB-1240", "Migrate dashboard charts to Recharts", "In Progress", "Medium",
                "Task", "Web Frontend", "Michael Torres", "2026-02-25",
                "PR #203 open, needs QA review."),
        _ticket("BACK-1237", "Database optimization for search queries", "Blocked", "High",
                "Task", "Backend Services", "James Park", "2026-02-25",
                "Waiting for DBA review sign-off before touching production indexes."),
        _ticket("BACK-1242", "API gateway rate limiting", "Done", "High",
                "Task", "Backend Services", "James Park", "2026-02-26"),
        _ticket("NOTIF-1238", "Implement notification preferences", "Done", "Medium",
                "Story", "Notification Service", "Emily Rodriguez", "2026-02-24"),
    ]
    return JiraEvidence(
        projects=[
            JiraProject("PAY", "Payment Gateway", "software"),
            JiraProject("AUTH", "User Auth", "software"),
            JiraProject("WEB", "Web Frontend", "software"),
            JiraProject("BACK", "Backend Services", "software"),
            JiraProject("NOTIF", "Notification Service", "software"),
        ],
        sprint_issues=sprint,
        issues=list(sprint),
    )
