"""GitHub webhook ingress: signature verification and typed events."""

from src.issuebot.webhook.handler import WebhookHandler
from src.issuebot.webhook.models import (
    AUTOFIX_BRANCH_PREFIX,
    CommentEvent,
    IssueAction,
    IssueContext,
    IssueEvent,
    PullRequestAction,
    PullRequestEvent,
    WebhookEvent,
    autofix_branch_name,
)

__all__ = [
    "AUTOFIX_BRANCH_PREFIX",
    "CommentEvent",
    "IssueAction",
    "IssueContext",
    "IssueEvent",
    "PullRequestAction",
    "PullRequestEvent",
    "WebhookEvent",
    "WebhookHandler",
    "autofix_branch_name",
]
