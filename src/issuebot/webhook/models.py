"""GitHub webhook event models.

Raw webhook payloads are validated into these models at the ingress
boundary; anything that does not fit is rejected before it reaches the
orchestrator.
"""

import re
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, Field


AUTOFIX_BRANCH_PREFIX = "autofix/issue-"

_AUTOFIX_BRANCH_RE = re.compile(r"^autofix/issue-(\d+)$")


def autofix_branch_name(issue_number: int) -> str:
    return f"{AUTOFIX_BRANCH_PREFIX}{issue_number}"


class IssueAction(str, Enum):
    """Issue event actions the bot reacts to."""

    OPENED = "opened"
    EDITED = "edited"


class PullRequestAction(str, Enum):
    OPENED = "opened"
    CLOSED = "closed"


class IssueContext(BaseModel):
    """Issue data shared by issue and comment events.

    Attributes:
        owner: The repository owner (user or organization).
        repository: The repository name without owner prefix.
        language: Primary repository language, if GitHub reports one.
        issue_number: The issue number within the repository.
        title: The issue title text.
        body: The issue body text. May be empty.
        labels: Label names attached to the issue.
        state: "open" or "closed".
        author: Login of the user who opened the issue.
    """

    owner: str = Field(..., min_length=1)
    repository: str = Field(..., min_length=1)
    language: Optional[str] = None
    issue_number: int = Field(..., gt=0)
    title: str = Field(..., min_length=1)
    body: str = ""
    labels: List[str] = Field(default_factory=list)
    state: str = "open"
    author: str = Field(..., min_length=1)

    @property
    def issue_id(self) -> str:
        """Canonical issue identifier "{owner}/{repository}#{issue_number}"."""
        return f"{self.owner}/{self.repository}#{self.issue_number}"

    @property
    def full_repository(self) -> str:
        return f"{self.owner}/{self.repository}"

    @property
    def is_open(self) -> bool:
        return self.state == "open"

    def has_label(self, label_name: str) -> bool:
        """Case-insensitive label check."""
        wanted = label_name.lower()
        return any(label.lower() == wanted for label in self.labels)


class IssueEvent(IssueContext):
    """An issues.opened or issues.edited delivery.

    Attributes:
        action: opened or edited.
        changed_fields: Keys of the payload's "changes" object for edits.
    """

    action: IssueAction
    changed_fields: List[str] = Field(default_factory=list)

    @property
    def content_changed(self) -> bool:
        """True for edits that touched the title or body."""
        return "title" in self.changed_fields or "body" in self.changed_fields


class CommentEvent(IssueContext):
    """An issue_comment.created delivery."""

    comment_id: int = Field(..., gt=0)
    comment_body: str = ""
    comment_author: str = Field(..., min_length=1)
    comment_author_is_bot: bool = False


class PullRequestEvent(BaseModel):
    """A pull_request.opened or pull_request.closed delivery."""

    action: PullRequestAction
    owner: str = Field(..., min_length=1)
    repository: str = Field(..., min_length=1)
    pr_number: int = Field(..., gt=0)
    head_branch: str = Field(..., min_length=1)
    merged: bool = False
    url: str = ""

    @property
    def full_repository(self) -> str:
        return f"{self.owner}/{self.repository}"

    @property
    def linked_issue_number(self) -> Optional[int]:
        """Issue number encoded in an auto-fix branch name, if any."""
        match = _AUTOFIX_BRANCH_RE.match(self.head_branch)
        if match is None:
            return None
        number = int(match.group(1))
        return number if number > 0 else None


WebhookEvent = Union[IssueEvent, CommentEvent, PullRequestEvent]
