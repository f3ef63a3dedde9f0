"""GitHub webhook handler.

This module verifies webhook signatures and parses raw payloads into
typed events. Parsing never raises: payloads that are malformed or carry
an action the bot does not handle produce None.

GitHub Webhook Payload Structure (issues event):
{
  "action": "edited",
  "changes": {"body": {"from": "old body"}},
  "issue": {
    "number": 123,
    "title": "Issue title",
    "body": "Issue body",
    "state": "open",
    "labels": [{"name": "bug"}],
    "user": {"login": "username", "type": "User"}
  },
  "repository": {
    "name": "repo-name",
    "language": "Python",
    "owner": {"login": "owner-name"}
  }
}
"""

import hashlib
import hmac
import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from src.issuebot.webhook.models import (
    CommentEvent,
    IssueAction,
    IssueEvent,
    PullRequestAction,
    PullRequestEvent,
    WebhookEvent,
)

logger = logging.getLogger(__name__)


class WebhookHandler:
    """Verifies and parses GitHub webhook deliveries.

    Attributes:
        secret: The webhook secret. An empty secret disables signature
                verification, which is only appropriate for local runs.
    """

    def __init__(self, secret: str = "") -> None:
        self.secret = secret

    def verify_signature(self, body: bytes, signature: Optional[str]) -> bool:
        """Check the X-Hub-Signature-256 header against the raw body."""
        if not self.secret:
            return True
        if not signature or not signature.startswith("sha256="):
            return False
        expected = hmac.new(
            self.secret.encode("utf-8"),
            body,
            hashlib.sha256,
        ).hexdigest()
        return hmac.compare_digest(f"sha256={expected}", signature)

    def parse(self, event_name: str, payload: Any) -> Optional[WebhookEvent]:
        """Parse a delivery according to its X-GitHub-Event name."""
        if not isinstance(payload, dict):
            logger.warning("Invalid payload: expected dict, got %s", type(payload))
            return None

        if event_name == "issues":
            return self.parse_issue_event(payload)
        if event_name == "issue_comment":
            return self.parse_comment_event(payload)
        if event_name == "pull_request":
            return self.parse_pull_request_event(payload)

        logger.debug("Ignoring unsupported webhook event: %s", event_name)
        return None

    def parse_issue_event(self, payload: Dict[str, Any]) -> Optional[IssueEvent]:
        try:
            action = IssueAction(payload.get("action"))
        except ValueError:
            logger.debug("Ignoring issue action: %s", payload.get("action"))
            return None

        fields = self._issue_fields(payload)
        if fields is None:
            return None

        changes = payload.get("changes")
        changed_fields = sorted(changes.keys()) if isinstance(changes, dict) else []

        try:
            event = IssueEvent(action=action, changed_fields=changed_fields, **fields)
        except ValidationError as e:
            logger.warning("Invalid issue event payload: %s", e)
            return None

        logger.info(
            "Parsed issue event: action=%s, issue=%s",
            action.value,
            event.issue_id,
        )
        return event

    def parse_comment_event(self, payload: Dict[str, Any]) -> Optional[CommentEvent]:
        if payload.get("action") != "created":
            logger.debug("Ignoring comment action: %s", payload.get("action"))
            return None

        fields = self._issue_fields(payload)
        if fields is None:
            return None

        comment = payload.get("comment")
        if not isinstance(comment, dict):
            logger.warning("Missing or invalid 'comment' field in payload")
            return None

        user = comment.get("user")
        author = self._extract_user_login(user, "comment author")
        if author is None:
            return None

        body = comment.get("body")
        try:
            event = CommentEvent(
                comment_id=comment.get("id"),
                comment_body=body if isinstance(body, str) else "",
                comment_author=author,
                comment_author_is_bot=(
                    user.get("type") == "Bot" or author.endswith("[bot]")
                ),
                **fields,
            )
        except ValidationError as e:
            logger.warning("Invalid comment event payload: %s", e)
            return None

        logger.info(
            "Parsed comment event: issue=%s, author=%s",
            event.issue_id,
            event.comment_author,
        )
        return event

    def parse_pull_request_event(
        self, payload: Dict[str, Any]
    ) -> Optional[PullRequestEvent]:
        try:
            action = PullRequestAction(payload.get("action"))
        except ValueError:
            logger.debug("Ignoring pull request action: %s", payload.get("action"))
            return None

        pr = payload.get("pull_request")
        repo = self._extract_repository(payload.get("repository"))
        if not isinstance(pr, dict) or repo is None:
            logger.warning("Missing pull_request or repository in payload")
            return None

        head = pr.get("head")
        owner, name, _ = repo
        try:
            event = PullRequestEvent(
                action=action,
                owner=owner,
                repository=name,
                pr_number=pr.get("number"),
                head_branch=head.get("ref") if isinstance(head, dict) else None,
                merged=bool(pr.get("merged")),
                url=pr.get("html_url") or "",
            )
        except ValidationError as e:
            logger.warning("Invalid pull request event payload: %s", e)
            return None

        logger.info(
            "Parsed pull request event: action=%s, pr=%s#%s",
            action.value,
            event.full_repository,
            event.pr_number,
        )
        return event

    def _issue_fields(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Extract the IssueContext fields from an issue-bearing payload."""
        issue = payload.get("issue")
        if not isinstance(issue, dict):
            logger.warning("Missing or invalid 'issue' field in payload")
            return None

        repo = self._extract_repository(payload.get("repository"))
        if repo is None:
            return None

        author = self._extract_user_login(issue.get("user"), "issue author")
        if author is None:
            return None

        title = issue.get("title")
        body = issue.get("body")
        owner, name, language = repo
        return {
            "owner": owner,
            "repository": name,
            "language": language,
            "issue_number": issue.get("number"),
            "title": title.strip() if isinstance(title, str) else title,
            "body": body if isinstance(body, str) else "",
            "labels": self._extract_labels(issue.get("labels", [])),
            "state": issue.get("state") or "open",
            "author": author,
        }

    def _extract_repository(
        self, repo_data: Any
    ) -> Optional[Tuple[str, str, Optional[str]]]:
        if not isinstance(repo_data, dict):
            logger.warning("Missing or invalid 'repository' field in payload")
            return None

        name = repo_data.get("name")
        if not isinstance(name, str) or not name.strip():
            logger.warning("Invalid or empty repository name: %s", name)
            return None

        owner = self._extract_user_login(repo_data.get("owner"), "repository owner")
        if owner is None:
            return None

        language = repo_data.get("language")
        return owner, name.strip(), language if isinstance(language, str) else None

    def _extract_labels(self, labels_data: Any) -> List[str]:
        """Extract label names from [{"name": "bug"}, ...]."""
        if not isinstance(labels_data, list):
            return []

        labels = []
        for label in labels_data:
            if isinstance(label, dict):
                name = label.get("name")
                if isinstance(name, str) and name.strip():
                    labels.append(name.strip())
            elif isinstance(label, str) and label.strip():
                labels.append(label.strip())
        return labels

    def _extract_user_login(self, user_data: Any, context: str) -> Optional[str]:
        if not isinstance(user_data, dict):
            logger.warning("Missing or invalid %s data: %s", context, type(user_data))
            return None

        login = user_data.get("login")
        if not isinstance(login, str) or not login.strip():
            logger.warning("Invalid or empty %s login: %s", context, login)
            return None
        return login.strip()
