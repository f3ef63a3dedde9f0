"""Admission filter and issue labels.

The admission filter decides whether an automatic issue event enters the
pipeline at all. It is label- and state-based, so an issue that ended in
error stays eligible for an explicit analyze command.
"""

from typing import Iterable, List, Optional

from src.issuebot.analysis.models import Classification
from src.issuebot.webhook.models import IssueContext


PROCESSING_LABEL = "issues-bot:processing"
PROCESSED_LABEL = "issues-bot:analyzed"


def rejection_reason(
    issue: IssueContext,
    skip_labels: Iterable[str],
) -> Optional[str]:
    """Return why an issue is not admitted, or None if it is.

    Args:
        issue: The issue carried by the event.
        skip_labels: Lowercased labels that exclude an issue.
    """
    skip = {label.lower() for label in skip_labels}
    for label in issue.labels:
        if label.lower() in skip:
            return f"carries skip label '{label}'"
    if not issue.is_open:
        return "issue is not open"
    if issue.has_label(PROCESSED_LABEL):
        return "already analyzed"
    if issue.has_label(PROCESSING_LABEL):
        return "analysis in progress"
    return None


def classification_labels(classification: Classification) -> List[str]:
    """Labels applied after analysis, processed marker first."""
    labels = [
        PROCESSED_LABEL,
        f"type:{classification.type.value}",
        f"severity:{classification.severity.value}",
        f"priority:{classification.priority.value}",
    ]
    for label in classification.suggested_labels:
        if label not in labels:
            labels.append(label)
    return labels
