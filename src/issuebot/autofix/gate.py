"""Fix safety gate.

A pure decision over a proposed edit set, its classification and the
configured policy. It is the last check before any repository mutation
and fails closed: anything it cannot positively approve is rejected.
"""

import re
from typing import List, Tuple

from pydantic import BaseModel, Field

from src.issuebot.analysis.models import Classification, EditSet, RiskLevel
from src.issuebot.config import SafetyPolicy


# Build manifests, lockfiles, container manifests, env files, proxy configs
CRITICAL_PATHS: Tuple[str, ...] = (
    "package.json",
    "package-lock.json",
    "yarn.lock",
    "Dockerfile",
    "docker-compose.yml",
    ".env",
    ".env.local",
    ".env.production",
    "nginx.conf",
    "apache.conf",
)

DANGEROUS_PATTERNS: Tuple[re.Pattern, ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"rm\s+-rf",
        r"sudo",
        r"chmod\s+777",
        r"password",
        r"secret",
        r"api[_-]?key",
        r"private[_-]?key",
    )
)


class GateDecision(BaseModel):
    """Outcome of a gate evaluation.

    Attributes:
        approved: True only when no rule rejected the edit set.
        reasons: Human-readable rejection reasons, empty when approved.
    """

    model_config = {"frozen": True}

    approved: bool
    reasons: List[str] = Field(default_factory=list)


def is_critical_path(path: str) -> bool:
    """True if path ends with one of the critical file names."""
    return any(path.endswith(name) for name in CRITICAL_PATHS)


def find_dangerous_pattern(content: str) -> str:
    """Return the first dangerous pattern matched in content, or ""."""
    for pattern in DANGEROUS_PATTERNS:
        if pattern.search(content):
            return pattern.pattern
    return ""


def evaluate(
    edit_set: EditSet,
    classification: Classification,
    policy: SafetyPolicy,
) -> GateDecision:
    """Evaluate every rule and collect the reasons for rejection."""
    reasons: List[str] = []

    if not classification.auto_fixable:
        reasons.append("issue is not classified as auto-fixable")

    if not edit_set.files:
        reasons.append("edit set contains no file changes")

    if edit_set.confidence < policy.confidence_threshold:
        reasons.append(
            f"confidence {edit_set.confidence:.2f} is below the "
            f"threshold {policy.confidence_threshold:.2f}"
        )

    if edit_set.risk_level == RiskLevel.HIGH:
        reasons.append("risk level is high")

    if len(edit_set.files) > policy.max_auto_fix_complexity:
        reasons.append(
            f"touches {len(edit_set.files)} files, more than the maximum of "
            f"{policy.max_auto_fix_complexity}"
        )

    if edit_set.risk_level != RiskLevel.LOW:
        for file in edit_set.files:
            if is_critical_path(file.path):
                reasons.append(
                    f"modifies critical file {file.path} with "
                    f"{edit_set.risk_level.value} risk"
                )

    # Line edits are scanned too so content cannot slip past line by line
    for file in edit_set.files:
        texts = [file.content or ""] + [edit.content for edit in file.line_edits]
        for text in texts:
            pattern = find_dangerous_pattern(text)
            if pattern:
                reasons.append(f"content of {file.path} matches /{pattern}/")
                break

    return GateDecision(approved=not reasons, reasons=reasons)


def is_safe(
    edit_set: EditSet,
    classification: Classification,
    policy: SafetyPolicy,
) -> bool:
    return evaluate(edit_set, classification, policy).approved
