"""Pull request title, body, labels and summary comment for auto-fixes."""

from typing import List

from src.issuebot.analysis.models import Classification, EditSet, EditSetType


MAX_TITLE_LENGTH = 256

TYPE_LABELS = {
    EditSetType.CODE_CHANGE: "code-change",
    EditSetType.CONFIG_CHANGE: "configuration",
    EditSetType.DEPENDENCY_UPDATE: "dependencies",
    EditSetType.DOCUMENTATION: "documentation",
}


def build_pr_title(issue_number: int, issue_title: str) -> str:
    title = f"Auto-fix for issue #{issue_number}: {issue_title.strip()}"
    if len(title) > MAX_TITLE_LENGTH:
        title = title[: MAX_TITLE_LENGTH - 3].rstrip() + "..."
    return title


def build_pr_labels(edit_set: EditSet) -> List[str]:
    """auto-fix, risk-<level>, optionally needs-testing, then a type label."""
    labels = ["auto-fix", f"risk-{edit_set.risk_level.value}"]
    if edit_set.test_required:
        labels.append("needs-testing")
    labels.append(TYPE_LABELS[edit_set.type])
    return labels


def build_pr_body(
    issue_number: int,
    classification: Classification,
    edit_set: EditSet,
    changed_files: List[str],
) -> str:
    lines = [
        "## 🤖 Automated Fix",
        "",
        f"This pull request was generated automatically for issue #{issue_number}.",
        "",
        "### Issue classification",
        f"- **Type:** {classification.type.value}",
        f"- **Severity:** {classification.severity.value}",
        f"- **Priority:** {classification.priority.value}",
        "",
        "### Fix",
        edit_set.description or "(no description provided)",
        "",
        f"- **Change type:** {edit_set.type.value}",
        f"- **Risk level:** {edit_set.risk_level.value}",
        f"- **Confidence:** {edit_set.confidence:.0%}",
        f"- **Tests required:** {'yes' if edit_set.test_required else 'no'}",
        "",
        "### Changed files",
    ]
    lines += [f"- `{path}`" for path in changed_files]

    if edit_set.commands:
        lines += ["", "### Commands to run", "```sh", *edit_set.commands, "```"]

    lines += [
        "",
        "---",
        "⚠️ Review this change carefully before merging.",
        "",
        f"Fixes #{issue_number}",
    ]
    return "\n".join(lines) + "\n"


def format_auto_fix_comment(
    pr_number: int,
    pr_url: str,
    edit_set: EditSet,
    changed_files: List[str],
    skipped_files: List[str],
) -> str:
    """Issue comment announcing the auto-fix pull request."""
    lines = [
        "## 🔧 Automated Fix Proposed",
        "",
        f"Pull request #{pr_number} was opened with a proposed fix: {pr_url}",
        "",
        f"- **Risk level:** {edit_set.risk_level.value}",
        f"- **Confidence:** {edit_set.confidence:.0%}",
        f"- **Files changed:** {len(changed_files)}",
    ]
    if skipped_files:
        lines.append(
            "- **Skipped (changed concurrently):** "
            + ", ".join(f"`{path}`" for path in skipped_files)
        )
    if edit_set.test_required:
        lines += ["", "Please run the test suite before merging."]
    return "\n".join(lines) + "\n"
