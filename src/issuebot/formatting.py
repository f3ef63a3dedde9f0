"""Issue comment formatting.

Builds the GitHub-flavored markdown bodies the bot posts on issues. User
content echoed back is sanitized so it cannot break out of the comment
layout or mention other users.
"""

from typing import List, Optional

from src.issuebot.analysis.models import Classification, RemediationPlan


FOOTER = """
---
*Automated analysis. Mention `@{bot_name} help` for commands.*
"""

SEVERITY_ICONS = {
    "low": "🟢",
    "medium": "🟡",
    "high": "🟠",
    "critical": "🔴",
}


def _sanitize(text: str, limit: int = 2000) -> str:
    """Neutralize mentions and trim overly long model text."""
    cleaned = text.replace("@", "@\u200b").strip()
    if len(cleaned) > limit:
        cleaned = cleaned[:limit].rstrip() + "…"
    return cleaned


def _footer(bot_name: str) -> str:
    return FOOTER.format(bot_name=bot_name)


def format_analysis_comment(
    classification: Classification,
    bot_name: str,
    degraded: bool = False,
) -> str:
    """Summarize a classification as an issue comment."""
    icon = SEVERITY_ICONS.get(classification.severity.value, "")
    lines = [
        "## 🤖 Issue Analysis",
        "",
        "| | |",
        "|---|---|",
        f"| **Type** | {classification.type.value} |",
        f"| **Severity** | {icon} {classification.severity.value} |",
        f"| **Priority** | {classification.priority.value} |",
        f"| **Confidence** | {classification.confidence:.0%} |",
        f"| **Auto-fixable** | {'yes' if classification.auto_fixable else 'no'} |",
    ]
    if classification.estimated_time:
        lines.append(
            f"| **Estimated time** | {_sanitize(classification.estimated_time, 100)} |"
        )

    lines += ["", "### Summary", _sanitize(classification.description)]

    if classification.related_files:
        lines += ["", "### Related files"]
        lines += [f"- `{path}`" for path in classification.related_files]

    if classification.dependencies:
        lines += ["", "### Dependencies"]
        lines += [f"- `{name}`" for name in classification.dependencies]

    if degraded:
        lines += [
            "",
            "> ⚠️ Automatic analysis could not be completed. "
            "A maintainer should review this issue.",
        ]

    return "\n".join(lines) + "\n" + _footer(bot_name)


def format_solution_comment(plan: RemediationPlan, bot_name: str) -> str:
    """Render a remediation plan as numbered steps."""
    lines = [
        "## 💡 Suggested Solution",
        "",
        _sanitize(plan.summary),
        "",
        f"**Difficulty:** {plan.difficulty.value} · "
        f"**Estimated time:** {_sanitize(plan.estimated_time, 100)}",
    ]

    for index, step in enumerate(plan.steps, start=1):
        lines += ["", f"### {index}. {_sanitize(step.title, 200)}"]
        if step.description:
            lines.append(_sanitize(step.description))
        if step.code:
            lines += ["", "```", step.code.replace("```", "'''"), "```"]
        if step.commands:
            lines += ["", "```sh", *step.commands, "```"]
        if step.files:
            lines.append("Files: " + ", ".join(f"`{f}`" for f in step.files))

    if plan.resources:
        lines += ["", "### Resources"]
        lines += [f"- {_sanitize(r, 300)}" for r in plan.resources]

    return "\n".join(lines) + "\n" + _footer(bot_name)


def format_error_comment(bot_name: str) -> str:
    """Generic failure notice. Never includes exception details."""
    return (
        "## ⚠️ Processing Error\n\n"
        "Something went wrong while processing this issue. The failure has "
        "been logged for the maintainers.\n\n"
        f"You can retry with `@{bot_name} analyze`.\n"
    )


def format_rate_limited_comment() -> str:
    return (
        "⏳ This repository has reached the bot's request limit. "
        "This event was skipped; please try again later.\n"
    )


def format_reanalyzing_comment() -> str:
    return "🔄 The issue was updated. Re-analyzing…\n"


def format_help_comment(bot_name: str, unknown_action: Optional[str] = None) -> str:
    lines: List[str] = []
    if unknown_action:
        lines += [f"Unknown command `{_sanitize(unknown_action, 50)}`.", ""]
    lines += [
        "## 🤖 Available commands",
        "",
        f"- `@{bot_name} analyze`: re-run the issue analysis",
        f"- `@{bot_name} fix`: attempt an automated fix from the last analysis",
        f"- `@{bot_name} suggest`: post a step-by-step solution",
        f"- `@{bot_name} priority`: re-evaluate priority (same as analyze)",
    ]
    return "\n".join(lines) + "\n"


def format_no_analysis_comment(bot_name: str) -> str:
    return (
        "This issue has not been analyzed yet. "
        f"Run `@{bot_name} analyze` first.\n"
    )


def format_auto_fix_disabled_comment() -> str:
    return "Automated fixes are disabled for this installation.\n"


def format_manual_required_comment(reasons: List[str]) -> str:
    lines = [
        "## 🛠️ Manual Fix Required",
        "",
        "An automated fix was not applied:",
    ]
    lines += [f"- {_sanitize(reason, 300)}" for reason in reasons]
    return "\n".join(lines) + "\n"


def format_completion_comment(pr_number: int) -> str:
    return (
        "## ✅ Resolved\n\n"
        f"The automated fix in #{pr_number} was merged. Closing this issue.\n"
    )
