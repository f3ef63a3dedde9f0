"""Prompt templates for analysis, solution and auto-fix completions."""

from typing import Dict, List, Optional

from src.issuebot.analysis.models import Classification


ANALYSIS_SYSTEM_PROMPT = """You are an experienced software maintainer triaging GitHub issues.

You MUST respond with a single valid JSON object and nothing else.

Classify the issue and respond with this exact structure:
{
  "type": "bug|feature|documentation|security|performance|configuration|dependency|test|refactor|other",
  "severity": "low|medium|high|critical",
  "priority": "low|medium|high|urgent",
  "confidence": 0.0-1.0,
  "description": "one or two sentence summary of the problem",
  "suggested_labels": ["label", "..."],
  "auto_fixable": true|false,
  "related_files": ["path/to/file", "..."],
  "dependencies": ["package-name", "..."],
  "estimated_time": "e.g. 30 minutes, 2 hours"
}

Only mark an issue auto_fixable when the fix is small, local and mechanical
(a typo, a version bump, a one-line configuration change)."""


SOLUTION_SYSTEM_PROMPT = """You are a senior engineer writing a remediation plan for a GitHub issue.

You MUST respond with a single valid JSON object and nothing else:
{
  "summary": "overview of the fix",
  "steps": [
    {
      "title": "step title",
      "description": "what to do",
      "code": "optional code excerpt",
      "commands": ["optional shell commands"],
      "files": ["files touched by this step"]
    }
  ],
  "edit_set": null,
  "resources": ["links or references"],
  "estimated_time": "e.g. 1 hour",
  "difficulty": "easy|medium|hard"
}

Set "edit_set" only when the fix can be expressed as exact file changes,
using the same structure the auto-fix format uses."""


AUTO_FIX_SYSTEM_PROMPT = """You generate minimal, exact repository changes that fix a GitHub issue.

You MUST respond with a single valid JSON object and nothing else.

If the issue cannot be fixed safely with a small change, respond with:
{"auto_fixable": false, "reason": "why not"}

Otherwise respond with:
{
  "type": "code_change|config_change|dependency_update|documentation",
  "description": "what the change does",
  "files": [
    {
      "path": "path/to/file",
      "action": "create|update|delete",
      "content": "full new file content, or omit when using line_edits",
      "line_edits": [
        {"line": 1, "action": "add|remove|replace", "content": "new line"}
      ]
    }
  ],
  "commands": ["commands to run after applying"],
  "confidence": 0.0-1.0,
  "risk_level": "low|medium|high",
  "test_required": true|false
}

Never include credentials, secrets or destructive shell commands."""


def _labels(labels: List[str]) -> str:
    return ", ".join(labels) if labels else "none"


def build_analysis_prompt(
    title: str,
    body: str,
    labels: List[str],
    repository: str,
    language: Optional[str],
) -> str:
    body_content = body if body else "(no description provided)"
    return f"""Analyze this GitHub issue.

**Repository:** {repository}
**Primary language:** {language or "unknown"}

**Title:** {title}

**Labels:** {_labels(labels)}

**Description:**
{body_content}"""


def _classification_block(classification: Classification) -> str:
    return (
        f"- Type: {classification.type.value}\n"
        f"- Severity: {classification.severity.value}\n"
        f"- Priority: {classification.priority.value}\n"
        f"- Analysis: {classification.description}\n"
        f"- Related files: {_labels(classification.related_files)}"
    )


def _context_block(context: Optional[Dict[str, str]]) -> str:
    if not context:
        return "(no codebase context available)"
    return "\n\n".join(
        f"### {name}\n```\n{content}\n```" for name, content in context.items()
    )


def build_solution_prompt(
    title: str,
    body: str,
    classification: Classification,
    context: Optional[Dict[str, str]] = None,
) -> str:
    return f"""Write a remediation plan for this issue.

**Title:** {title}

**Description:**
{body or "(no description provided)"}

**Classification:**
{_classification_block(classification)}

**Codebase context:**
{_context_block(context)}"""


def build_auto_fix_prompt(
    title: str,
    body: str,
    classification: Classification,
    context: Optional[Dict[str, str]] = None,
) -> str:
    return f"""Produce an automated fix for this issue.

**Title:** {title}

**Description:**
{body or "(no description provided)"}

**Classification:**
{_classification_block(classification)}

**Codebase context:**
{_context_block(context)}"""
