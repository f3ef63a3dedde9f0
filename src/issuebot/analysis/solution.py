"""Remediation plan and auto-fix edit set generation.

Source of codebase context: repository metadata plus the first
CONTEXT_FILE_CHARS characters of up to MAX_CONTEXT_FILES related files
named by the classification.
"""

import logging
from typing import Dict, Optional

from src.issuebot.analysis.completion import CompletionClient
from src.issuebot.analysis.models import Classification, EditSet, RemediationPlan
from src.issuebot.analysis.parsing import (
    parse_auto_fix_response,
    parse_remediation_plan,
)
from src.issuebot.analysis.prompts import (
    AUTO_FIX_SYSTEM_PROMPT,
    SOLUTION_SYSTEM_PROMPT,
    build_auto_fix_prompt,
    build_solution_prompt,
)
from src.issuebot.github.client import GitHubAPIError, GitHubClient
from src.issuebot.webhook.models import IssueContext


logger = logging.getLogger(__name__)


MAX_CONTEXT_FILES = 3
CONTEXT_FILE_CHARS = 1000


async def build_codebase_context(
    github: GitHubClient,
    issue: IssueContext,
    classification: Classification,
) -> Dict[str, str]:
    """Collect a small amount of repository context for prompts.

    Files that cannot be read are skipped.

    Raises:
        GitHubAPIError: If repository metadata cannot be fetched.
    """
    repo = await github.get_repository(issue.owner, issue.repository)
    context: Dict[str, str] = {
        "repository": (
            f"name: {repo.full_name}\n"
            f"description: {repo.description or ''}\n"
            f"language: {repo.language or 'unknown'}\n"
            f"default branch: {repo.default_branch}"
        )
    }

    for path in classification.related_files[:MAX_CONTEXT_FILES]:
        try:
            file = await github.get_file(
                issue.owner, issue.repository, path, ref=repo.default_branch
            )
        except GitHubAPIError as e:
            logger.debug(
                "Skipping unreadable context file",
                extra={"issue_id": issue.issue_id, "path": path, "error": str(e)},
            )
            continue
        if file is not None:
            context[path] = file.content[:CONTEXT_FILE_CHARS]

    return context


class SolutionGenerator:
    """Generates remediation plans and auto-fix edit sets."""

    def __init__(self, completion: CompletionClient):
        self.completion = completion

    async def generate_solution(
        self,
        issue: IssueContext,
        classification: Classification,
        context: Optional[Dict[str, str]] = None,
    ) -> RemediationPlan:
        """Produce a remediation plan.

        Malformed output yields RemediationPlan.fallback().

        Raises:
            CompletionError: If the completion call fails.
        """
        response_text = await self.completion.complete(
            SOLUTION_SYSTEM_PROMPT,
            build_solution_prompt(issue.title, issue.body, classification, context),
        )
        plan = parse_remediation_plan(response_text)

        logger.info(
            "Remediation plan generated",
            extra={
                "issue_id": issue.issue_id,
                "steps": len(plan.steps),
                "difficulty": plan.difficulty.value,
                "has_edit_set": plan.edit_set is not None,
            },
        )
        return plan

    async def generate_edit_set(
        self,
        issue: IssueContext,
        classification: Classification,
        context: Optional[Dict[str, str]] = None,
    ) -> Optional[EditSet]:
        """Ask for an exact, machine-applicable fix.

        Returns:
            The edit set, or None if the model declined or its output was
            unusable.

        Raises:
            CompletionError: If the completion call fails.
        """
        response_text = await self.completion.complete(
            AUTO_FIX_SYSTEM_PROMPT,
            build_auto_fix_prompt(issue.title, issue.body, classification, context),
        )
        edit_set = parse_auto_fix_response(response_text)

        logger.info(
            "Auto-fix generation finished",
            extra={
                "issue_id": issue.issue_id,
                "produced": edit_set is not None,
                "files": len(edit_set.files) if edit_set else 0,
            },
        )
        return edit_set
