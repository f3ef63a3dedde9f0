"""Fix applicator.

Turns a gate-approved EditSet into a branch, commits and a pull request:

1. Resolve the default branch.
2. Create autofix/issue-{number} from its head, reusing an existing branch.
3. Apply each file edit. A file changed concurrently (stale sha) or one
   that is not readable text is skipped; an update whose target is
   missing becomes a create.
4. Open a labelled pull request if at least one file changed, and
   announce it on the issue.

Hosting API errors are logged and reported through FixResult.error rather
than raised.
"""

import logging
from typing import List, Optional

from pydantic import BaseModel, Field

from src.issuebot.analysis.models import (
    Classification,
    EditSet,
    FileAction,
    FileEdit,
)
from src.issuebot.autofix.edits import apply_line_edits
from src.issuebot.autofix.pull_request import (
    build_pr_body,
    build_pr_labels,
    build_pr_title,
    format_auto_fix_comment,
)
from src.issuebot.github.client import (
    GitHubAPIError,
    GitHubClient,
    UnreadableFileError,
)
from src.issuebot.github.models import PullRequestRequest
from src.issuebot.webhook.models import IssueContext, autofix_branch_name


logger = logging.getLogger(__name__)


class FixResult(BaseModel):
    """Outcome of an auto-fix application.

    Attributes:
        branch: The auto-fix branch name.
        changed_files: Paths committed on the branch.
        skipped_files: Paths skipped because they changed concurrently,
                       were already absent or are not readable text.
        pull_request_number: Number of the opened pull request.
        pull_request_url: URL of the opened pull request.
        error: Failure description; None on success.
    """

    branch: str
    changed_files: List[str] = Field(default_factory=list)
    skipped_files: List[str] = Field(default_factory=list)
    pull_request_number: Optional[int] = None
    pull_request_url: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None and self.pull_request_number is not None


class FixApplicator:
    """Applies edit sets to a repository through the GitHub API."""

    def __init__(self, github: GitHubClient):
        self.github = github

    async def apply(
        self,
        issue: IssueContext,
        classification: Classification,
        edit_set: EditSet,
    ) -> FixResult:
        branch = autofix_branch_name(issue.issue_number)
        result = FixResult(branch=branch)

        if not edit_set.files:
            result.error = "edit set contains no file changes"
            return result

        logger.info(
            "Applying auto-fix",
            extra={
                "issue_id": issue.issue_id,
                "branch": branch,
                "files": [f.path for f in edit_set.files],
            },
        )

        try:
            repo = await self.github.get_repository(issue.owner, issue.repository)
            base_sha = await self.github.get_branch_sha(
                issue.owner, issue.repository, repo.default_branch
            )
            await self.github.create_branch(
                issue.owner, issue.repository, branch, base_sha
            )

            for file in edit_set.files:
                if await self._apply_file(issue, branch, file):
                    result.changed_files.append(file.path)
                else:
                    result.skipped_files.append(file.path)

            if not result.changed_files:
                result.error = "no file changes could be applied"
                logger.warning(
                    "Auto-fix changed no files",
                    extra={"issue_id": issue.issue_id, "skipped": result.skipped_files},
                )
                return result

            pr = await self.github.create_pull_request(
                issue.owner,
                issue.repository,
                PullRequestRequest(
                    title=build_pr_title(issue.issue_number, issue.title),
                    body=build_pr_body(
                        issue.issue_number,
                        classification,
                        edit_set,
                        result.changed_files,
                    ),
                    head_branch=branch,
                    base_branch=repo.default_branch,
                    labels=build_pr_labels(edit_set),
                ),
            )
        except GitHubAPIError as e:
            logger.error(
                "Auto-fix failed",
                extra={
                    "issue_id": issue.issue_id,
                    "branch": branch,
                    "status_code": e.status_code,
                    "error": e.message,
                },
            )
            result.error = f"GitHub API error during auto-fix: {e.message}"
            return result

        result.pull_request_number = pr.number
        result.pull_request_url = pr.url

        try:
            await self.github.create_comment(
                issue.owner,
                issue.repository,
                issue.issue_number,
                format_auto_fix_comment(
                    pr.number,
                    pr.url,
                    edit_set,
                    result.changed_files,
                    result.skipped_files,
                ),
            )
        except GitHubAPIError as e:
            # The pull request exists; a missing announcement is not a failure
            logger.warning(
                "Failed to post auto-fix summary comment",
                extra={"issue_id": issue.issue_id, "error": e.message},
            )

        logger.info(
            "Auto-fix pull request opened",
            extra={
                "issue_id": issue.issue_id,
                "pr_number": pr.number,
                "changed": len(result.changed_files),
                "skipped": len(result.skipped_files),
            },
        )
        return result

    async def _apply_file(
        self,
        issue: IssueContext,
        branch: str,
        file: FileEdit,
    ) -> bool:
        """Apply one file edit on the branch.

        Returns:
            True if a commit was made, False if the file was skipped.

        Raises:
            GitHubAPIError: For failures other than a stale sha.
        """
        owner, repo = issue.owner, issue.repository
        try:
            existing = await self.github.get_file(owner, repo, file.path, ref=branch)
        except UnreadableFileError as e:
            logger.warning(
                "File is not editable text, skipping",
                extra={"issue_id": issue.issue_id, "path": file.path, "error": e.message},
            )
            return False

        if file.action == FileAction.DELETE:
            if existing is None:
                logger.info(
                    "Delete target already absent, skipping",
                    extra={"issue_id": issue.issue_id, "path": file.path},
                )
                return False
            try:
                await self.github.delete_file(
                    owner,
                    repo,
                    file.path,
                    message=f"Auto-delete: {file.path}",
                    sha=existing.sha,
                    branch=branch,
                )
            except GitHubAPIError as e:
                if e.is_conflict:
                    return self._skip_conflict(issue, file)
                raise
            return True

        if file.content is not None:
            new_content = file.content
        else:
            new_content = apply_line_edits(
                existing.content if existing else "", file.line_edits
            )

        if existing is not None and existing.content == new_content:
            logger.info(
                "File already up to date, skipping",
                extra={"issue_id": issue.issue_id, "path": file.path},
            )
            return False

        verb = "update" if existing is not None else "create"
        try:
            await self.github.create_or_update_file(
                owner,
                repo,
                file.path,
                content=new_content,
                message=f"Auto-{verb}: {file.path}",
                branch=branch,
                sha=existing.sha if existing else None,
            )
        except GitHubAPIError as e:
            if e.is_conflict:
                return self._skip_conflict(issue, file)
            raise
        return True

    def _skip_conflict(self, issue: IssueContext, file: FileEdit) -> bool:
        logger.warning(
            "File changed concurrently, skipping",
            extra={"issue_id": issue.issue_id, "path": file.path},
        )
        return False
