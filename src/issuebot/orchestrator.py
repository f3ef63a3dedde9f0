"""Issue orchestrator connecting all stages of the bot workflow.

Receives typed webhook events and drives them through the pipeline:
admission → rate limit → analysis → solution → safety gate → auto-fix.

The orchestrator delegates all work to injected dependencies. Status
changes go through StatusMachine, observability through the event emitter.
Per-issue work is serialized with IssueLocks: automatic deliveries for an
issue that is already being processed are dropped as duplicates, explicit
commands wait their turn.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from src.issuebot.admission import (
    PROCESSING_LABEL,
    classification_labels,
    rejection_reason,
)
from src.issuebot.analysis.analyzer import Analyzer
from src.issuebot.analysis.completion import CompletionError
from src.issuebot.analysis.models import Classification, EditSet, RemediationPlan
from src.issuebot.analysis.solution import SolutionGenerator, build_codebase_context
from src.issuebot.autofix.applicator import FixApplicator
from src.issuebot.autofix.gate import evaluate
from src.issuebot.commands import Command, CommandAction, parse_command
from src.issuebot.concurrency import IssueLocks, KeyedRateLimiter
from src.issuebot.config import BotSettings
from src.issuebot.events.emitter import EventEmitter, NullEventEmitter
from src.issuebot.events.models import EventType, PipelineEvent
from src.issuebot.formatting import (
    format_analysis_comment,
    format_auto_fix_disabled_comment,
    format_completion_comment,
    format_error_comment,
    format_help_comment,
    format_manual_required_comment,
    format_no_analysis_comment,
    format_rate_limited_comment,
    format_reanalyzing_comment,
    format_solution_comment,
)
from src.issuebot.github.client import GitHubAPIError, GitHubClient
from src.issuebot.state.machine import (
    InvalidTransitionError,
    RecordNotFoundError,
    StatusMachine,
)
from src.issuebot.state.models import IssueRecord, ProcessingStatus, make_issue_key
from src.issuebot.state.store import IssueStore, StoreError
from src.issuebot.webhook.models import (
    CommentEvent,
    IssueAction,
    IssueContext,
    IssueEvent,
    PullRequestAction,
    PullRequestEvent,
    WebhookEvent,
)

logger = logging.getLogger(__name__)

# Failures that end processing of an issue in the error status
PIPELINE_ERRORS = (CompletionError, GitHubAPIError, StoreError)


class IssueOrchestrator:
    """Drives issue, comment and pull request events through the pipeline.

    Attributes:
        settings: Immutable bot configuration.
        store: Issue record persistence.
        github: GitHub API client for comments, labels and issue state.
        analyzer: Issue classifier.
        solution_generator: Remediation plan and edit set generator.
        applicator: Applies approved edit sets as pull requests.
        rate_limiter: Per-repository token buckets.
        locks: Per-issue lock registry.
        event_emitter: Emits pipeline events for observability.
    """

    def __init__(
        self,
        settings: BotSettings,
        store: IssueStore,
        github: GitHubClient,
        analyzer: Analyzer,
        solution_generator: SolutionGenerator,
        applicator: FixApplicator,
        rate_limiter: Optional[KeyedRateLimiter] = None,
        locks: Optional[IssueLocks] = None,
        event_emitter: Optional[EventEmitter] = None,
    ):
        self.settings = settings
        self.store = store
        self.github = github
        self.analyzer = analyzer
        self.solution_generator = solution_generator
        self.applicator = applicator
        self.rate_limiter = rate_limiter or KeyedRateLimiter(
            max_requests=settings.rate_limit_max,
            window_seconds=settings.rate_limit_window_seconds,
        )
        self.locks = locks or IssueLocks()
        self.event_emitter = event_emitter or NullEventEmitter()
        self.state_machine = StatusMachine(store)
        self.policy = settings.safety_policy()

    async def handle_event(self, event: WebhookEvent) -> None:
        """Process one webhook event.

        Runs as a background task, so nothing may escape: failures are
        logged and the process keeps serving other issues.
        """
        try:
            if isinstance(event, IssueEvent):
                await self.handle_issue_event(event)
            elif isinstance(event, CommentEvent):
                await self.handle_comment_event(event)
            elif isinstance(event, PullRequestEvent):
                await self.handle_pull_request_event(event)
            else:
                logger.warning(
                    "Unsupported event type",
                    extra={"event_class": type(event).__name__},
                )
        except Exception:
            logger.exception(
                "Unhandled error while processing event",
                extra={"event_class": type(event).__name__},
            )

    # ------------------------------------------------------------------
    # Issue events
    # ------------------------------------------------------------------

    async def handle_issue_event(self, event: IssueEvent) -> None:
        """Analyze an opened issue, or an edited one whose content changed."""
        issue_id = event.issue_id

        if not self.settings.issue_analysis_enabled:
            logger.debug("Issue analysis disabled", extra={"issue_id": issue_id})
            return

        if event.action == IssueAction.EDITED and not event.content_changed:
            logger.debug(
                "Ignoring edit without title or body change",
                extra={"issue_id": issue_id, "changed": event.changed_fields},
            )
            return

        reason = rejection_reason(event, self.settings.skip_labels)
        if reason:
            logger.info(
                "Issue not admitted",
                extra={"issue_id": issue_id, "reason": reason},
            )
            return

        key = make_issue_key(event.full_repository, event.issue_number)
        if self.locks.is_locked(key):
            logger.info(
                "Issue already being processed, dropping duplicate delivery",
                extra={"issue_id": issue_id, "action": event.action.value},
            )
            return

        async with self.locks.hold(key):
            if not await self._acquire_rate_limit(event, event.full_repository, "issues"):
                return

            logger.info(
                "Processing issue event",
                extra={"issue_id": issue_id, "action": event.action.value},
            )

            try:
                if event.action == IssueAction.EDITED:
                    await self._comment(event, format_reanalyzing_comment())
                await self._run_analysis(event)
            except PIPELINE_ERRORS as exc:
                await self._fail(
                    event.owner, event.repository, event.issue_number, "issue_event", exc
                )

    # ------------------------------------------------------------------
    # Comment events
    # ------------------------------------------------------------------

    async def handle_comment_event(self, event: CommentEvent) -> None:
        """Interpret a bot command posted as an issue comment."""
        # A personal access token posts as a regular user named after the bot
        if (
            event.comment_author_is_bot
            or event.comment_author.lower() == self.settings.bot_name.lower()
        ):
            return

        command = parse_command(event.comment_body, self.settings.bot_name)
        if command is None:
            return

        rate_key = f"{event.full_repository}/comment"
        if not await self._acquire_rate_limit(event, rate_key, "comment"):
            return

        logger.info(
            "Processing command",
            extra={
                "issue_id": event.issue_id,
                "command": command.raw_action,
                "author": event.comment_author,
            },
        )

        if command.action == CommandAction.HELP:
            await self._try_comment(
                event,
                format_help_comment(
                    self.settings.bot_name,
                    command.raw_action if command.is_unknown else None,
                ),
            )
            return

        key = make_issue_key(event.full_repository, event.issue_number)
        async with self.locks.hold(key):
            try:
                await self._dispatch_command(event, command)
            except InvalidTransitionError as exc:
                logger.warning(
                    "Command not applicable in current status",
                    extra={
                        "issue_id": event.issue_id,
                        "command": command.raw_action,
                        "status": exc.from_status.value,
                    },
                )
                await self._try_comment(
                    event,
                    format_manual_required_comment(
                        [f"the issue is currently {exc.from_status.value}"]
                    ),
                )
            except PIPELINE_ERRORS as exc:
                await self._fail(
                    event.owner,
                    event.repository,
                    event.issue_number,
                    f"command_{command.action.value}",
                    exc,
                )

    async def _dispatch_command(self, event: CommentEvent, command: Command) -> None:
        if command.action == CommandAction.ANALYZE:
            await self._run_analysis(event)
        elif command.action == CommandAction.FIX:
            await self._run_fix_command(event)
        elif command.action == CommandAction.SUGGEST:
            await self._run_suggest_command(event)

    async def _run_fix_command(self, event: CommentEvent) -> None:
        record = await self.store.get(
            make_issue_key(event.full_repository, event.issue_number)
        )
        if record is None:
            await self._comment(event, format_no_analysis_comment(self.settings.bot_name))
            return

        if not self.settings.auto_fix_enabled:
            await self._comment(event, format_auto_fix_disabled_comment())
            return

        await self._attempt_auto_fix(event, record, record.solution)

    async def _run_suggest_command(self, event: CommentEvent) -> None:
        record = await self.store.get(
            make_issue_key(event.full_repository, event.issue_number)
        )
        if record is None:
            await self._comment(event, format_no_analysis_comment(self.settings.bot_name))
            return

        context = await self._codebase_context(event, record.classification)
        plan = await self.solution_generator.generate_solution(
            event, record.classification, context
        )
        await self.store.upsert(record.model_copy(update={"solution": plan}))
        await self._comment(
            event, format_solution_comment(plan, self.settings.bot_name)
        )

    # ------------------------------------------------------------------
    # Pull request events
    # ------------------------------------------------------------------

    async def handle_pull_request_event(self, event: PullRequestEvent) -> None:
        """Track auto-fix pull requests and close issues when they merge."""
        issue_number = event.linked_issue_number
        if issue_number is None:
            logger.debug(
                "Ignoring pull request on non auto-fix branch",
                extra={"repository": event.full_repository, "branch": event.head_branch},
            )
            return

        key = make_issue_key(event.full_repository, issue_number)
        details = {"pr_number": event.pr_number, "pr_url": event.url}

        async with self.locks.hold(key):
            try:
                if event.action == PullRequestAction.OPENED:
                    await self.store.append_log(key, "autofix_pr_opened", details)
                    return

                await self.store.append_log(
                    key, "autofix_pr_closed", {**details, "merged": event.merged}
                )
                if event.merged:
                    await self._complete_issue(event, issue_number)
            except PIPELINE_ERRORS as exc:
                await self._fail(
                    event.owner, event.repository, issue_number, "pull_request_event", exc
                )

    async def _complete_issue(self, event: PullRequestEvent, issue_number: int) -> None:
        key = make_issue_key(event.full_repository, issue_number)
        issue_id = f"{event.full_repository}#{issue_number}"

        record = await self.store.get(key)
        if record is not None:
            if record.status == ProcessingStatus.CLOSED:
                logger.info(
                    "Issue already closed by a merged auto-fix",
                    extra={"issue_id": issue_id, "pr_number": event.pr_number},
                )
                return
            try:
                record = await self._transition(
                    record, ProcessingStatus.FIXED, {"pr_number": event.pr_number}
                )
                record = await self._transition(
                    record, ProcessingStatus.CLOSED, {"pr_number": event.pr_number}
                )
            except InvalidTransitionError:
                # The platform issue is still resolved by the merge
                logger.warning(
                    "Could not record merged auto-fix in issue status",
                    extra={"issue_id": issue_id, "status": record.status.value},
                )
        else:
            logger.warning(
                "Merged auto-fix for an issue without a record",
                extra={"issue_id": issue_id, "pr_number": event.pr_number},
            )

        await self.github.create_comment(
            event.owner,
            event.repository,
            issue_number,
            format_completion_comment(event.pr_number),
        )

        issue = await self.github.get_issue(event.owner, event.repository, issue_number)
        if issue.get("state") != "closed":
            await self.github.update_issue_state(
                event.owner,
                event.repository,
                issue_number,
                "closed",
                state_reason="completed",
            )

        await self._emit(
            EventType.AUTO_FIX_RESULT,
            issue_id,
            event.full_repository,
            {"outcome": "merged", "pr_number": event.pr_number},
        )
        logger.info(
            "Issue closed after auto-fix merge",
            extra={"issue_id": issue_id, "pr_number": event.pr_number},
        )

    # ------------------------------------------------------------------
    # Pipeline stages
    # ------------------------------------------------------------------

    async def _run_analysis(self, issue: IssueContext) -> None:
        """Classify, store, label and comment; then plan and maybe fix.

        Raises:
            CompletionError, GitHubAPIError, StoreError: On unrecoverable
                failures; the caller moves the issue to error.
        """
        issue_id = issue.issue_id
        key = make_issue_key(issue.full_repository, issue.issue_number)

        existing = await self.store.get(key)
        if existing is not None:
            existing = await self._transition(existing, ProcessingStatus.ANALYZING)

        await self.github.add_labels(
            issue.owner, issue.repository, issue.issue_number, [PROCESSING_LABEL]
        )

        started = time.monotonic()
        result = await self.analyzer.analyze(issue)
        duration = time.monotonic() - started
        classification = result.classification

        record = IssueRecord(
            repository=issue.full_repository,
            issue_number=issue.issue_number,
            title=issue.title,
            body=issue.body,
            classification=classification,
            status=ProcessingStatus.ANALYZING,
        )
        if existing is not None:
            record = record.model_copy(
                update={
                    "auto_fix_attempted": existing.auto_fix_attempted,
                    "auto_fix_successful": existing.auto_fix_successful,
                    "processed_at": existing.processed_at,
                }
            )
        record = await self.store.upsert(record)
        record = await self._transition(
            record,
            ProcessingStatus.ANALYZED,
            {"degraded": result.degraded, "confidence": classification.confidence},
        )

        await self.github.remove_label(
            issue.owner, issue.repository, issue.issue_number, PROCESSING_LABEL
        )
        await self.github.add_labels(
            issue.owner,
            issue.repository,
            issue.issue_number,
            classification_labels(classification),
        )
        await self._comment(
            issue,
            format_analysis_comment(
                classification, self.settings.bot_name, degraded=result.degraded
            ),
        )

        await self._emit(
            EventType.ANALYSIS_COMPLETED,
            issue_id,
            issue.full_repository,
            {
                "degraded": result.degraded,
                "duration_seconds": duration,
                "type": classification.type.value,
                "priority": classification.priority.value,
            },
        )

        context = await self._codebase_context(issue, classification)
        plan = await self._generate_plan(issue, classification, context)
        if plan is not None:
            record = await self.store.upsert(record.model_copy(update={"solution": plan}))
            await self._comment(
                issue, format_solution_comment(plan, self.settings.bot_name)
            )

        if classification.auto_fixable and self.settings.auto_fix_enabled:
            await self._attempt_auto_fix(issue, record, plan, context)

    async def _generate_plan(
        self,
        issue: IssueContext,
        classification: Classification,
        context: Optional[Dict[str, str]],
    ) -> Optional[RemediationPlan]:
        """Best-effort remediation plan; failures leave the status unchanged."""
        try:
            return await self.solution_generator.generate_solution(
                issue, classification, context
            )
        except CompletionError as exc:
            logger.warning(
                "Solution generation failed",
                extra={"issue_id": issue.issue_id, "error": str(exc)},
            )
            return None

    async def _codebase_context(
        self,
        issue: IssueContext,
        classification: Classification,
    ) -> Optional[Dict[str, str]]:
        try:
            return await build_codebase_context(self.github, issue, classification)
        except GitHubAPIError as exc:
            logger.warning(
                "Could not collect codebase context",
                extra={"issue_id": issue.issue_id, "error": exc.message},
            )
            return None

    async def _attempt_auto_fix(
        self,
        issue: IssueContext,
        record: IssueRecord,
        plan: Optional[RemediationPlan],
        context: Optional[Dict[str, str]] = None,
    ) -> None:
        """Gate and apply an edit set, ending in fixed or manual_required."""
        issue_id = issue.issue_id
        key = record.key
        classification = record.classification

        record = await self._transition(record, ProcessingStatus.AUTO_FIXING)

        edit_set: Optional[EditSet] = plan.edit_set if plan else None
        if edit_set is None:
            if context is None:
                context = await self._codebase_context(issue, classification)
            edit_set = await self.solution_generator.generate_edit_set(
                issue, classification, context
            )

        if edit_set is None:
            await self._manual_required(
                issue, record, ["no machine-applicable fix could be generated"], "rejected"
            )
            return

        decision = evaluate(edit_set, classification, self.policy)
        if not decision.approved:
            logger.info(
                "Auto-fix rejected by safety gate",
                extra={"issue_id": issue_id, "reasons": decision.reasons},
            )
            await self._manual_required(issue, record, decision.reasons, "rejected")
            return

        result = await self.applicator.apply(issue, classification, edit_set)

        await self.store.append_log(
            key,
            "auto_fix_attempt",
            {
                "success": result.success,
                "branch": result.branch,
                "changed_files": result.changed_files,
                "skipped_files": result.skipped_files,
                "pr_number": result.pull_request_number,
                "error": result.error,
            },
        )
        await self.store.record_auto_fix_attempt(key, result.success)

        if not result.success:
            await self._manual_required(
                issue, record, [result.error or "the fix could not be applied"], "failed"
            )
            return

        await self._transition(
            record, ProcessingStatus.FIXED, {"pr_number": result.pull_request_number}
        )
        await self._emit(
            EventType.AUTO_FIX_RESULT,
            issue_id,
            issue.full_repository,
            {"outcome": "applied", "pr_number": result.pull_request_number},
        )

    async def _manual_required(
        self,
        issue: IssueContext,
        record: IssueRecord,
        reasons: List[str],
        outcome: str,
    ) -> None:
        await self._transition(
            record, ProcessingStatus.MANUAL_REQUIRED, {"reasons": reasons}
        )
        await self._comment(issue, format_manual_required_comment(reasons))
        await self._emit(
            EventType.AUTO_FIX_RESULT,
            issue.issue_id,
            issue.full_repository,
            {"outcome": outcome, "reasons": reasons},
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _acquire_rate_limit(
        self, issue: IssueContext, key: str, channel: str
    ) -> bool:
        """Take a token for key; on exhaustion post one notice and refuse."""
        if self.rate_limiter.try_acquire(key):
            return True

        logger.warning(
            "Rate limit exceeded, dropping event",
            extra={"issue_id": issue.issue_id, "rate_limit_key": key},
        )
        await self._emit(
            EventType.RATE_LIMITED,
            issue.issue_id,
            issue.full_repository,
            {"channel": channel},
        )
        await self._try_comment(issue, format_rate_limited_comment())
        return False

    async def _transition(
        self,
        record: IssueRecord,
        to_status: ProcessingStatus,
        details: Optional[Dict[str, Any]] = None,
    ) -> IssueRecord:
        """Transition state and emit a status-transition event."""
        from_status = record.status
        updated = await self.state_machine.transition(record.key, to_status, details)
        if from_status != to_status:
            await self._emit(
                EventType.STATUS_TRANSITION,
                record.key,
                record.repository,
                {"from_status": from_status.value, "to_status": to_status.value},
            )
        return updated

    async def _fail(
        self,
        owner: str,
        repository: str,
        issue_number: int,
        stage: str,
        exc: Exception,
    ) -> None:
        """Move the issue to error and post one generic error comment."""
        full_repository = f"{owner}/{repository}"
        key = make_issue_key(full_repository, issue_number)
        logger.exception(
            "Pipeline stage failed",
            extra={"issue_id": key, "stage": stage},
        )
        await self._emit(
            EventType.ERROR,
            key,
            full_repository,
            {
                "stage": stage,
                "error_type": type(exc).__name__,
                "error_message": str(exc),
            },
        )

        try:
            record = await self.store.get(key)
            if record is not None:
                await self._transition(
                    record,
                    ProcessingStatus.ERROR,
                    {"stage": stage, "error_type": type(exc).__name__},
                )
        except (StoreError, InvalidTransitionError, RecordNotFoundError):
            logger.exception(
                "Failed to transition to error status",
                extra={"issue_id": key},
            )

        try:
            await self.github.remove_label(owner, repository, issue_number, PROCESSING_LABEL)
        except GitHubAPIError as label_exc:
            logger.warning(
                "Failed to remove processing label",
                extra={"issue_id": key, "error": label_exc.message},
            )

        try:
            await self.github.create_comment(
                owner, repository, issue_number, format_error_comment(self.settings.bot_name)
            )
        except GitHubAPIError as comment_exc:
            logger.error(
                "Failed to report error on issue",
                extra={"issue_id": key, "error": comment_exc.message},
            )

    async def _comment(self, issue: IssueContext, body: str) -> None:
        await self.github.create_comment(
            issue.owner, issue.repository, issue.issue_number, body
        )

    async def _try_comment(self, issue: IssueContext, body: str) -> None:
        """Post a comment, logging instead of raising on API failure."""
        try:
            await self._comment(issue, body)
        except GitHubAPIError as exc:
            logger.error(
                "Failed to post comment",
                extra={"issue_id": issue.issue_id, "error": exc.message},
            )

    async def _emit(
        self,
        event_type: EventType,
        issue_id: str,
        repository: str,
        details: Dict[str, Any],
    ) -> None:
        """Emit an event, swallowing exceptions to avoid disrupting the pipeline."""
        try:
            await self.event_emitter.emit(
                PipelineEvent(
                    event_type=event_type,
                    issue_id=issue_id,
                    repository=repository,
                    details=details,
                )
            )
        except Exception:
            logger.exception(
                "Failed to emit pipeline event",
                extra={"event_type": event_type.value, "issue_id": issue_id},
            )
