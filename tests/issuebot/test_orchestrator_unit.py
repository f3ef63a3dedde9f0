"""Unit tests for the IssueOrchestrator.

Collaborators (GitHub client, analyzer, solution generator, applicator)
are mocked; the issue store is the real in-memory implementation so status
transitions and action logs can be asserted end to end.
"""

import asyncio
from typing import List, Optional
from unittest.mock import AsyncMock, MagicMock

from src.issuebot.admission import PROCESSED_LABEL, PROCESSING_LABEL
from src.issuebot.analysis.analyzer import Analyzer
from src.issuebot.analysis.completion import CompletionError
from src.issuebot.analysis.models import (
    AnalysisResult,
    Classification,
    EditSet,
    FileAction,
    FileEdit,
    IssueType,
    Priority,
    RemediationPlan,
    RiskLevel,
    Severity,
)
from src.issuebot.analysis.solution import SolutionGenerator
from src.issuebot.autofix.applicator import FixApplicator, FixResult
from src.issuebot.concurrency import KeyedRateLimiter
from src.issuebot.config import BotSettings
from src.issuebot.events.emitter import EventEmitter
from src.issuebot.events.models import EventType
from src.issuebot.github.client import GitHubAPIError, UnreadableFileError
from src.issuebot.github.models import RepositoryInfo
from src.issuebot.orchestrator import IssueOrchestrator
from src.issuebot.state.models import IssueRecord, ProcessingStatus
from src.issuebot.state.store import InMemoryIssueStore
from src.issuebot.webhook.models import (
    CommentEvent,
    IssueAction,
    IssueEvent,
    PullRequestAction,
    PullRequestEvent,
)


KEY = "acme/widgets#42"


def run_async(coro):
    return asyncio.run(coro)


# =============================================================================
# Factories
# =============================================================================


def _make_settings(**overrides) -> BotSettings:
    fields = dict(github_token="ghp_test", llm_api_key="sk-test")
    fields.update(overrides)
    return BotSettings(**fields)


def _make_classification(**overrides) -> Classification:
    fields = dict(
        type=IssueType.BUG,
        severity=Severity.LOW,
        priority=Priority.MEDIUM,
        confidence=0.9,
        description="Off-by-one in pagination",
        suggested_labels=["pagination"],
        auto_fixable=False,
    )
    fields.update(overrides)
    return Classification(**fields)


def _make_edit_set(**overrides) -> EditSet:
    fields = dict(
        description="Fix the loop bound",
        files=[FileEdit(path="src/pager.py", action=FileAction.UPDATE, content="n = 1")],
        confidence=0.95,
        risk_level=RiskLevel.LOW,
    )
    fields.update(overrides)
    return EditSet(**fields)


def _make_plan(edit_set: Optional[EditSet] = None) -> RemediationPlan:
    return RemediationPlan(summary="Use < instead of <=", edit_set=edit_set)


def _make_issue_event(**overrides) -> IssueEvent:
    fields = dict(
        owner="acme",
        repository="widgets",
        issue_number=42,
        title="Last page is empty",
        body="Page 3 of 3 shows nothing",
        author="reporter",
        action=IssueAction.OPENED,
    )
    fields.update(overrides)
    return IssueEvent(**fields)


def _make_comment_event(body: str, **overrides) -> CommentEvent:
    fields = dict(
        owner="acme",
        repository="widgets",
        issue_number=42,
        title="Last page is empty",
        author="reporter",
        comment_id=1001,
        comment_body=body,
        comment_author="maintainer",
    )
    fields.update(overrides)
    return CommentEvent(**fields)


def _make_pr_event(**overrides) -> PullRequestEvent:
    fields = dict(
        action=PullRequestAction.CLOSED,
        owner="acme",
        repository="widgets",
        pr_number=7,
        head_branch="autofix/issue-42",
        merged=True,
        url="https://github.com/acme/widgets/pull/7",
    )
    fields.update(overrides)
    return PullRequestEvent(**fields)


def _make_github() -> MagicMock:
    github = MagicMock()
    github.create_comment = AsyncMock(return_value={})
    github.add_labels = AsyncMock(return_value=[])
    github.remove_label = AsyncMock(return_value=None)
    github.get_repository = AsyncMock(
        return_value=RepositoryInfo(full_name="acme/widgets", name="widgets")
    )
    github.get_file = AsyncMock(return_value=None)
    github.get_issue = AsyncMock(return_value={"state": "open"})
    github.update_issue_state = AsyncMock(return_value={})
    return github


def _make_orchestrator(
    settings: Optional[BotSettings] = None,
    classification: Optional[Classification] = None,
    plan: Optional[RemediationPlan] = None,
    fix_result: Optional[FixResult] = None,
    **kwargs,
) -> IssueOrchestrator:
    analyzer = AsyncMock(spec=Analyzer)
    analyzer.analyze.return_value = AnalysisResult(
        classification=classification or _make_classification()
    )
    solution_generator = AsyncMock(spec=SolutionGenerator)
    solution_generator.generate_solution.return_value = plan or _make_plan()
    solution_generator.generate_edit_set.return_value = None
    applicator = AsyncMock(spec=FixApplicator)
    applicator.apply.return_value = fix_result or FixResult(
        branch="autofix/issue-42",
        changed_files=["src/pager.py"],
        pull_request_number=7,
        pull_request_url="https://github.com/acme/widgets/pull/7",
    )
    return IssueOrchestrator(
        settings=settings or _make_settings(),
        store=InMemoryIssueStore(),
        github=_make_github(),
        analyzer=analyzer,
        solution_generator=solution_generator,
        applicator=applicator,
        **kwargs,
    )


def _seed(orchestrator: IssueOrchestrator, status: ProcessingStatus, **overrides) -> None:
    fields = dict(
        repository="acme/widgets",
        issue_number=42,
        title="Last page is empty",
        classification=_make_classification(auto_fixable=True),
        status=status,
    )
    fields.update(overrides)
    run_async(orchestrator.store.upsert(IssueRecord(**fields)))


def _comments(orchestrator: IssueOrchestrator) -> List[str]:
    return [call.args[3] for call in orchestrator.github.create_comment.call_args_list]


def _status(orchestrator: IssueOrchestrator) -> Optional[ProcessingStatus]:
    record = run_async(orchestrator.store.get(KEY))
    return record.status if record else None


# =============================================================================
# Issue events
# =============================================================================


class TestIssueEvents:
    def test_opened_issue_analyzed_labeled_and_commented(self):
        orchestrator = _make_orchestrator()

        run_async(orchestrator.handle_issue_event(_make_issue_event()))

        github = orchestrator.github
        assert github.add_labels.call_args_list[0].args[3] == [PROCESSING_LABEL]
        github.remove_label.assert_awaited_once_with("acme", "widgets", 42, PROCESSING_LABEL)
        assert github.add_labels.call_args_list[1].args[3] == [
            PROCESSED_LABEL,
            "type:bug",
            "severity:low",
            "priority:medium",
            "pagination",
        ]

        comments = _comments(orchestrator)
        assert len(comments) == 2
        assert comments[0].startswith("## 🤖 Issue Analysis")
        assert comments[1].startswith("## 💡 Suggested Solution")

        record = run_async(orchestrator.store.get(KEY))
        assert record.status == ProcessingStatus.ANALYZED
        assert record.solution.summary == "Use < instead of <="
        assert record.body == "Page 3 of 3 shows nothing"

        log = run_async(orchestrator.store.list_log(KEY))
        assert [(e.details["from_status"], e.details["to_status"]) for e in log] == [
            ("analyzing", "analyzed")
        ]

    def test_skip_label_means_no_work(self):
        orchestrator = _make_orchestrator()

        run_async(orchestrator.handle_issue_event(_make_issue_event(labels=["wontfix"])))

        orchestrator.analyzer.analyze.assert_not_awaited()
        orchestrator.github.create_comment.assert_not_awaited()
        assert _status(orchestrator) is None

    def test_analysis_disabled(self):
        orchestrator = _make_orchestrator(_make_settings(issue_analysis_enabled=False))

        run_async(orchestrator.handle_issue_event(_make_issue_event()))

        orchestrator.analyzer.analyze.assert_not_awaited()

    def test_edit_without_content_change_ignored(self):
        orchestrator = _make_orchestrator()
        event = _make_issue_event(action=IssueAction.EDITED, changed_fields=["labels"])

        run_async(orchestrator.handle_issue_event(event))

        orchestrator.analyzer.analyze.assert_not_awaited()

    def test_edit_with_body_change_reanalyzes(self):
        orchestrator = _make_orchestrator()
        event = _make_issue_event(action=IssueAction.EDITED, changed_fields=["body"])

        run_async(orchestrator.handle_issue_event(event))

        assert _comments(orchestrator)[0].startswith("🔄")
        orchestrator.analyzer.analyze.assert_awaited_once()

    def test_reanalysis_keeps_auto_fix_history(self):
        orchestrator = _make_orchestrator()
        _seed(orchestrator, ProcessingStatus.MANUAL_REQUIRED, auto_fix_attempted=True)
        event = _make_issue_event(action=IssueAction.EDITED, changed_fields=["title"])

        run_async(orchestrator.handle_issue_event(event))

        record = run_async(orchestrator.store.get(KEY))
        assert record.status == ProcessingStatus.ANALYZED
        assert record.auto_fix_attempted is True

    def test_duplicate_delivery_dropped_while_locked(self):
        orchestrator = _make_orchestrator()

        async def scenario():
            async with orchestrator.locks.hold(KEY):
                await orchestrator.handle_issue_event(_make_issue_event())

        run_async(scenario())

        orchestrator.analyzer.analyze.assert_not_awaited()

    def test_rate_limited_event_gets_one_notice(self):
        orchestrator = _make_orchestrator(
            rate_limiter=KeyedRateLimiter(max_requests=1, window_seconds=3600)
        )

        run_async(orchestrator.handle_issue_event(_make_issue_event(issue_number=1)))
        orchestrator.github.create_comment.reset_mock()
        run_async(orchestrator.handle_issue_event(_make_issue_event(issue_number=2)))

        assert orchestrator.analyzer.analyze.await_count == 1
        comments = orchestrator.github.create_comment.call_args_list
        assert len(comments) == 1
        assert comments[0].args[2] == 2
        assert comments[0].args[3].startswith("⏳")

    def test_analysis_failure_posts_single_error_comment(self):
        orchestrator = _make_orchestrator()
        orchestrator.analyzer.analyze.side_effect = CompletionError("timeout")

        run_async(orchestrator.handle_issue_event(_make_issue_event()))

        comments = _comments(orchestrator)
        assert len(comments) == 1
        assert comments[0].startswith("## ⚠️ Processing Error")
        assert "timeout" not in comments[0]
        orchestrator.github.remove_label.assert_awaited_with(
            "acme", "widgets", 42, PROCESSING_LABEL
        )
        assert _status(orchestrator) is None

    def test_solution_failure_keeps_analysis(self):
        orchestrator = _make_orchestrator()
        orchestrator.solution_generator.generate_solution.side_effect = CompletionError("x")

        run_async(orchestrator.handle_issue_event(_make_issue_event()))

        assert _status(orchestrator) == ProcessingStatus.ANALYZED
        assert len(_comments(orchestrator)) == 1

    def test_unexpected_error_does_not_escape(self):
        orchestrator = _make_orchestrator()
        orchestrator.analyzer.analyze.side_effect = RuntimeError("bug")

        run_async(orchestrator.handle_event(_make_issue_event()))


# =============================================================================
# Auto-fix
# =============================================================================


class TestAutoFix:
    def test_auto_fixable_issue_fixed_end_to_end(self):
        orchestrator = _make_orchestrator(
            _make_settings(auto_fix_enabled=True),
            classification=_make_classification(auto_fixable=True),
            plan=_make_plan(_make_edit_set()),
        )

        run_async(orchestrator.handle_issue_event(_make_issue_event()))

        orchestrator.applicator.apply.assert_awaited_once()
        record = run_async(orchestrator.store.get(KEY))
        assert record.status == ProcessingStatus.FIXED
        assert record.auto_fix_attempted is True
        assert record.auto_fix_successful is True

        log = run_async(orchestrator.store.list_log(KEY))
        attempt = [e for e in log if e.action == "auto_fix_attempt"]
        assert attempt[0].details["pr_number"] == 7

    def test_auto_fix_disabled_stops_after_analysis(self):
        orchestrator = _make_orchestrator(
            classification=_make_classification(auto_fixable=True),
            plan=_make_plan(_make_edit_set()),
        )

        run_async(orchestrator.handle_issue_event(_make_issue_event()))

        orchestrator.applicator.apply.assert_not_awaited()
        assert _status(orchestrator) == ProcessingStatus.ANALYZED

    def test_gate_rejection_requires_manual_fix(self):
        orchestrator = _make_orchestrator(
            _make_settings(auto_fix_enabled=True),
            classification=_make_classification(auto_fixable=True),
            plan=_make_plan(_make_edit_set(risk_level=RiskLevel.HIGH)),
        )

        run_async(orchestrator.handle_issue_event(_make_issue_event()))

        orchestrator.applicator.apply.assert_not_awaited()
        assert _status(orchestrator) == ProcessingStatus.MANUAL_REQUIRED
        assert _comments(orchestrator)[-1].startswith("## 🛠️ Manual Fix Required")

    def test_missing_edit_set_requires_manual_fix(self):
        orchestrator = _make_orchestrator(_make_settings(auto_fix_enabled=True))
        _seed(orchestrator, ProcessingStatus.ANALYZED)

        run_async(orchestrator.handle_comment_event(_make_comment_event("@issues-bot fix")))

        orchestrator.solution_generator.generate_edit_set.assert_awaited_once()
        assert _status(orchestrator) == ProcessingStatus.MANUAL_REQUIRED

    def test_failed_application_requires_manual_fix(self):
        orchestrator = _make_orchestrator(
            _make_settings(auto_fix_enabled=True),
            fix_result=FixResult(branch="autofix/issue-42", error="branch protected"),
        )
        _seed(orchestrator, ProcessingStatus.ANALYZED, solution=_make_plan(_make_edit_set()))

        run_async(orchestrator.handle_comment_event(_make_comment_event("@issues-bot fix")))

        record = run_async(orchestrator.store.get(KEY))
        assert record.status == ProcessingStatus.MANUAL_REQUIRED
        assert record.auto_fix_successful is False
        assert "branch protected" in _comments(orchestrator)[-1]

    def test_binary_target_file_requires_manual_fix(self):
        orchestrator = _make_orchestrator(_make_settings(auto_fix_enabled=True))
        github = orchestrator.github
        github.get_branch_sha = AsyncMock(return_value="base-sha")
        github.create_branch = AsyncMock(return_value=True)
        github.create_or_update_file = AsyncMock(return_value={})
        github.create_pull_request = AsyncMock()
        github.get_file = AsyncMock(
            side_effect=UnreadableFileError("Cannot read src/pager.py as text")
        )
        orchestrator.applicator = FixApplicator(github)
        _seed(orchestrator, ProcessingStatus.ANALYZED, solution=_make_plan(_make_edit_set()))

        run_async(orchestrator.handle_comment_event(_make_comment_event("@issues-bot fix")))

        record = run_async(orchestrator.store.get(KEY))
        assert record.status == ProcessingStatus.MANUAL_REQUIRED
        assert record.auto_fix_attempted is True
        assert record.auto_fix_successful is False
        github.create_or_update_file.assert_not_awaited()
        github.create_pull_request.assert_not_awaited()

        log = run_async(orchestrator.store.list_log(KEY))
        assert [e.action for e in log if e.action == "auto_fix_attempt"] == ["auto_fix_attempt"]
        assert "no file changes could be applied" in _comments(orchestrator)[-1]


# =============================================================================
# Comment commands
# =============================================================================


class TestCommands:
    def test_fix_without_analysis_explains_and_changes_nothing(self):
        orchestrator = _make_orchestrator(_make_settings(auto_fix_enabled=True))

        run_async(orchestrator.handle_comment_event(_make_comment_event("@issues-bot fix")))

        comments = _comments(orchestrator)
        assert len(comments) == 1
        assert "has not been analyzed yet" in comments[0]
        assert _status(orchestrator) is None
        orchestrator.applicator.apply.assert_not_awaited()

    def test_fix_when_disabled(self):
        orchestrator = _make_orchestrator()
        _seed(orchestrator, ProcessingStatus.ANALYZED)

        run_async(orchestrator.handle_comment_event(_make_comment_event("@issues-bot fix")))

        assert _comments(orchestrator) == ["Automated fixes are disabled for this installation.\n"]
        assert _status(orchestrator) == ProcessingStatus.ANALYZED

    def test_fix_in_wrong_status_is_explained(self):
        orchestrator = _make_orchestrator(_make_settings(auto_fix_enabled=True))
        _seed(orchestrator, ProcessingStatus.ANALYZING)

        run_async(orchestrator.handle_comment_event(_make_comment_event("@issues-bot fix")))

        assert "the issue is currently analyzing" in _comments(orchestrator)[0]
        assert _status(orchestrator) == ProcessingStatus.ANALYZING

    def test_analyze_command_reruns_analysis(self):
        orchestrator = _make_orchestrator()
        _seed(orchestrator, ProcessingStatus.ERROR)

        run_async(orchestrator.handle_comment_event(_make_comment_event("@issues-bot analyze")))

        orchestrator.analyzer.analyze.assert_awaited_once()
        assert _status(orchestrator) == ProcessingStatus.ANALYZED

    def test_analyze_failure_moves_record_to_error(self):
        orchestrator = _make_orchestrator()
        orchestrator.analyzer.analyze.side_effect = CompletionError("down")
        _seed(orchestrator, ProcessingStatus.ANALYZED)

        run_async(orchestrator.handle_comment_event(_make_comment_event("@issues-bot analyze")))

        assert _status(orchestrator) == ProcessingStatus.ERROR
        assert len(_comments(orchestrator)) == 1

    def test_suggest_posts_and_stores_solution(self):
        orchestrator = _make_orchestrator()
        _seed(orchestrator, ProcessingStatus.ANALYZED)

        run_async(orchestrator.handle_comment_event(_make_comment_event("@issues-bot suggest")))

        comments = _comments(orchestrator)
        assert len(comments) == 1
        assert comments[0].startswith("## 💡 Suggested Solution")
        record = run_async(orchestrator.store.get(KEY))
        assert record.solution.summary == "Use < instead of <="

    def test_help_and_unknown_command(self):
        orchestrator = _make_orchestrator()

        run_async(orchestrator.handle_comment_event(_make_comment_event("@issues-bot help")))
        run_async(orchestrator.handle_comment_event(_make_comment_event("@issues-bot deploy")))

        help_comment, unknown_comment = _comments(orchestrator)
        assert help_comment.startswith("## 🤖 Available commands")
        assert unknown_comment.startswith("Unknown command `deploy`.")

    def test_bot_and_plain_comments_ignored(self):
        orchestrator = _make_orchestrator()

        run_async(
            orchestrator.handle_comment_event(
                _make_comment_event("@issues-bot fix", comment_author_is_bot=True)
            )
        )
        run_async(orchestrator.handle_comment_event(_make_comment_event("looks good to me")))

        orchestrator.github.create_comment.assert_not_awaited()

    def test_own_comments_ignored_when_posting_as_user(self):
        orchestrator = _make_orchestrator()

        run_async(
            orchestrator.handle_comment_event(
                _make_comment_event(
                    "Reply with `@issues-bot help` for commands.",
                    comment_author="Issues-Bot",
                )
            )
        )

        orchestrator.github.create_comment.assert_not_awaited()

    def test_comment_rate_limit_is_separate_from_issue_rate_limit(self):
        orchestrator = _make_orchestrator(
            rate_limiter=KeyedRateLimiter(max_requests=1, window_seconds=3600)
        )

        run_async(orchestrator.handle_issue_event(_make_issue_event()))
        orchestrator.github.create_comment.reset_mock()
        run_async(orchestrator.handle_comment_event(_make_comment_event("@issues-bot help")))

        assert _comments(orchestrator)[0].startswith("## 🤖 Available commands")


# =============================================================================
# Pull request events
# =============================================================================


class TestPullRequestEvents:
    def test_merged_auto_fix_closes_issue_once(self):
        orchestrator = _make_orchestrator()
        _seed(orchestrator, ProcessingStatus.FIXED)

        run_async(orchestrator.handle_pull_request_event(_make_pr_event()))
        run_async(orchestrator.handle_pull_request_event(_make_pr_event()))

        assert _status(orchestrator) == ProcessingStatus.CLOSED
        comments = _comments(orchestrator)
        assert len(comments) == 1
        assert "#7" in comments[0]
        orchestrator.github.update_issue_state.assert_awaited_once_with(
            "acme", "widgets", 42, "closed", state_reason="completed"
        )

    def test_merge_from_manual_required_status(self):
        orchestrator = _make_orchestrator()
        _seed(orchestrator, ProcessingStatus.MANUAL_REQUIRED)

        run_async(orchestrator.handle_pull_request_event(_make_pr_event()))

        assert _status(orchestrator) == ProcessingStatus.CLOSED

    def test_already_closed_platform_issue_not_closed_again(self):
        orchestrator = _make_orchestrator()
        orchestrator.github.get_issue.return_value = {"state": "closed"}
        _seed(orchestrator, ProcessingStatus.FIXED)

        run_async(orchestrator.handle_pull_request_event(_make_pr_event()))

        orchestrator.github.update_issue_state.assert_not_awaited()

    def test_unmerged_close_only_logged(self):
        orchestrator = _make_orchestrator()
        _seed(orchestrator, ProcessingStatus.FIXED)

        run_async(orchestrator.handle_pull_request_event(_make_pr_event(merged=False)))

        assert _status(orchestrator) == ProcessingStatus.FIXED
        orchestrator.github.create_comment.assert_not_awaited()
        log = run_async(orchestrator.store.list_log(KEY))
        assert log[-1].action == "autofix_pr_closed"
        assert log[-1].details["merged"] is False

    def test_opened_pull_request_logged(self):
        orchestrator = _make_orchestrator()

        run_async(
            orchestrator.handle_pull_request_event(
                _make_pr_event(action=PullRequestAction.OPENED, merged=False)
            )
        )

        log = run_async(orchestrator.store.list_log(KEY))
        assert log[0].action == "autofix_pr_opened"
        assert log[0].details["pr_number"] == 7

    def test_other_branches_ignored(self):
        orchestrator = _make_orchestrator()

        run_async(
            orchestrator.handle_pull_request_event(_make_pr_event(head_branch="feature/login"))
        )

        orchestrator.github.create_comment.assert_not_awaited()
        assert run_async(orchestrator.store.list_log(KEY)) == []

    def test_close_failure_reported(self):
        orchestrator = _make_orchestrator()
        orchestrator.github.update_issue_state.side_effect = GitHubAPIError(
            "forbidden", status_code=403
        )
        _seed(orchestrator, ProcessingStatus.FIXED)

        run_async(orchestrator.handle_pull_request_event(_make_pr_event()))

        assert _comments(orchestrator)[-1].startswith("## ⚠️ Processing Error")


# =============================================================================
# Events
# =============================================================================


class TestEmittedEvents:
    def test_events_for_analysis(self):
        emitter = AsyncMock(spec=EventEmitter)
        orchestrator = _make_orchestrator(event_emitter=emitter)

        run_async(orchestrator.handle_issue_event(_make_issue_event()))

        types = [call.args[0].event_type for call in emitter.emit.call_args_list]
        assert types == [EventType.STATUS_TRANSITION, EventType.ANALYSIS_COMPLETED]

    def test_emitter_failure_does_not_break_pipeline(self):
        emitter = AsyncMock(spec=EventEmitter)
        emitter.emit.side_effect = RuntimeError("sink down")
        orchestrator = _make_orchestrator(event_emitter=emitter)

        run_async(orchestrator.handle_issue_event(_make_issue_event()))

        assert _status(orchestrator) == ProcessingStatus.ANALYZED
