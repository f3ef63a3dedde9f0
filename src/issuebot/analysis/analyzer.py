"""LLM-based issue analyzer.

Turns raw issue content into a Classification. Malformed model output is
absorbed into the fallback classification (tagged degraded) so a failed
analysis never blocks intake; only transport failures from the completion
client propagate.
"""

import logging
from typing import Optional

from src.issuebot.analysis.completion import CompletionClient
from src.issuebot.analysis.models import AnalysisResult
from src.issuebot.analysis.parsing import parse_classification
from src.issuebot.analysis.prompts import (
    ANALYSIS_SYSTEM_PROMPT,
    build_analysis_prompt,
)
from src.issuebot.github.models import RepositoryInfo
from src.issuebot.webhook.models import IssueContext


logger = logging.getLogger(__name__)


class Analyzer:
    """Classifies issues with a language model.

    Example:
        >>> analyzer = Analyzer(CompletionClient(api_key="sk-..."))
        >>> result = await analyzer.analyze(issue)
        >>> result.classification.type
        IssueType.BUG
    """

    def __init__(self, completion: CompletionClient):
        self.completion = completion

    async def analyze(
        self,
        issue: IssueContext,
        repository: Optional[RepositoryInfo] = None,
    ) -> AnalysisResult:
        """Classify an issue.

        Args:
            issue: The issue to classify.
            repository: Repository metadata; when omitted, the name and
                        language carried by the webhook payload are used.

        Returns:
            AnalysisResult; degraded is True when the fallback was used.

        Raises:
            CompletionError: If the completion call itself fails.
        """
        repo_name = repository.full_name if repository else issue.full_repository
        language = repository.language if repository else issue.language

        logger.info(
            "Analyzing issue",
            extra={
                "issue_id": issue.issue_id,
                "title": issue.title[:100],
                "body_length": len(issue.body),
                "labels": issue.labels,
            },
        )

        response_text = await self.completion.complete(
            ANALYSIS_SYSTEM_PROMPT,
            build_analysis_prompt(
                title=issue.title,
                body=issue.body,
                labels=issue.labels,
                repository=repo_name,
                language=language,
            ),
        )
        result = parse_classification(response_text)

        logger.info(
            "Issue analyzed",
            extra={
                "issue_id": issue.issue_id,
                "type": result.classification.type.value,
                "severity": result.classification.severity.value,
                "priority": result.classification.priority.value,
                "confidence": result.classification.confidence,
                "auto_fixable": result.classification.auto_fixable,
                "degraded": result.degraded,
            },
        )
        return result
