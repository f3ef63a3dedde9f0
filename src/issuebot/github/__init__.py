"""GitHub API client for issue, file, branch and pull request operations.

Includes retry logic and rate-limit detection for API resilience.
"""

from src.issuebot.github.client import (
    GitHubAPIError,
    GitHubClient,
    RateLimitError,
    UnreadableFileError,
)
from src.issuebot.github.models import (
    FileContent,
    PullRequestRequest,
    PullRequestResult,
    RepositoryInfo,
)

__all__ = [
    "FileContent",
    "GitHubAPIError",
    "GitHubClient",
    "PullRequestRequest",
    "PullRequestResult",
    "RateLimitError",
    "RepositoryInfo",
    "UnreadableFileError",
]
