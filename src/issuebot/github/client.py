"""GitHub API client for the issue bot.

This module provides an async wrapper around the GitHub REST API for:
- Issue comments, labels, state and content
- Repository metadata
- File contents (read, create, update, delete)
- Branch references and pull requests

Includes retry with exponential backoff for transient failures and
rate-limit detection.
"""

import asyncio
import base64
import logging
import random
import time
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from src.issuebot.github.models import (
    FileContent,
    PullRequestRequest,
    PullRequestResult,
    RepositoryInfo,
)


logger = logging.getLogger(__name__)


class GitHubAPIError(Exception):
    """Raised when a GitHub API request fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the response.
        response_body: Response body from GitHub API.
        request_url: The URL that was requested.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url
        super().__init__(message)

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_conflict(self) -> bool:
        """True for a stale blob sha or an already existing reference."""
        return self.status_code in (409, 422)


class RateLimitError(GitHubAPIError):
    """Raised when GitHub API rate limit is exceeded.

    Attributes:
        reset_at: Unix timestamp when the rate limit resets.
        retry_after: Seconds to wait before retrying.
    """

    def __init__(
        self,
        message: str,
        reset_at: Optional[int] = None,
        retry_after: Optional[int] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.reset_at = reset_at
        self.retry_after = retry_after


class UnreadableFileError(GitHubAPIError):
    """Raised when a file exists but its content is not decodable text.

    Covers binary or non-UTF-8 blobs and files too large for inline
    content.
    """


def _parse_int_header(headers: httpx.Headers, name: str) -> Optional[int]:
    value = headers.get(name)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            return None
    return None


class GitHubClient:
    """Async GitHub API client with retry logic.

    Attributes:
        token: GitHub API token (PAT or GitHub App token).
        base_url: Base URL for GitHub API (default: https://api.github.com).
        max_retries: Maximum number of retry attempts for transient failures.
        base_delay: Base delay in seconds for exponential backoff.
        max_delay: Maximum delay in seconds between retries.
        timeout: Request timeout in seconds.

    Example:
        >>> async with GitHubClient(token="ghp_xxx") as client:
        ...     await client.create_comment("owner", "repo", 123, "Hello!")
    """

    # HTTP status codes that should trigger a retry
    RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.github.com",
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the GitHub client.

        Args:
            token: GitHub API token for authentication.
            base_url: Base URL for GitHub API. Use this to support
                      GitHub Enterprise Server endpoints.
            max_retries: Maximum number of retry attempts.
            base_delay: Base delay in seconds for exponential backoff.
            max_delay: Maximum delay in seconds between retries.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport, used by tests.
        """
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Authorization": f"Bearer {self.token}",
                    "Accept": "application/vnd.github+json",
                    "X-GitHub-Api-Version": "2022-11-28",
                    "User-Agent": "issuebot/0.1",
                },
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _calculate_backoff(self, attempt: int) -> float:
        """Exponential backoff with full jitter."""
        exponential_delay = self.base_delay * (2 ** attempt)
        capped_delay = min(exponential_delay, self.max_delay)
        return random.uniform(0, capped_delay)

    def _rate_limit_error(self, response: httpx.Response) -> RateLimitError:
        reset_at = _parse_int_header(response.headers, "x-ratelimit-reset")
        retry_after = _parse_int_header(response.headers, "retry-after")
        if retry_after is None and reset_at is not None:
            retry_after = max(0, reset_at - int(time.time()))

        logger.warning(
            "GitHub API rate limit exceeded",
            extra={"reset_at": reset_at, "retry_after": retry_after},
        )
        return RateLimitError(
            message="GitHub API rate limit exceeded",
            status_code=response.status_code,
            reset_at=reset_at,
            retry_after=retry_after,
            request_url=str(response.url),
        )

    async def _request(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Make an HTTP request with retry logic.

        Raises:
            GitHubAPIError: If the request fails after all retries.
            RateLimitError: If the rate limit is exhausted.
        """
        last_exception: Optional[Exception] = None

        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.request(
                    method=method,
                    url=path,
                    json=json_data,
                    params=params,
                )
            except httpx.RequestError as e:
                last_exception = e
                if attempt < self.max_retries:
                    delay = self._calculate_backoff(attempt)
                    logger.warning(
                        "Request error, retrying",
                        extra={
                            "error": str(e),
                            "attempt": attempt + 1,
                            "delay": delay,
                            "path": path,
                        },
                    )
                    await asyncio.sleep(delay)
                continue

            if response.status_code == 403 and _parse_int_header(
                response.headers, "x-ratelimit-remaining"
            ) == 0:
                raise self._rate_limit_error(response)

            if response.status_code == 429:
                raise self._rate_limit_error(response)

            if (
                response.status_code in self.RETRYABLE_STATUS_CODES
                and attempt < self.max_retries
            ):
                delay = self._calculate_backoff(attempt)
                logger.warning(
                    "Retryable error from GitHub API",
                    extra={
                        "status_code": response.status_code,
                        "attempt": attempt + 1,
                        "delay": delay,
                        "path": path,
                    },
                )
                await asyncio.sleep(delay)
                continue

            if response.status_code >= 400:
                error_body = response.text
                # Not-found and conflict are routine for file and label calls
                log = logger.warning if response.status_code < 500 else logger.error
                log(
                    "GitHub API error",
                    extra={
                        "status_code": response.status_code,
                        "path": path,
                        "method": method,
                        "response_body": error_body[:500],
                    },
                )
                raise GitHubAPIError(
                    message=f"GitHub API error: {response.status_code}",
                    status_code=response.status_code,
                    response_body=error_body,
                    request_url=str(response.url),
                )

            return response

        logger.error(
            "GitHub API request failed after all retries",
            extra={
                "path": path,
                "method": method,
                "max_retries": self.max_retries,
                "last_error": str(last_exception),
            },
        )
        raise GitHubAPIError(
            message=f"Request failed after {self.max_retries} retries: {last_exception}",
            request_url=f"{self.base_url}{path}",
        )

    # -------------------------------------------------------------------------
    # Repository and files
    # -------------------------------------------------------------------------

    async def get_repository(self, owner: str, repo: str) -> RepositoryInfo:
        response = await self._request("GET", f"/repos/{owner}/{repo}")
        return RepositoryInfo.from_github_response(response.json())

    async def get_file(
        self,
        owner: str,
        repo: str,
        path: str,
        ref: Optional[str] = None,
    ) -> Optional[FileContent]:
        """Fetch a file's decoded content and blob sha.

        Returns:
            The file, or None if it does not exist at that ref.

        Raises:
            UnreadableFileError: If the file is binary, not UTF-8 or too
                large to be returned inline.
        """
        try:
            response = await self._request(
                "GET",
                f"/repos/{owner}/{repo}/contents/{quote(path)}",
                params={"ref": ref} if ref else None,
            )
        except GitHubAPIError as e:
            if e.is_not_found:
                return None
            raise

        data = response.json()
        if isinstance(data, list):
            # Directory listing rather than a file
            return None
        try:
            return FileContent.from_github_response(data)
        except ValueError as e:
            raise UnreadableFileError(
                message=f"Cannot read {path} as text: {e}",
                request_url=f"{self.base_url}/repos/{owner}/{repo}/contents/{path}",
            ) from e

    async def create_or_update_file(
        self,
        owner: str,
        repo: str,
        path: str,
        content: str,
        message: str,
        branch: str,
        sha: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Write a file on a branch.

        Passing the sha seen at read time makes GitHub reject the write
        with 409 if the file changed in between.
        """
        payload: Dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        if sha:
            payload["sha"] = sha

        logger.info(
            "Writing repository file",
            extra={
                "repository": f"{owner}/{repo}",
                "path": path,
                "branch": branch,
                "update": sha is not None,
            },
        )
        response = await self._request(
            "PUT",
            f"/repos/{owner}/{repo}/contents/{quote(path)}",
            json_data=payload,
        )
        return response.json()

    async def delete_file(
        self,
        owner: str,
        repo: str,
        path: str,
        message: str,
        sha: str,
        branch: str,
    ) -> None:
        logger.info(
            "Deleting repository file",
            extra={"repository": f"{owner}/{repo}", "path": path, "branch": branch},
        )
        await self._request(
            "DELETE",
            f"/repos/{owner}/{repo}/contents/{quote(path)}",
            json_data={"message": message, "sha": sha, "branch": branch},
        )

    # -------------------------------------------------------------------------
    # Branches and pull requests
    # -------------------------------------------------------------------------

    async def get_branch_sha(self, owner: str, repo: str, branch: str) -> str:
        response = await self._request(
            "GET",
            f"/repos/{owner}/{repo}/git/ref/heads/{quote(branch)}",
        )
        return response.json()["object"]["sha"]

    async def create_branch(
        self,
        owner: str,
        repo: str,
        branch: str,
        sha: str,
    ) -> bool:
        """Create a branch pointing at sha.

        Returns:
            True if the branch was created, False if it already existed.
        """
        try:
            await self._request(
                "POST",
                f"/repos/{owner}/{repo}/git/refs",
                json_data={"ref": f"refs/heads/{branch}", "sha": sha},
            )
        except GitHubAPIError as e:
            if e.status_code == 422:
                logger.info(
                    "Branch already exists, reusing it",
                    extra={"repository": f"{owner}/{repo}", "branch": branch},
                )
                return False
            raise

        logger.info(
            "Branch created",
            extra={"repository": f"{owner}/{repo}", "branch": branch},
        )
        return True

    async def create_pull_request(
        self,
        owner: str,
        repo: str,
        request: PullRequestRequest,
    ) -> PullRequestResult:
        """Open a pull request and apply its labels."""
        logger.info(
            "Creating pull request",
            extra={
                "repository": f"{owner}/{repo}",
                "head": request.head_branch,
                "base": request.base_branch,
            },
        )
        response = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/pulls",
            json_data={
                "title": request.title,
                "body": request.body,
                "head": request.head_branch,
                "base": request.base_branch,
            },
        )
        result = PullRequestResult.from_github_response(response.json())

        if request.labels:
            # Pull requests take labels through the issues API
            await self.add_labels(owner, repo, result.number, request.labels)

        logger.info(
            "Pull request created",
            extra={
                "repository": f"{owner}/{repo}",
                "pr_number": result.number,
                "pr_url": result.url,
            },
        )
        return result

    # -------------------------------------------------------------------------
    # Issues
    # -------------------------------------------------------------------------

    async def create_comment(
        self,
        owner: str,
        repo: str,
        issue_number: int,
        body: str,
    ) -> Dict[str, Any]:
        logger.info(
            "Creating comment on issue",
            extra={
                "repository": f"{owner}/{repo}",
                "issue_number": issue_number,
                "body_length": len(body),
            },
        )
        response = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/issues/{issue_number}/comments",
            json_data={"body": body},
        )
        return response.json()

    async def add_labels(
        self,
        owner: str,
        repo: str,
        issue_number: int,
        labels: List[str],
    ) -> List[Dict[str, Any]]:
        logger.info(
            "Adding labels to issue",
            extra={
                "repository": f"{owner}/{repo}",
                "issue_number": issue_number,
                "labels": labels,
            },
        )
        response = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/issues/{issue_number}/labels",
            json_data={"labels": labels},
        )
        return response.json()

    async def remove_label(
        self,
        owner: str,
        repo: str,
        issue_number: int,
        label: str,
    ) -> None:
        """Remove a label from an issue. A missing label is not an error."""
        path = (
            f"/repos/{owner}/{repo}/issues/{issue_number}/labels/"
            f"{quote(label, safe='')}"
        )
        try:
            await self._request("DELETE", path)
        except GitHubAPIError as e:
            if e.is_not_found:
                logger.debug(
                    "Label not found on issue (already removed)",
                    extra={
                        "repository": f"{owner}/{repo}",
                        "issue_number": issue_number,
                        "label": label,
                    },
                )
                return
            raise

    async def update_issue_state(
        self,
        owner: str,
        repo: str,
        issue_number: int,
        state: str,
        state_reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"state": state}
        if state_reason:
            payload["state_reason"] = state_reason

        logger.info(
            "Updating issue state",
            extra={
                "repository": f"{owner}/{repo}",
                "issue_number": issue_number,
                "state": state,
            },
        )
        response = await self._request(
            "PATCH",
            f"/repos/{owner}/{repo}/issues/{issue_number}",
            json_data=payload,
        )
        return response.json()

    async def get_issue(
        self,
        owner: str,
        repo: str,
        issue_number: int,
    ) -> Dict[str, Any]:
        response = await self._request(
            "GET",
            f"/repos/{owner}/{repo}/issues/{issue_number}",
        )
        return response.json()

    async def health_check(self) -> bool:
        """Check that the token is valid and the API is reachable."""
        try:
            response = await self.client.get("/rate_limit")
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning(
                "GitHub API health check failed",
                extra={"error": str(e)},
            )
            return False
