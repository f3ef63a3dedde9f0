"""GitHub API request and response models."""

import base64
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class RepositoryInfo(BaseModel):
    """Repository metadata used for prompts and branch resolution."""

    full_name: str
    name: str
    description: Optional[str] = None
    language: Optional[str] = None
    default_branch: str = "main"

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "RepositoryInfo":
        return cls(
            full_name=data["full_name"],
            name=data["name"],
            description=data.get("description"),
            language=data.get("language"),
            default_branch=data.get("default_branch") or "main",
        )


class FileContent(BaseModel):
    """Decoded content of a repository file at a given revision."""

    path: str
    sha: str = Field(..., description="Blob sha used for optimistic updates")
    content: str

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "FileContent":
        """Decode a contents API response.

        Raises:
            ValueError: If the content is not inline base64 (files over
                1 MB come back with encoding "none") or is not UTF-8 text.
        """
        encoding = data.get("encoding", "base64")
        if encoding != "base64":
            raise ValueError(f"content not inline (encoding {encoding!r})")
        text = base64.b64decode(data.get("content") or "").decode("utf-8")
        return cls(path=data["path"], sha=data["sha"], content=text)


class PullRequestRequest(BaseModel):
    """Parameters for opening a pull request."""

    title: str = Field(..., min_length=1)
    body: str = ""
    head_branch: str = Field(..., min_length=1)
    base_branch: str = Field(..., min_length=1)
    labels: List[str] = Field(default_factory=list)


class PullRequestResult(BaseModel):
    number: int = Field(..., gt=0)
    url: str

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "PullRequestResult":
        return cls(number=data["number"], url=data["html_url"])
