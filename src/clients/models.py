"""
Merge Request Service Data Models.

Defines the service entities consumed by the resolver and the materializer,
independent of the client library used to fetch them.
Uses Pydantic for validation and serialization.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class AuthorData(BaseModel):
    name: str = ""
    username: str = ""


class MergeRequestData(BaseModel):
    """Merge request as reported by the service.

    ``attributes`` keeps the raw payload so it can be persisted unchanged.
    """

    id: int
    iid: int
    project_id: int
    source_project_id: int
    target_project_id: int
    source_branch: str
    target_branch: str
    sha: str
    title: str = ""
    work_in_progress: bool = False
    merge_status: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    author: AuthorData = Field(default_factory=AuthorData)
    web_url: str = ""
    attributes: Dict[str, Any] = Field(default_factory=dict, exclude=True)

    @property
    def can_be_merged(self) -> bool:
        return self.merge_status == "can_be_merged"


class CommitData(BaseModel):
    """Commit as reported by the service."""

    id: str
    title: str = ""
    message: str = ""
    committed_date: Optional[datetime] = None


class NoteData(BaseModel):
    """Merge request comment."""

    id: int
    body: str = ""
    updated_at: Optional[datetime] = None


class ProjectData(BaseModel):
    """Project descriptor with its clone URLs."""

    id: int
    path_with_namespace: str = ""
    ssh_url_to_repo: str
    http_url_to_repo: str


@dataclass
class FetchResult(Generic[T]):
    """
    Outcome of a best-effort query.

    Distinguishes a successful answer from a failed query so callers can
    degrade explicitly instead of silently dropping errors.

    Attributes:
        value (Optional[T]): Answer of the query when it succeeded
        error (Optional[Exception]): Failure of the query, if any
    """

    value: Optional[T] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None
