"""
Abstract Base Class for Merge Request Service Clients.

Defines the interface the resolver and materializer use to talk to the
merge request service. Implementations wrap a concrete client library and
raise ``MergeRequestServiceError`` for every failed call.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Union

from clients.models import CommitData, MergeRequestData, NoteData, ProjectData

ProjectRef = Union[int, str]


class MergeRequestClient(ABC):
    """
    Abstract base class for merge request service clients.

    Projects are referenced either by numeric id or by path with namespace.
    """

    @abstractmethod
    def list_open_merge_requests(
        self,
        project: ProjectRef,
        labels: Optional[List[str]] = None,
        target_branch: Optional[str] = None,
    ) -> List[MergeRequestData]:
        """
        List opened merge requests, least recently updated first.

        Args:
            project (ProjectRef): Project the merge requests target
            labels (Optional[List[str]]): Labels every merge request must carry
            target_branch (Optional[str]): Restrict to this target branch

        Returns:
            List[MergeRequestData]: Every matching merge request, all pages

        Raises:
            MergeRequestServiceError: If the listing fails
        """
        pass

    @abstractmethod
    def get_merge_request(self, project: ProjectRef, iid: int) -> MergeRequestData:
        """Fetch a single merge request by its project scoped iid."""
        pass

    @abstractmethod
    def get_commit(self, project: ProjectRef, sha: str) -> CommitData:
        """Fetch a commit of ``project``."""
        pass

    @abstractmethod
    def list_merge_request_notes(self, project: ProjectRef, iid: int) -> List[NoteData]:
        """List every comment of a merge request."""
        pass

    @abstractmethod
    def set_commit_status(
        self,
        project: ProjectRef,
        sha: str,
        state: str,
        name: str,
        target_url: str,
    ) -> None:
        """Attach a build status to a commit."""
        pass

    @abstractmethod
    def get_project(self, project: ProjectRef) -> ProjectData:
        """Fetch a project descriptor."""
        pass
