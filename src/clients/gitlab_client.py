"""
GitLab Merge Request Service Client.

Wraps python-gitlab behind the ``MergeRequestClient`` interface and
transforms the library's REST objects into Pydantic models.
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import gitlab
from gitlab.exceptions import GitlabError
from gitlab.v4.objects import Project
from pydantic import ValidationError
from requests.exceptions import RequestException

from clients.base import MergeRequestClient, ProjectRef
from clients.models import CommitData, MergeRequestData, NoteData, ProjectData
from config import logger
from errors import MergeRequestServiceError


@contextmanager
def _service_errors(step: str, **context: Any) -> Iterator[None]:
    """Translate client library and transport failures into a resource error."""
    try:
        yield
    except (GitlabError, RequestException, ValidationError) as e:
        logger.debug({"message": f"GitLab call failed: {step}", "error": str(e), **context})
        raise MergeRequestServiceError(step, e) from e


class GitLabClient(MergeRequestClient):
    """
    GitLabClient talks to the GitLab v4 API through python-gitlab.
    Every call is attempted once; failures surface as
    ``MergeRequestServiceError``.
    """

    def __init__(self, base_url: str, private_token: str, insecure: bool = False):
        """Initialize the client.

        Args:
            base_url (str): GitLab root URL, without the ``/api/v4`` suffix.
            private_token (str): API token.
            insecure (bool): Disable TLS certificate verification.
        """
        self.gitlab = gitlab.Gitlab(
            url=base_url,
            private_token=private_token or None,
            ssl_verify=not insecure,
        )

    def _project(self, project: ProjectRef) -> Project:
        return self.gitlab.projects.get(project, lazy=True)

    def _get_merge_request_data(self, attributes: Dict[str, Any]) -> MergeRequestData:
        """Convert a merge request payload to a Pydantic model.

        Newer GitLab versions report ``draft`` and ``detailed_merge_status``
        next to the deprecated ``work_in_progress`` and ``merge_status``.
        """
        data = dict(attributes)
        if "work_in_progress" not in data:
            data["work_in_progress"] = data.get("draft", False)
        if not data.get("merge_status") and data.get("detailed_merge_status") == "mergeable":
            data["merge_status"] = "can_be_merged"
        data["author"] = data.get("author") or {}
        return MergeRequestData.model_validate({**data, "attributes": attributes})

    def list_open_merge_requests(
        self,
        project: ProjectRef,
        labels: Optional[List[str]] = None,
        target_branch: Optional[str] = None,
    ) -> List[MergeRequestData]:
        options: Dict[str, Any] = {
            "state": "opened",
            "order_by": "updated_at",
            "sort": "asc",
        }
        if labels:
            options["labels"] = labels
        if target_branch:
            options["target_branch"] = target_branch

        with _service_errors("retrieving opened merge requests", project=project):
            merge_requests = self._project(project).mergerequests.list(
                get_all=True, **options
            )
            return [self._get_merge_request_data(mr.attributes) for mr in merge_requests]

    def get_merge_request(self, project: ProjectRef, iid: int) -> MergeRequestData:
        with _service_errors("getting merge request", project=project, iid=iid):
            mr = self._project(project).mergerequests.get(iid)
            return self._get_merge_request_data(mr.attributes)

    def get_commit(self, project: ProjectRef, sha: str) -> CommitData:
        with _service_errors("getting commit", project=project, sha=sha):
            commit = self._project(project).commits.get(sha)
            return CommitData.model_validate(commit.attributes)

    def list_merge_request_notes(self, project: ProjectRef, iid: int) -> List[NoteData]:
        with _service_errors("listing merge request notes", project=project, iid=iid):
            mr = self._project(project).mergerequests.get(iid, lazy=True)
            return [
                NoteData.model_validate(note.attributes)
                for note in mr.notes.list(get_all=True)
            ]

    def set_commit_status(
        self,
        project: ProjectRef,
        sha: str,
        state: str,
        name: str,
        target_url: str,
    ) -> None:
        status = {"state": state, "target_url": target_url}
        if name:
            status["name"] = name

        with _service_errors("setting commit status", project=project, sha=sha):
            commit = self._project(project).commits.get(sha, lazy=True)
            commit.statuses.create(status)

    def get_project(self, project: ProjectRef) -> ProjectData:
        with _service_errors("reading project from api", project=project):
            return ProjectData.model_validate(
                self.gitlab.projects.get(project).attributes
            )
