"""
Merge Request Worktree Materialization Module.

Implements the ``in`` side of the resource: reproduces, from a version alone,
the target branch of a merge request with its source commit merged in but
not committed.

Steps:
1. Resolve the merge request and override its ``updated_at`` with the version
2. Provision SSH credentials when a private key is configured
3. Resolve clone URLs of the target and source projects
4. Clone the target branch, add the source remote, fetch, merge
5. Initialize submodules when enabled
6. Persist a snapshot of the merge request for later build steps

Every failure aborts the operation. A partially populated destination is
left in place; the orchestrator discards it and retries in a fresh one.
"""

import asyncio
import os
from pathlib import Path
from typing import Optional, Union
from urllib.parse import quote, urlsplit, urlunsplit

from clients.base import MergeRequestClient
from clients.models import CommitData, MergeRequestData
from config import logger
from errors import ResourceError
from materializers.credentials import CredentialWriter
from materializers.git import GitRunner
from protocol.models import InResponse, Metadata, MetadataField, Source, Version
from storage.snapshot_store import SnapshotStore

CI_TOKEN_USERNAME = "gitlab-ci-token"


def with_token(url: str, token: str) -> str:
    """Embed ``gitlab-ci-token:<token>`` as user-info of an HTTP(S) URL."""
    parts = urlsplit(url)
    if not parts.scheme or not parts.hostname:
        raise ValueError(f"not an absolute url: {url!r}")
    netloc = f"{CI_TOKEN_USERNAME}:{quote(token, safe='')}@{parts.hostname}"
    if parts.port:
        netloc += f":{parts.port}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def build_metadata(mr: MergeRequestData, commit: CommitData) -> Metadata:
    """Describe a merge request for display in the orchestrator, in display order."""
    return [
        MetadataField(name="id", value=str(mr.id)),
        MetadataField(name="iid", value=str(mr.iid)),
        MetadataField(name="sha", value=mr.sha),
        MetadataField(name="message", value=commit.title),
        MetadataField(name="title", value=mr.title),
        MetadataField(name="author", value=mr.author.name),
        MetadataField(name="source", value=mr.source_branch),
        MetadataField(name="target", value=mr.target_branch),
        MetadataField(name="url", value=mr.web_url),
    ]


class WorktreeMaterializer:
    """
    Builds the merged worktree of a merge request version.
    """

    def __init__(
        self,
        client: MergeRequestClient,
        git: Optional[GitRunner] = None,
        credentials: Optional[CredentialWriter] = None,
    ):
        """
        Initialize the materializer.

        Args:
            client (MergeRequestClient): Merge request service client.
            git (Optional[GitRunner]): Git driver.
            credentials (Optional[CredentialWriter]): Credential file writer,
                defaults to one rooted at the user's home directory.
        """
        self.client = client
        self.git = git or GitRunner()
        self.credentials = credentials or CredentialWriter()

    async def _repository_url(self, project_id: int, source: Source) -> str:
        """Clone URL of a project: SSH with a key, tokenized HTTPS otherwise."""
        project = await asyncio.to_thread(self.client.get_project, project_id)
        if source.uses_ssh:
            return project.ssh_url_to_repo
        try:
            return with_token(
                project.http_url_to_repo, source.private_token.get_secret_value()
            )
        except ValueError as e:
            raise ResourceError("parsing repository http url", e) from e

    async def materialize(
        self, source: Source, version: Version, destination: Union[str, Path]
    ) -> InResponse:
        """
        Materialize ``version`` into ``destination``.

        Args:
            source (Source): Resource configuration.
            version (Version): Version previously emitted by ``check``.
            destination (Union[str, Path]): Directory to clone into.

        Returns:
            InResponse: The unchanged version and the merge request metadata.

        Raises:
            ResourceError: If any step fails.
        """
        destination = Path(destination)
        logger.info(
            {
                "message": "Fetching merge request",
                "project": source.project_path,
                "iid": version.id,
                "destination": str(destination),
            }
        )

        mr = await asyncio.to_thread(
            self.client.get_merge_request, source.project_path, version.id
        )
        mr = mr.model_copy(update={"updated_at": version.updated_at})

        if source.uses_ssh:
            await asyncio.to_thread(
                self.credentials.write_ssh_key,
                source.private_key.get_secret_value(),
                source.server_domain,
            )

        target_url = await self._repository_url(mr.target_project_id, source)
        source_url = await self._repository_url(mr.source_project_id, source)

        commit = await asyncio.to_thread(
            self.client.get_commit, mr.source_project_id, mr.sha
        )

        # git steps depend on each other and run one after another
        await asyncio.to_thread(
            self.git.clone, target_url, mr.target_branch, destination, source.insecure
        )
        await asyncio.to_thread(self.git.add_remote, destination, "source", source_url)
        await asyncio.to_thread(self.git.update_remotes, destination)
        await asyncio.to_thread(self.git.merge_without_commit, destination, mr.sha)

        if source.submodules_enabled and os.path.isfile(destination / ".gitmodules"):
            await asyncio.to_thread(
                self.credentials.write_netrc, source.submodule_credentials
            )
            await asyncio.to_thread(self.git.update_submodules, destination)

        await asyncio.to_thread(
            SnapshotStore(destination).save_merge_request, mr, version.updated_at
        )

        logger.info(
            {
                "message": "Merge request materialized",
                "iid": mr.iid,
                "sha": mr.sha,
                "target_branch": mr.target_branch,
            }
        )
        return InResponse(version=version, metadata=build_metadata(mr, commit))
