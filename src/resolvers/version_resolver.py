"""
Merge Request Version Resolution Module.

Implements the ``check`` side of the resource: decides which opened merge
requests carry activity newer than the last emitted version.

The activity timestamp of a merge request is the latest of:
- the committed date of its head commit
- its creation date
- the update date of every comment containing ``[trigger ci]``
  (unless trigger comments are disabled)

The service's own ``updated_at`` only orders the listing; it never decides
eligibility. Commit and comment lookups run concurrently per candidate, the
eligibility decisions are then taken one candidate at a time in listing
order.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional

from clients.base import MergeRequestClient
from clients.models import CommitData, FetchResult, MergeRequestData, NoteData
from config import Settings, logger, settings
from errors import MergeRequestServiceError
from protocol.models import Source, Version

TRIGGER_MARKER = "[trigger ci]"
SKIP_MARKER = "[skip ci]"
PENDING_STATE = "pending"


class ExclusionReason(Enum):
    """
    Why a candidate merge request is not emitted.

    Attributes:
        COMMIT_UNAVAILABLE: Head commit could not be fetched
        SKIP_MARKER: Head commit asks not to be built
        NOT_MERGEABLE: Merge request cannot be merged
        WORK_IN_PROGRESS: Merge request is a draft
        NOT_NEWER: Activity is not after the previous version
    """

    COMMIT_UNAVAILABLE = "commit_unavailable"
    SKIP_MARKER = "skip_marker"
    NOT_MERGEABLE = "not_mergeable"
    WORK_IN_PROGRESS = "work_in_progress"
    NOT_NEWER = "not_newer"


@dataclass
class Candidate:
    """A listed merge request with the data fetched to evaluate it."""

    merge_request: MergeRequestData
    commit: FetchResult[CommitData]
    notes: FetchResult[List[NoteData]]


@dataclass
class Evaluation:
    candidate: Candidate
    activity: Optional[datetime] = None
    exclusion: Optional[ExclusionReason] = None

    @property
    def eligible(self) -> bool:
        return self.exclusion is None


def latest(*timestamps: Optional[datetime]) -> Optional[datetime]:
    """Return the most recent of the given timestamps, ignoring missing ones."""
    present = [ts for ts in timestamps if ts is not None]
    return max(present) if present else None


def trigger_timestamps(notes: Optional[List[NoteData]]) -> List[Optional[datetime]]:
    return [note.updated_at for note in notes or [] if TRIGGER_MARKER in note.body]


def has_skip_marker(commit: CommitData) -> bool:
    return SKIP_MARKER in commit.title or SKIP_MARKER in commit.message


def evaluate(
    candidate: Candidate, source: Source, previous: Optional[Version]
) -> Evaluation:
    """
    Decide whether a candidate is emitted, from its own data only.

    Args:
        candidate (Candidate): Merge request with its fetched commit and notes.
        source (Source): Resource configuration holding the filter toggles.
        previous (Optional[Version]): Last version emitted by the orchestrator.

    Returns:
        Evaluation: Activity timestamp and exclusion reason, if any.
    """
    mr = candidate.merge_request
    if not candidate.commit.ok or candidate.commit.value is None:
        return Evaluation(candidate, exclusion=ExclusionReason.COMMIT_UNAVAILABLE)

    commit = candidate.commit.value
    activity = latest(commit.committed_date, mr.created_at)
    if has_skip_marker(commit):
        return Evaluation(candidate, activity, ExclusionReason.SKIP_MARKER)

    if not source.skip_trigger_comment:
        # a failed note listing contributes nothing
        activity = latest(activity, *trigger_timestamps(candidate.notes.value))

    if source.skip_not_mergeable and not mr.can_be_merged:
        return Evaluation(candidate, activity, ExclusionReason.NOT_MERGEABLE)

    if source.skip_work_in_progress and mr.work_in_progress:
        return Evaluation(candidate, activity, ExclusionReason.WORK_IN_PROGRESS)

    if not Version(id=mr.iid, updated_at=activity).is_after(previous):
        return Evaluation(candidate, activity, ExclusionReason.NOT_NEWER)

    return Evaluation(candidate, activity)


class VersionResolver:
    """
    Resolves the new versions of a merge request resource.

    Emitting a version marks the head commit of the merge request with a
    pending build status pointing at the running build.
    """

    def __init__(
        self,
        client: MergeRequestClient,
        context: Optional[Settings] = None,
    ):
        """
        Initialize the resolver.

        Args:
            client (MergeRequestClient): Merge request service client.
            context (Optional[Settings]): Execution context, defaults to the
                process settings.
        """
        self.client = client
        self.context = context or settings
        self._semaphore = asyncio.Semaphore(self.context.max_concurrent_requests)

    async def _fetch_commit(self, mr: MergeRequestData) -> FetchResult[CommitData]:
        try:
            async with self._semaphore:
                commit = await asyncio.to_thread(
                    self.client.get_commit, mr.project_id, mr.sha
                )
            return FetchResult(value=commit)
        except MergeRequestServiceError as e:
            logger.warning(
                {
                    "message": "Skipping merge request, commit unavailable",
                    "iid": mr.iid,
                    "sha": mr.sha,
                    "error": str(e),
                }
            )
            return FetchResult(error=e)

    async def _fetch_notes(self, mr: MergeRequestData) -> FetchResult[List[NoteData]]:
        try:
            async with self._semaphore:
                notes = await asyncio.to_thread(
                    self.client.list_merge_request_notes, mr.project_id, mr.iid
                )
            return FetchResult(value=notes)
        except MergeRequestServiceError as e:
            logger.warning(
                {
                    "message": "Ignoring comments, listing failed",
                    "iid": mr.iid,
                    "error": str(e),
                }
            )
            return FetchResult(error=e)

    async def _fetch_candidate(self, mr: MergeRequestData, source: Source) -> Candidate:
        """Fetch the head commit, then the comments when they can matter."""
        commit = await self._fetch_commit(mr)
        notes: FetchResult[List[NoteData]] = FetchResult()
        if (
            commit.ok
            and not has_skip_marker(commit.value)
            and not source.skip_trigger_comment
        ):
            notes = await self._fetch_notes(mr)
        return Candidate(merge_request=mr, commit=commit, notes=notes)

    async def _mark_pending(self, mr: MergeRequestData, source: Source) -> FetchResult[None]:
        """Set a pending build status on the head commit of the source project.

        Failing to do so never prevents the version from being emitted.
        """
        try:
            await asyncio.to_thread(
                self.client.set_commit_status,
                mr.source_project_id,
                mr.sha,
                PENDING_STATE,
                source.get_pipeline_name(self.context),
                source.get_target_url(self.context),
            )
            return FetchResult()
        except MergeRequestServiceError as e:
            logger.warning(
                {
                    "message": "Could not set pending status",
                    "iid": mr.iid,
                    "sha": mr.sha,
                    "error": str(e),
                }
            )
            return FetchResult(error=e)

    async def resolve(
        self, source: Source, previous: Optional[Version] = None
    ) -> List[Version]:
        """
        Compute the versions newer than ``previous``.

        Args:
            source (Source): Resource configuration.
            previous (Optional[Version]): Last emitted version, if any.

        Returns:
            List[Version]: New versions in listing order (least recently
            updated first according to the service).

        Raises:
            MergeRequestServiceError: If the merge requests cannot be listed.
        """
        logger.info(
            {
                "message": "Checking merge requests",
                "project": source.project_path,
                "previous": previous.model_dump(mode="json") if previous else None,
            }
        )

        merge_requests = await asyncio.to_thread(
            self.client.list_open_merge_requests,
            source.project_path,
            source.labels,
            source.target_branch or None,
        )

        candidates = await asyncio.gather(
            *(self._fetch_candidate(mr, source) for mr in merge_requests)
        )

        versions: List[Version] = []
        status_failures = 0
        for candidate in candidates:
            evaluation = evaluate(candidate, source, previous)
            mr = candidate.merge_request
            if not evaluation.eligible:
                logger.debug(
                    {
                        "message": "Merge request excluded",
                        "iid": mr.iid,
                        "reason": evaluation.exclusion.value,
                    }
                )
                continue

            status = await self._mark_pending(mr, source)
            if not status.ok:
                status_failures += 1
            versions.append(Version(id=mr.iid, updated_at=evaluation.activity))

        logger.info(
            {
                "message": "Check finished",
                "candidates": len(merge_requests),
                "emitted": len(versions),
                "status_failures": status_failures,
            }
        )
        return versions
