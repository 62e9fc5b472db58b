"""
Merge Request Snapshot Storage Module.

Persists the resolved merge request inside the git metadata directory of a
materialized worktree, where later build steps can read it without calling
the merge request service again.
"""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

from clients.models import MergeRequestData
from config import logger
from errors import ResourceError

SNAPSHOT_FILE_NAME = "merge-request.json"


class SnapshotStore:
    """
    Writes the merge request snapshot of a worktree.
    """

    def __init__(self, worktree: Union[str, Path]):
        """Initialize the store.

        Args:
            worktree (Union[str, Path]): Root directory of the git checkout.
        """
        self.worktree = Path(worktree)

    @property
    def snapshot_path(self) -> Path:
        return self.worktree / ".git" / SNAPSHOT_FILE_NAME

    def save_merge_request(
        self, merge_request: MergeRequestData, updated_at: Optional[datetime]
    ) -> Path:
        """Store the merge request with its activity timestamp as ``updated_at``.

        The raw service payload is written when available so that no field
        is lost; otherwise the model itself is dumped.

        Args:
            merge_request (MergeRequestData): Merge request to persist.
            updated_at (Optional[datetime]): Timestamp of the version being fetched.

        Returns:
            Path: Location of the snapshot file.

        Raises:
            ResourceError: If the snapshot cannot be written.
        """
        data: Dict[str, Any] = dict(merge_request.attributes) or merge_request.model_dump(
            mode="json"
        )
        data["updated_at"] = updated_at.isoformat() if updated_at else None

        try:
            with open(self.snapshot_path, "w") as f:
                json.dump(data, f, default=str)
            os.chmod(self.snapshot_path, 0o644)
        except OSError as e:
            logger.error(
                {
                    "message": "Failed to store merge request snapshot",
                    "iid": merge_request.iid,
                    "error": str(e),
                }
            )
            raise ResourceError("writing merge request snapshot", e) from e

        logger.info(
            {
                "message": "Stored merge request snapshot",
                "iid": merge_request.iid,
                "file_path": str(self.snapshot_path),
            }
        )
        return self.snapshot_path
