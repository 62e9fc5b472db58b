"""
Resource Error Types.

Every failure that must abort an invocation is raised as a ``ResourceError``.
The string form pairs a short description of the failing step with the
underlying error, which is what the entry points report on stderr.
"""

import re
from typing import Optional, Sequence

_URL_PASSWORD = re.compile(r"(://[^/:@\s]+):[^/@\s]+@")


def redact(text: str) -> str:
    """Mask the password part of any URL user-info found in ``text``."""
    return _URL_PASSWORD.sub(r"\1:***@", text)


class ResourceError(Exception):
    """Fatal error raised while serving a resource request."""

    def __init__(self, step: str, cause: Optional[BaseException] = None):
        self.step = step
        self.cause = cause
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.cause is None:
            return self.step
        return f"{self.step}: {self.cause}"


class MergeRequestServiceError(ResourceError):
    """A call to the merge request service failed."""


class GitCommandError(ResourceError):
    """A git subprocess exited with a non-zero status."""

    def __init__(self, args: Sequence[str], returncode: int):
        self.command = list(args)
        self.returncode = returncode
        super().__init__(
            redact(f"executing git {' '.join(self.command)}"),
            RuntimeError(f"exit status {returncode}"),
        )
