"""
Git Command Runner.

Drives the ``git`` command line tool. Git output is forwarded to stderr so
that stdout stays reserved for the resource response. Any non-zero exit
status raises ``GitCommandError``.
"""

import os
import subprocess
import sys
from pathlib import Path
from typing import Optional, Union

from config import logger
from errors import GitCommandError, ResourceError, redact

PathLike = Union[str, Path]


class GitRunner:
    """Thin wrapper running git subcommands in a working directory."""

    def __init__(self, executable: str = "git"):
        self.executable = executable

    def run(self, *args: str, cwd: Optional[PathLike] = None) -> None:
        """
        Run ``git <args>`` and wait for it to finish.

        Raises:
            GitCommandError: If git exits with a non-zero status.
            ResourceError: If git cannot be started.
        """
        command = [self.executable, *args]
        logger.debug({"message": "Running git", "command": redact(" ".join(command))})

        env = dict(os.environ, GIT_TERMINAL_PROMPT="0")
        try:
            completed = subprocess.run(
                command,
                cwd=cwd,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=sys.stderr,
                stderr=sys.stderr,
                check=False,
            )
        except OSError as e:
            raise ResourceError(redact(f"executing {' '.join(command)}"), e) from e

        if completed.returncode != 0:
            raise GitCommandError(args, completed.returncode)

    def clone(self, url: str, branch: str, destination: PathLike, insecure: bool = False) -> None:
        self.run(
            "clone",
            "-c",
            f"http.sslVerify={str(not insecure).lower()}",
            "-o",
            "target",
            "-b",
            branch,
            url,
            str(destination),
        )

    def add_remote(self, cwd: PathLike, name: str, url: str) -> None:
        self.run("remote", "add", name, url, cwd=cwd)

    def update_remotes(self, cwd: PathLike) -> None:
        self.run("remote", "update", cwd=cwd)

    def merge_without_commit(self, cwd: PathLike, ref: str) -> None:
        self.run("merge", "--no-ff", "--no-commit", ref, cwd=cwd)

    def update_submodules(self, cwd: PathLike) -> None:
        self.run("submodule", "update", "--quiet", "--init", "--recursive", cwd=cwd)
