"""
Transport Credential Provisioning.

Writes the SSH key and client configuration used for SSH git transport and
the ``.netrc`` file used to fetch submodules over HTTPS. Files live in the
home directory of the invoking user and are readable by that user only.
"""

import os
from pathlib import Path
from typing import List, Optional

from config import logger
from errors import ResourceError
from protocol.models import SubmoduleCredential

SSH_CONFIG_TEMPLATE = """
StrictHostKeyChecking no
LogLevel quiet

Host {host}
    IdentityFile {identity_file}
"""


def _write_private_file(path: Path, content: str) -> None:
    """Write ``content`` to ``path`` with 0600 permissions."""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w") as f:
        f.write(content)
    # an already existing file keeps its mode on open
    os.chmod(path, 0o600)


class CredentialWriter:
    """Provision credential files under a home directory."""

    def __init__(self, home: Optional[str] = None):
        self.home = Path(home) if home else Path.home()

    @property
    def ssh_dir(self) -> Path:
        return self.home / ".ssh"

    @property
    def netrc_path(self) -> Path:
        return self.home / ".netrc"

    def write_ssh_key(self, private_key: str, host: str) -> Path:
        """
        Install a private key and an SSH client configuration for ``host``.

        Args:
            private_key (str): PEM/OpenSSH encoded private key.
            host (str): Host name the key is used for.

        Returns:
            Path: Location of the private key file.

        Raises:
            ResourceError: If a file cannot be written.
        """
        key_path = self.ssh_dir / "privkey"
        config_path = self.ssh_dir / "config"
        try:
            self.ssh_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
            if not private_key.endswith("\n"):
                private_key += "\n"
            _write_private_file(key_path, private_key)
            _write_private_file(
                config_path,
                SSH_CONFIG_TEMPLATE.format(host=host, identity_file=key_path),
            )
        except OSError as e:
            raise ResourceError("setting up ssh private key", e) from e

        logger.info({"message": "SSH key installed", "host": host, "path": str(key_path)})
        return key_path

    def write_netrc(self, credentials: List[SubmoduleCredential]) -> Path:
        """
        Write one ``machine``/``login``/``password`` line per credential.

        Raises:
            ResourceError: If the file cannot be written.
        """
        lines = "".join(
            f"machine {cred.host} login {cred.username} "
            f"password {cred.password.get_secret_value()}\n"
            for cred in credentials
        )
        try:
            _write_private_file(self.netrc_path, lines)
        except OSError as e:
            raise ResourceError("creating .netrc", e) from e

        logger.info(
            {
                "message": "Submodule credentials written",
                "hosts": [cred.host for cred in credentials],
            }
        )
        return self.netrc_path
