"""
Snapshot Storage and Credential Provisioning Tests.
"""

import json
import os
import stat
from datetime import datetime, timezone

import pytest

from clients.models import MergeRequestData
from errors import ResourceError
from materializers.credentials import CredentialWriter
from protocol.models import SubmoduleCredential
from storage.snapshot_store import SnapshotStore


@pytest.fixture
def merge_request():
    return MergeRequestData(
        id=1,
        iid=2,
        project_id=3,
        source_project_id=3,
        target_project_id=3,
        source_branch="feature",
        target_branch="main",
        sha="abc",
    )


def test_snapshot_without_raw_payload_dumps_model(tmp_path, merge_request):
    (tmp_path / ".git").mkdir()

    path = SnapshotStore(tmp_path).save_merge_request(merge_request, None)

    snapshot = json.loads(path.read_text())
    assert snapshot["iid"] == 2
    assert snapshot["updated_at"] is None
    assert "attributes" not in snapshot
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o644


def test_snapshot_missing_git_directory_is_fatal(tmp_path, merge_request):
    store = SnapshotStore(tmp_path / "missing")

    with pytest.raises(ResourceError, match="writing merge request snapshot"):
        store.save_merge_request(merge_request, datetime.now(timezone.utc))


def test_ssh_key_files(tmp_path):
    writer = CredentialWriter(str(tmp_path))

    key_path = writer.write_ssh_key("KEY", "gitlab.example.com")

    assert key_path.read_text() == "KEY\n"
    assert stat.S_IMODE(os.stat(tmp_path / ".ssh").st_mode) == 0o700
    assert stat.S_IMODE(os.stat(tmp_path / ".ssh" / "config").st_mode) == 0o600
    assert "LogLevel quiet" in (tmp_path / ".ssh" / "config").read_text()


def test_ssh_key_rewrite_keeps_private_mode(tmp_path):
    writer = CredentialWriter(str(tmp_path))
    (tmp_path / ".ssh").mkdir()
    (tmp_path / ".ssh" / "privkey").write_text("old")
    os.chmod(tmp_path / ".ssh" / "privkey", 0o644)

    writer.write_ssh_key("NEW\n", "gitlab.example.com")

    assert stat.S_IMODE(os.stat(tmp_path / ".ssh" / "privkey").st_mode) == 0o600
    assert (tmp_path / ".ssh" / "privkey").read_text() == "NEW\n"


def test_netrc_lines(tmp_path):
    writer = CredentialWriter(str(tmp_path))

    path = writer.write_netrc(
        [SubmoduleCredential(host="h1", username="u1", password="p1")]
    )

    assert path == tmp_path / ".netrc"
    assert path.read_text() == "machine h1 login u1 password p1\n"
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600


def test_netrc_unwritable_home_is_fatal(tmp_path):
    writer = CredentialWriter(str(tmp_path / "does-not-exist"))

    with pytest.raises(ResourceError, match="creating .netrc"):
        writer.write_netrc([])


def test_snapshot_is_json(tmp_path, merge_request):
    (tmp_path / ".git").mkdir()

    path = SnapshotStore(tmp_path).save_merge_request(
        merge_request, datetime(2024, 5, 1, tzinfo=timezone.utc)
    )

    assert json.loads(path.read_text())["updated_at"] == "2024-05-01T00:00:00+00:00"
