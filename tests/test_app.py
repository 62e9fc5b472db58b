"""
Entry Point Test Suite.

Runs ``check`` and ``in`` end to end over stdin/stdout with a mocked merge
request service.
"""

import io
import json
from datetime import datetime, timezone
from unittest.mock import Mock, patch

import pytest

import app
from clients.base import MergeRequestClient
from clients.models import CommitData, MergeRequestData
from errors import GitCommandError, MergeRequestServiceError

CHECK_REQUEST = {
    "source": {
        "uri": "https://gitlab.example.com/group/project.git",
        "private_token": "s3cret",
    },
    "version": None,
}


@pytest.fixture
def client():
    client = Mock(spec=MergeRequestClient)
    client.list_open_merge_requests.return_value = [
        MergeRequestData(
            id=107,
            iid=7,
            project_id=10,
            source_project_id=10,
            target_project_id=10,
            source_branch="feature",
            target_branch="main",
            sha="abc",
            created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
    ]
    client.get_commit.return_value = CommitData(
        id="abc", title="Change", committed_date=datetime(2024, 1, 2, tzinfo=timezone.utc)
    )
    client.list_merge_request_notes.return_value = []
    return client


def run_with_stdin(monkeypatch, payload, entry_point, *args):
    monkeypatch.setattr("sys.stdin", io.StringIO(json.dumps(payload)))
    entry_point(*args)


def test_check_main_prints_versions(monkeypatch, capsys, client):
    with patch("app.create_client", return_value=client):
        run_with_stdin(monkeypatch, CHECK_REQUEST, app.check_main)

    versions = json.loads(capsys.readouterr().out)
    assert len(versions) == 1
    assert versions[0]["id"] == "7"
    assert datetime.fromisoformat(versions[0]["updated_at"].replace("Z", "+00:00")) == datetime(
        2024, 1, 2, tzinfo=timezone.utc
    )


def test_check_main_prints_empty_list(monkeypatch, capsys, client):
    client.list_open_merge_requests.return_value = []
    with patch("app.create_client", return_value=client):
        run_with_stdin(monkeypatch, CHECK_REQUEST, app.check_main)

    assert json.loads(capsys.readouterr().out) == []


def test_check_main_listing_failure_exits(monkeypatch, capsys, client):
    client.list_open_merge_requests.side_effect = MergeRequestServiceError(
        "retrieving opened merge requests", RuntimeError("401 Unauthorized")
    )
    with patch("app.create_client", return_value=client):
        with pytest.raises(SystemExit) as exc_info:
            run_with_stdin(monkeypatch, CHECK_REQUEST, app.check_main)

    assert exc_info.value.code == 1
    assert capsys.readouterr().out == ""


def test_check_main_malformed_request_exits(monkeypatch, capsys):
    monkeypatch.setattr("sys.stdin", io.StringIO('{"source": {"uri": "not a repository"}}'))

    with pytest.raises(SystemExit) as exc_info:
        app.check_main()

    assert exc_info.value.code == 1
    assert capsys.readouterr().out == ""


def test_check_main_cursor_without_timezone_exits(monkeypatch, capsys, client):
    payload = {
        "source": CHECK_REQUEST["source"],
        "version": {"id": "7", "updated_at": "2024-01-01T00:00:00"},
    }
    with patch("app.create_client", return_value=client):
        with pytest.raises(SystemExit) as exc_info:
            run_with_stdin(monkeypatch, payload, app.check_main)

    assert exc_info.value.code == 1
    assert capsys.readouterr().out == ""
    client.list_open_merge_requests.assert_not_called()


def test_check_main_missing_private_token_exits(monkeypatch, capsys):
    payload = {"source": {"uri": "https://gitlab.example.com/group/project.git"}}

    with pytest.raises(SystemExit) as exc_info:
        run_with_stdin(monkeypatch, payload, app.check_main)

    assert exc_info.value.code == 1
    assert capsys.readouterr().out == ""


def test_in_main_requires_destination(capsys):
    with pytest.raises(SystemExit) as exc_info:
        app.in_main(["in"])

    assert exc_info.value.code == 1
    assert "usage: in <destination>" in capsys.readouterr().err


def test_in_main_git_failure_exits(monkeypatch, capsys, tmp_path):
    payload = {
        "source": CHECK_REQUEST["source"],
        "version": {"id": "7", "updated_at": "2024-01-02T00:00:00Z"},
    }
    materializer = Mock()
    materializer.return_value.materialize.side_effect = GitCommandError(["clone"], 128)

    with patch("app.create_client", return_value=Mock(spec=MergeRequestClient)):
        with patch("app.WorktreeMaterializer", materializer):
            with pytest.raises(SystemExit) as exc_info:
                run_with_stdin(monkeypatch, payload, app.in_main, ["in", str(tmp_path / "dest")])

    assert exc_info.value.code == 1
    assert capsys.readouterr().out == ""


def test_create_client_uses_source():
    source = app.Source(
        uri="https://gitlab.example.com/group/project.git", private_token="t", insecure=True
    )
    with patch("app.GitLabClient") as client_class:
        app.create_client(source)

    client_class.assert_called_once_with("https://gitlab.example.com", "t", insecure=True)
