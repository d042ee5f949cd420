"""Tests for atomic batch commits."""

import base64
import json

import httpx
import pytest

from giteaflow.core.config import CommitIdentityConfig
from giteaflow.core.errors import InvalidArgument, UpstreamError
from giteaflow.core.types import ChangeFileOperation
from giteaflow.tools.batch import BatchCommitter, extract_commit_sha


def encoded(text: str) -> str:
    return base64.b64encode(text.encode()).decode()


@pytest.fixture
def operations():
    return [
        ChangeFileOperation(operation="create", path="docs/new.md", content=encoded("# New")),
        ChangeFileOperation(operation="update", path="README.md", content=encoded("hi"), sha="abc123"),
        ChangeFileOperation(operation="delete", path="old.txt", sha="def456"),
    ]


def submitted_body(fake_gitea):
    return json.loads(fake_gitea.calls("POST", "contents")[0].content)


class TestValidation:
    """Tests for rejecting batches before any request."""

    def test_empty_list(self, client, fake_gitea):
        """Test an empty operation list is rejected before any request."""
        with pytest.raises(InvalidArgument):
            BatchCommitter(client).apply_batch([], "main", "msg")
        assert fake_gitea.requests == []

    def test_empty_path(self, client, fake_gitea):
        """Test an operation with an empty path is rejected before any request."""
        ops = [
            ChangeFileOperation(operation="create", path="ok.txt", content=encoded("x")),
            ChangeFileOperation(operation="delete", path=""),
        ]
        with pytest.raises(InvalidArgument) as exc_info:
            BatchCommitter(client).apply_batch(ops, "main", "msg")
        assert exc_info.value.kind == "INVALID_ARGUMENT"
        assert fake_gitea.requests == []

    def test_empty_branch(self, client, fake_gitea, operations):
        """Test an empty target branch is rejected before any request."""
        with pytest.raises(InvalidArgument, match="branch"):
            BatchCommitter(client).apply_batch(operations, "", "msg")
        assert fake_gitea.requests == []

    def test_empty_base_branch(self, client, fake_gitea, operations):
        """Test creating a branch from an empty base branch is rejected."""
        with pytest.raises(InvalidArgument, match="base branch"):
            BatchCommitter(client).apply_batch_with_new_branch(operations, "", "feat", "msg")
        assert fake_gitea.requests == []

    def test_empty_new_branch(self, client, fake_gitea, operations):
        """Test an empty new branch name is rejected."""
        with pytest.raises(InvalidArgument):
            BatchCommitter(client).apply_batch_with_new_branch(operations, "main", "", "msg")
        assert fake_gitea.requests == []


class TestApplyBatch:
    """Tests for submitting a batch to an existing branch."""

    def test_single_request_preserves_order(self, client, fake_gitea, operations):
        """Test the batch goes out as one request with operations in order."""
        BatchCommitter(client).apply_batch(operations, "main", "Sync files")

        assert len(fake_gitea.requests) == 1
        body = submitted_body(fake_gitea)
        assert body["branch"] == "main"
        assert body["message"] == "Sync files"
        assert "new_branch" not in body
        assert [(f["operation"], f["path"]) for f in body["files"]] == [
            ("create", "docs/new.md"),
            ("update", "README.md"),
            ("delete", "old.txt"),
        ]
        assert body["files"][1]["sha"] == "abc123"
        assert "content" not in body["files"][2]

    def test_default_identity(self, client, fake_gitea, operations):
        """Test the default bot identity is used as author and committer."""
        BatchCommitter(client).apply_batch(operations, "main", "msg")

        body = submitted_body(fake_gitea)
        assert body["author"] == {"name": "GitOps Bot", "email": "gitops@apkholding.ru"}
        assert body["committer"] == body["author"]

    def test_configured_identity(self, client, fake_gitea, operations):
        """Test a configured identity replaces the default."""
        identity = CommitIdentityConfig(name="Release Bot", email="release@example.com")
        BatchCommitter(client, identity).apply_batch(operations, "main", "msg")

        assert submitted_body(fake_gitea)["author"]["name"] == "Release Bot"

    @pytest.mark.parametrize("status", [200, 201])
    def test_accepted_statuses(self, client, fake_gitea, operations, status):
        """Test both 200 and 201 count as success."""
        fake_gitea.route("POST", "contents", httpx.Response(status, json={}))
        BatchCommitter(client).apply_batch(operations, "main", "msg")

    def test_rejected_status(self, client, fake_gitea, operations):
        """Test any other status raises UpstreamError with the status code."""
        fake_gitea.route("POST", "contents", httpx.Response(422, json={"message": "sha mismatch"}))

        with pytest.raises(UpstreamError) as exc_info:
            BatchCommitter(client).apply_batch(operations, "main", "msg")
        assert exc_info.value.status_code == 422


class TestApplyBatchWithNewBranch:
    """Tests for creating a branch with a batch as its first commit."""

    def test_returns_commit_sha(self, client, fake_gitea, operations):
        """Test the new commit SHA is read from the response."""
        fake_gitea.route("POST", "contents",
                         httpx.Response(201, json={"commit": {"sha": "0123abcd"}}))

        result = BatchCommitter(client).apply_batch_with_new_branch(
            operations, "main", "feature/sync", "Sync files"
        )

        assert result.commit_sha == "0123abcd"
        assert not result.has_warning
        body = submitted_body(fake_gitea)
        assert body["branch"] == "main"
        assert body["new_branch"] == "feature/sync"

    def test_unreadable_sha_is_warning(self, client, fake_gitea, operations):
        """Test an unparseable response yields an empty SHA and a warning."""
        fake_gitea.route("POST", "contents", httpx.Response(201, text="<html>ok</html>"))

        result = BatchCommitter(client).apply_batch_with_new_branch(
            operations, "main", "feature/sync", "msg"
        )

        assert result.commit_sha == ""
        assert result.has_warning
        assert "feature/sync" in result.warning

    def test_rejected_status(self, client, fake_gitea, operations):
        """Test any other status raises UpstreamError with the status code."""
        fake_gitea.route("POST", "contents", httpx.Response(409, json={"message": "exists"}))

        with pytest.raises(UpstreamError) as exc_info:
            BatchCommitter(client).apply_batch_with_new_branch(operations, "main", "x", "msg")
        assert exc_info.value.status_code == 409


@pytest.mark.parametrize("body", [
    "not json",
    json.dumps({}),
    json.dumps({"commit": None}),
    json.dumps({"commit": {"sha": 42}}),
])
def test_extract_commit_sha_warnings(body):
    """Test malformed response bodies produce the warning variant."""
    result = extract_commit_sha(body, "b")
    assert result.commit_sha == ""
    assert result.warning
