"""Atomic batch commits through the multi-file contents endpoint.

The whole operation list goes out as one request; the server either applies
every file change as a single new commit or none of them.
"""

import json
from typing import Optional, Sequence

from giteaflow.core.config import CommitIdentityConfig
from giteaflow.core.errors import InvalidArgument, UpstreamError
from giteaflow.core.logging import get_logger
from giteaflow.core.types import (
    BatchCommitResult,
    ChangeFileOperation,
    ChangeFilesRequest,
    Identity,
)
from giteaflow.services.gitea import GiteaClient, HTTPResult

logger = get_logger(__name__)

ACCEPTED_STATUSES = (200, 201)


def validate_operations(operations: Sequence[ChangeFileOperation]) -> None:
    """Reject the batch before any network call if it cannot be submitted."""
    if not operations:
        raise InvalidArgument("operation list must not be empty")
    for index, op in enumerate(operations):
        if not op.path:
            raise InvalidArgument(f"operation {index} has an empty path (operation={op.operation})")


def require_branch(name: str, what: str) -> None:
    if not name or not name.strip():
        raise InvalidArgument(f"{what} name must not be empty")


class BatchCommitter:
    """Submits file operations as one remote commit."""

    def __init__(self, client: GiteaClient, identity: Optional[CommitIdentityConfig] = None):
        self.client = client
        identity = identity or CommitIdentityConfig()
        self.identity = Identity(name=identity.name, email=identity.email)

    def build_request(self, operations: Sequence[ChangeFileOperation], branch: str,
                      message: str, new_branch: Optional[str] = None) -> ChangeFilesRequest:
        return ChangeFilesRequest(
            branch=branch,
            new_branch=new_branch,
            author=self.identity,
            committer=self.identity,
            message=message,
            files=list(operations),
        )

    def _submit(self, request: ChangeFilesRequest) -> HTTPResult:
        paths = [f"{op.operation}:{op.path}" for op in request.files]
        logger.debug(f"Submitting batch of {len(paths)} operations to {request.branch}: {paths}",
                     extra={"branch": request.branch})

        result = self.client.send("POST", "contents", data=request.to_wire())
        if result.status_code not in ACCEPTED_STATUSES:
            logger.error(
                f"Batch commit rejected: {result.text}",
                extra={"branch": request.branch, "status_code": result.status_code},
            )
            raise UpstreamError(
                f"batch commit to {request.new_branch or request.branch} failed",
                status_code=result.status_code,
            )
        return result

    def apply_batch(self, operations: Sequence[ChangeFileOperation], branch: str,
                    message: str) -> None:
        """Apply ``operations`` to ``branch`` as one commit."""
        validate_operations(operations)
        require_branch(branch, "branch")
        self._submit(self.build_request(operations, branch, message))
        logger.info(f"Applied {len(operations)} file operations to {branch}",
                    extra={"branch": branch})

    def apply_batch_with_new_branch(self, operations: Sequence[ChangeFileOperation],
                                    base_branch: str, new_branch: str,
                                    message: str) -> BatchCommitResult:
        """Create ``new_branch`` from ``base_branch`` with ``operations`` as its first commit.

        Returns:
            BatchCommitResult with the new commit SHA. If the response cannot be
            parsed the SHA is empty and ``warning`` says why; the commit exists
            on the server either way.
        """
        validate_operations(operations)
        require_branch(base_branch, "base branch")
        require_branch(new_branch, "new branch")

        result = self._submit(self.build_request(operations, base_branch, message, new_branch))
        return extract_commit_sha(result.text, new_branch)


def extract_commit_sha(body: str, branch: str) -> BatchCommitResult:
    try:
        sha = json.loads(body)["commit"]["sha"]
        if not isinstance(sha, str):
            raise TypeError(f"commit sha is {type(sha).__name__}")
    except (ValueError, KeyError, TypeError) as e:
        warning = f"commit created on {branch} but its SHA could not be read: {e}"
        logger.warning(warning, extra={"branch": branch})
        return BatchCommitResult(commit_sha="", warning=warning)
    return BatchCommitResult(commit_sha=sha)
