"""Error taxonomy for Gitea resolver and workflow failures.

Every failure raised by this package derives from GiteaFlowError and carries a
machine-distinguishable ``kind`` so CLI consumers can branch on it.
"""

from typing import Optional


class GiteaFlowError(Exception):
    """Base error with a stable kind code."""

    kind = "ERROR"

    def __init__(self, message: str, status_code: Optional[int] = None,
                 cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.cause = cause

    def __str__(self) -> str:
        text = f"[{self.kind}] {self.message}"
        if self.status_code is not None:
            text += f" (status {self.status_code})"
        if self.cause is not None:
            text += f": {self.cause}"
        return text


class NotFound(GiteaFlowError):
    """Empty result set where a commit or tag was expected."""
    kind = "NOT_FOUND"


class NoPriorCommit(GiteaFlowError):
    """Merge-base scan reached the first commit of the base branch."""
    kind = "NO_PRIOR_COMMIT"


class PollTimeout(GiteaFlowError):
    """Mergeability stayed in "checking" for the whole retry budget."""
    kind = "TIMEOUT"


class Cancelled(GiteaFlowError):
    """Caller aborted a wait through its cancel event."""
    kind = "CANCELLED"


class UpstreamError(GiteaFlowError):
    """Non-success HTTP status, transport failure, or wrapped resolver failure."""
    kind = "UPSTREAM"


class InvalidArgument(GiteaFlowError):
    """Caller supplied input that cannot be submitted."""
    kind = "INVALID_ARGUMENT"


class DecodeError(GiteaFlowError):
    """Response body is not the JSON shape we expected."""
    kind = "DECODE"


def wrap_upstream(message: str, error: GiteaFlowError) -> UpstreamError:
    """Wrap a lower-layer failure, keeping its status code and the original error."""
    return UpstreamError(message, status_code=error.status_code, cause=error)
