"""Merge-conflict poller.

Gitea computes mergeability in a background job, so a freshly opened pull
request reports ``mergeable_state == "checking"`` for a while. The poller
re-reads the pull request until the state settles, the attempt budget runs
out, or the caller cancels.
"""

import threading
from typing import Optional

from pydantic import ValidationError

from giteaflow.core.config import ResolverSettings
from giteaflow.core.errors import Cancelled, DecodeError, PollTimeout
from giteaflow.core.logging import get_logger
from giteaflow.core.types import MergeState, PullRequestState
from giteaflow.services.gitea import GiteaClient

logger = get_logger(__name__)

MERGEABLE_STATES = frozenset({MergeState.SUCCESS, MergeState.UNSTABLE, MergeState.HAS_HOOKS})
CONFLICTED_STATES = frozenset({MergeState.CONFLICT, MergeState.BEHIND, MergeState.BLOCKED})


def is_conflicted(pr: PullRequestState) -> bool:
    """Classify a settled pull request state.

    Unknown or empty states fall back to the ``mergeable`` flag.
    """
    state = pr.state
    if state in MERGEABLE_STATES:
        return False
    if state in CONFLICTED_STATES:
        return True
    return not pr.mergeable


class ConflictPoller:
    """Observes a pull request's mergeability with a bounded, cancellable wait."""

    def __init__(self, client: GiteaClient, settings: Optional[ResolverSettings] = None):
        self.client = client
        self.settings = settings or ResolverSettings()

    def fetch_state(self, pr_number: int) -> PullRequestState:
        payload = self.client.get_json(f"pulls/{pr_number}")
        try:
            return PullRequestState.model_validate(payload)
        except ValidationError as e:
            raise DecodeError(f"unexpected payload for pull request {pr_number}", cause=e) from e

    def wait_for_state(self, pr_number: int,
                       cancel: Optional[threading.Event] = None) -> PullRequestState:
        """Poll until the pull request leaves the "checking" state.

        Args:
            pr_number: Pull request number
            cancel: Event that aborts the wait when set

        Returns:
            The first non-checking state observed

        Raises:
            UpstreamError: On any non-success status, without retrying
            PollTimeout: If still checking after ``poll_max_attempts`` reads
            Cancelled: If ``cancel`` is set before the state settles
        """
        cancel = cancel or threading.Event()
        attempts = self.settings.poll_max_attempts
        interval = self.settings.poll_interval_seconds

        for attempt in range(1, attempts + 1):
            if cancel.is_set():
                raise Cancelled(f"polling of pull request {pr_number} cancelled")

            pr = self.fetch_state(pr_number)
            if pr.state is not MergeState.CHECKING:
                return pr

            if attempt == attempts:
                break

            logger.info(
                f"PR {pr_number}: mergeability check in progress, waiting {interval}s "
                f"(attempt {attempt}/{attempts})",
                extra={"pr_number": pr_number, "attempt": attempt},
            )
            if cancel.wait(interval):
                raise Cancelled(f"polling of pull request {pr_number} cancelled")

        raise PollTimeout(
            f"pull request {pr_number} still checking after {attempts} attempts"
        )

    def has_conflict(self, pr_number: int, cancel: Optional[threading.Event] = None) -> bool:
        """Return True when the pull request cannot be merged cleanly."""
        return is_conflicted(self.wait_for_state(pr_number, cancel))
