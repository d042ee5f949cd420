"""Merge-base resolution between two branches.

The compare endpoint is asked first. When it leaves ``merge_base_commit``
empty, which happens often on long or rewritten histories, a fallback strategy
approximates the divergence point from the linear commit lists.
"""

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import ValidationError

from giteaflow.core.errors import DecodeError, NoPriorCommit, NotFound
from giteaflow.core.logging import get_logger
from giteaflow.core.types import Commit, CompareResult
from giteaflow.services.gitea import GiteaClient
from giteaflow.tools.history import CommitHistoryResolver

logger = get_logger(__name__)


class MergeBaseStrategy(ABC):
    """Computes a merge base when the server did not supply one."""

    @abstractmethod
    def find(self, base: str, head: str) -> Commit: ...


class LinearScanMergeBase(MergeBaseStrategy):
    """Single-parent approximation over the two commit lists.

    The oldest commit of ``head`` is looked up in the history of ``base``; the
    commit right after it (one step older on ``base``) is reported. If it is not
    on ``base`` at all, the newest commit of ``base`` is returned.
    """

    def __init__(self, history: CommitHistoryResolver):
        self.history = history

    def find(self, base: str, head: str) -> Commit:
        head_commits = self.history.list_commits(head)
        if not head_commits:
            raise NotFound(f"head branch {head} has no commits")
        head_root = head_commits[-1]

        base_commits = self.history.list_commits(base)
        if not base_commits:
            raise NotFound(f"base branch {base} has no commits")

        for index, commit in enumerate(base_commits):
            if commit.sha != head_root.sha:
                continue
            if index == len(base_commits) - 1:
                raise NoPriorCommit(
                    f"first commit of {head} is the first commit of {base}"
                )
            return base_commits[index + 1]

        logger.info(
            f"Oldest commit of {head} not found on {base}, using newest {base} commit",
            extra={"base": base, "head": head},
        )
        return base_commits[0]


class MergeBaseResolver:
    """Finds the common ancestor of two branches."""

    def __init__(self, client: GiteaClient, history: CommitHistoryResolver,
                 fallback: Optional[MergeBaseStrategy] = None):
        self.client = client
        self.history = history
        self.fallback = fallback or LinearScanMergeBase(history)

    def compare(self, base: str, head: str) -> CompareResult:
        """Compare two branches, filling in the merge base when the server omits it."""
        payload = self.client.get_json(f"compare/{base}...{head}")
        try:
            result = CompareResult.model_validate(payload)
        except ValidationError as e:
            raise DecodeError("unexpected compare payload", cause=e) from e

        if result.merge_base_commit is None:
            logger.debug(
                f"Compare {base}...{head} returned no merge base, using fallback",
                extra={"base": base, "head": head},
            )
            result.merge_base_commit = self.fallback.find(base, head)
        return result

    def merge_base(self, base: str, head: str) -> Commit:
        return self.compare(base, head).merge_base_commit
