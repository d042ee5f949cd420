"""Branch commit range resolution.

Trunk branches start at the ``sq-start`` tag when one exists, otherwise at the
oldest commit of their history. Feature branches start at their merge base with
the configured base branch.
"""

from typing import Optional

from giteaflow.core.config import ResolverSettings
from giteaflow.core.errors import GiteaFlowError, NotFound, wrap_upstream
from giteaflow.core.logging import get_logger
from giteaflow.core.types import Commit, CommitRange
from giteaflow.tools.history import CommitHistoryResolver
from giteaflow.tools.merge_base import MergeBaseResolver

logger = get_logger(__name__)

DEFAULT_BASE_BRANCH = "main"


class BranchRangeResolver:
    """Produces the (first, last) commit pair of a branch."""

    def __init__(self, history: CommitHistoryResolver, merge_bases: MergeBaseResolver,
                 settings: Optional[ResolverSettings] = None,
                 base_branch: str = DEFAULT_BASE_BRANCH):
        self.history = history
        self.merge_bases = merge_bases
        self.settings = settings or ResolverSettings()
        self.base_branch = base_branch

    def is_trunk(self, branch: str) -> bool:
        return branch in self.settings.trunk_branches

    def commit_range(self, branch: str, base_branch: Optional[str] = None) -> CommitRange:
        """Resolve the commit range of ``branch``.

        Args:
            branch: Branch to resolve
            base_branch: Base for feature branches; falls back to the configured
                base branch, then to "main"

        Raises:
            UpstreamError: Wrapping any resolver failure
        """
        if self.is_trunk(branch):
            return self._trunk_range(branch)
        base = base_branch or self.base_branch or DEFAULT_BASE_BRANCH
        return self._feature_range(branch, base)

    def _trunk_range(self, branch: str) -> CommitRange:
        try:
            last = self.history.newest_commit(branch)
        except GiteaFlowError as e:
            raise wrap_upstream(f"cannot get newest commit of {branch}", e) from e

        first = self._start_tag_commit()
        if first is None:
            try:
                first = self.history.oldest_commit(branch)
            except GiteaFlowError as e:
                raise wrap_upstream(f"cannot get first commit of {branch}", e) from e

        return CommitRange(first=first, last=last)

    def _start_tag_commit(self) -> Optional[Commit]:
        tag = self.settings.start_tag
        try:
            return self.history.find_tag_commit(tag)
        except NotFound:
            logger.debug(f"Tag {tag} not found, falling back to oldest commit")
            return None
        except GiteaFlowError as e:
            raise wrap_upstream(f"cannot resolve tag {tag}", e) from e

    def _feature_range(self, branch: str, base: str) -> CommitRange:
        try:
            last = self.history.newest_commit(branch)
            first = self.merge_bases.merge_base(base, branch)
        except GiteaFlowError as e:
            raise wrap_upstream(f"cannot resolve range of {branch} against {base}", e) from e

        logger.debug(
            f"Range of {branch}: {first.sha[:10]}..{last.sha[:10]}",
            extra={"branch": branch, "base": base},
        )
        return CommitRange(first=first, last=last)
