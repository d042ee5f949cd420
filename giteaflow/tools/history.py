"""Commit history resolution over the linear commits endpoint.

The API has no graph primitives: everything here works on the commit list the
server returns for a ref (newest first) and trusts that order as given.
"""

from typing import Any, List, MutableMapping, Optional

from pydantic import TypeAdapter, ValidationError

from giteaflow.core.config import ResolverSettings
from giteaflow.core.errors import DecodeError, NotFound
from giteaflow.core.logging import get_logger
from giteaflow.core.types import Commit, Tag
from giteaflow.services.gitea import GiteaClient

logger = get_logger(__name__)

_commit_list = TypeAdapter(List[Commit])
_tag_list = TypeAdapter(List[Tag])


def parse_commits(payload: Any) -> List[Commit]:
    try:
        return _commit_list.validate_python(payload)
    except ValidationError as e:
        raise DecodeError("unexpected commit list payload", cause=e) from e


def parse_tags(payload: Any) -> List[Tag]:
    try:
        return _tag_list.validate_python(payload)
    except ValidationError as e:
        raise DecodeError("unexpected tag list payload", cause=e) from e


class CommitHistoryResolver:
    """Lists commits for a ref and locates single commits within that list.

    Args:
        client: Gitea transport
        settings: Paging policy; ``page_size == 0`` issues one request per list
        cache: Optional mapping memoizing unlimited lists by ref. Without it
            every call re-fetches.
    """

    def __init__(self, client: GiteaClient, settings: Optional[ResolverSettings] = None,
                 cache: Optional[MutableMapping[str, List[Commit]]] = None):
        self.client = client
        self.settings = settings or ResolverSettings()
        self.cache = cache

    def list_commits(self, ref: str, limit: int = 0) -> List[Commit]:
        """List commits reachable from ``ref``, newest first.

        Args:
            ref: Branch name, tag or commit SHA
            limit: Maximum number of commits; 0 means no limit

        Returns:
            Commits in server order
        """
        if limit < 0:
            raise ValueError("limit must be >= 0")

        if limit == 0 and self.cache is not None and ref in self.cache:
            return list(self.cache[ref])

        if self.settings.page_size > 0:
            commits = self._list_paged(ref, limit)
        else:
            params = {"sha": ref}
            if limit > 0:
                params["limit"] = limit
            commits = parse_commits(self.client.get_json("commits", params=params))

        if limit == 0 and self.cache is not None:
            self.cache[ref] = list(commits)
        return commits

    def _list_paged(self, ref: str, limit: int) -> List[Commit]:
        page_size = self.settings.page_size
        if limit:
            page_size = min(page_size, limit)

        commits: List[Commit] = []
        for page in range(1, self.settings.max_pages + 1):
            params = {"sha": ref, "limit": page_size, "page": page}
            batch = parse_commits(self.client.get_json("commits", params=params))
            commits.extend(batch)
            if limit and len(commits) >= limit:
                return commits[:limit]
            if len(batch) < page_size:
                return commits

        logger.warning(
            f"History of {ref} truncated at {self.settings.max_pages} pages",
            extra={"branch": ref},
        )
        return commits

    def newest_commit(self, ref: str) -> Commit:
        """Return the most recent commit of ``ref``."""
        commits = self.list_commits(ref, limit=1)
        if not commits:
            raise NotFound(f"no commits found on {ref}")
        return commits[0]

    def oldest_commit(self, ref: str) -> Commit:
        """Return the last element of the full history of ``ref``."""
        commits = self.list_commits(ref)
        if not commits:
            raise NotFound(f"no commits found on {ref}")
        return commits[-1]

    def commit_by_sha(self, sha: str) -> Commit:
        """Fetch a commit by exact hash.

        Listing commits starting at a SHA returns its ancestors too, so the
        exact match is required.
        """
        for commit in self.list_commits(sha):
            if commit.sha == sha:
                return commit
        raise NotFound(f"commit {sha} not found")

    def commits_between(self, base_sha: str, head_sha: str) -> List[Commit]:
        """Commits reachable from ``head_sha`` down to, but excluding, ``base_sha``.

        If ``base_sha`` never shows up in the head history the whole list is
        returned.
        """
        commits = self.list_commits(head_sha)
        for index, commit in enumerate(commits):
            if commit.sha == base_sha:
                return commits[:index]
        logger.debug(f"{base_sha} not in history of {head_sha}, returning full list")
        return commits

    def find_tag_commit(self, tag: str) -> Commit:
        """Resolve the commit a tag points to."""
        for item in parse_tags(self.client.get_json("tags")):
            if item.name == tag:
                return self.commit_by_sha(item.commit.sha)
        raise NotFound(f"tag {tag} not found")
