"""Core data types and Pydantic models."""

from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class Signature(BaseModel):
    """Author or committer signature attached to a commit."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(default="", description="Display name")
    email: str = Field(default="", description="E-mail address")
    date: str = Field(default="", description="RFC 3339 timestamp")


class CommitDetails(BaseModel):
    """Git-level commit payload."""
    model_config = ConfigDict(frozen=True)

    author: Signature = Field(default_factory=Signature)
    committer: Signature = Field(default_factory=Signature)
    message: str = Field(default="", description="Commit message")


class Commit(BaseModel):
    """Commit as returned by the commits endpoint."""
    model_config = ConfigDict(frozen=True)

    sha: str = Field(..., description="Commit hash")
    commit: CommitDetails = Field(default_factory=CommitDetails)

    @property
    def message(self) -> str:
        return self.commit.message


class CommitRange(BaseModel):
    """First and last commit of a branch, oldest to newest."""
    first: Commit = Field(..., description="Start of the range")
    last: Commit = Field(..., description="Newest commit of the branch")


class CompareResult(BaseModel):
    """Result of comparing two branches."""
    merge_base_commit: Optional[Commit] = Field(None, description="Common ancestor, often absent")
    commits: List[Commit] = Field(default_factory=list, description="Commits on head not on base")


class TagCommit(BaseModel):
    sha: str = ""


class Tag(BaseModel):
    """Repository tag."""
    name: str
    commit: TagCommit = Field(default_factory=TagCommit)


class MergeState(str, Enum):
    """Server-computed mergeable_state values."""
    CHECKING = "checking"
    SUCCESS = "success"
    CONFLICT = "conflict"
    BEHIND = "behind"
    BLOCKED = "blocked"
    UNSTABLE = "unstable"
    HAS_HOOKS = "has_hooks"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "MergeState":
        try:
            return cls(value or "")
        except ValueError:
            return cls.UNKNOWN


class PullRequestState(BaseModel):
    """Mergeability snapshot of a pull request."""
    number: int = 0
    mergeable: bool = False
    mergeable_state: str = ""

    @property
    def state(self) -> MergeState:
        return MergeState.parse(self.mergeable_state)


class BranchRef(BaseModel):
    label: str = ""
    ref: str = ""


class PullRequest(BaseModel):
    """Open pull request summary."""
    id: int = 0
    number: int
    title: str = ""
    state: str = ""
    html_url: str = ""
    base: BranchRef = Field(default_factory=BranchRef)
    head: BranchRef = Field(default_factory=BranchRef)


class ChangeFileOperation(BaseModel):
    """One file mutation inside a batch commit."""
    operation: Literal["create", "update", "delete"] = Field(..., description="Mutation kind")
    path: str = Field(..., description="Repository-relative path")
    content: Optional[str] = Field(None, description="Base64 encoded content")
    sha: Optional[str] = Field(None, description="Known blob SHA of the existing file")
    from_path: Optional[str] = Field(None, description="Source path when moving a file")


class Identity(BaseModel):
    name: str
    email: str


class ChangeFilesRequest(BaseModel):
    """Body of the multi-file contents request."""
    branch: str
    new_branch: Optional[str] = None
    author: Identity
    committer: Identity
    message: str
    files: List[ChangeFileOperation]

    def to_wire(self) -> dict:
        return self.model_dump(exclude_none=True)


class BatchCommitResult(BaseModel):
    """Outcome of a batch commit; warning is set when the SHA could not be read back."""
    commit_sha: str = ""
    warning: Optional[str] = None

    @property
    def has_warning(self) -> bool:
        return bool(self.warning)
