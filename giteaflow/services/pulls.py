"""Pull request and branch endpoints used by the merge check workflow."""

from typing import Dict, List

from pydantic import TypeAdapter, ValidationError

from giteaflow.core.errors import DecodeError, UpstreamError
from giteaflow.core.logging import get_logger
from giteaflow.core.types import PullRequest
from giteaflow.services.gitea import GiteaClient

logger = get_logger(__name__)

_pull_list = TypeAdapter(List[PullRequest])


class PullRequestService:
    """Request/response wrappers around pulls and branches."""

    def __init__(self, client: GiteaClient):
        self.client = client

    def list_open_pulls(self, base_branch: str = "") -> List[PullRequest]:
        """List open pull requests, oldest first, optionally targeting ``base_branch``."""
        payload = self.client.get_json("pulls", params={"state": "open", "sort": "oldest"})
        try:
            pulls = _pull_list.validate_python(payload)
        except ValidationError as e:
            raise DecodeError("unexpected pull list payload", cause=e) from e
        if base_branch:
            pulls = [pr for pr in pulls if (pr.base.ref or pr.base.label) == base_branch]
        return pulls

    def create_pull(self, head: str, base: str, title: str, body: str = "") -> PullRequest:
        data = {"head": head, "base": base, "title": title, "body": body}
        payload = self.client.request_json("POST", "pulls", data=data, expected=(201,))
        try:
            pr = PullRequest.model_validate(payload)
        except ValidationError as e:
            raise DecodeError("unexpected pull request payload", cause=e) from e
        logger.info(f"Opened PR #{pr.number} {head} -> {base}", extra={"pr_number": pr.number})
        return pr

    def close_pull(self, number: int) -> None:
        result = self.client.send("PATCH", f"pulls/{number}", data={"state": "closed"})
        if not result.ok:
            raise UpstreamError(f"cannot close pull request {number}", status_code=result.status_code)
        logger.info(f"Closed PR #{number}", extra={"pr_number": number})

    def add_comment(self, number: int, body: str) -> None:
        """Comment on a pull request through its issue."""
        result = self.client.send("POST", f"issues/{number}/comments", data={"body": body})
        if result.status_code != 201:
            raise UpstreamError(f"cannot comment on pull request {number}", status_code=result.status_code)

    def merge_pull(self, number: int) -> None:
        data = {
            "Do": "merge",
            "delete_branch_after_merge": False,
            "force_merge": True,
            "merge_when_checks_succeed": False,
        }
        result = self.client.send("POST", f"pulls/{number}/merge", data=data)
        if result.status_code != 200:
            raise UpstreamError(f"cannot merge pull request {number}", status_code=result.status_code)
        logger.info(f"Merged PR #{number}", extra={"pr_number": number})

    def conflict_files(self, number: int) -> List[str]:
        """Paths of the files changed by a pull request."""
        payload = self.client.get_json(f"pulls/{number}/files")
        if not isinstance(payload, list):
            raise DecodeError(f"unexpected file list for pull request {number}")
        return [item.get("filename", "") for item in payload if isinstance(item, dict)]

    def create_branch(self, name: str, from_branch: str) -> None:
        data: Dict[str, str] = {
            "new_branch_name": name,
            "old_branch_name": from_branch,
            "old_ref_name": f"refs/heads/{from_branch}",
        }
        result = self.client.send("POST", "branches", data=data)
        if result.status_code != 201:
            raise UpstreamError(f"cannot create branch {name}", status_code=result.status_code)
        logger.info(f"Created branch {name} from {from_branch}", extra={"branch": name})

    def delete_branch(self, name: str) -> None:
        result = self.client.send("DELETE", f"branches/{name}")
        if result.status_code != 204:
            raise UpstreamError(f"cannot delete branch {name}", status_code=result.status_code)
