"""Merge check agent: probes every open pull request for conflicts.

A throwaway branch is cut from the base branch and each open pull request's
head is proposed against it in turn. Clean probes are merged into the
throwaway branch, so later pull requests are checked against the combined
result, which is what the base would look like after merging them in order.
"""

import threading
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from giteaflow.core.errors import Cancelled, GiteaFlowError
from giteaflow.core.logging import get_logger
from giteaflow.core.types import PullRequest
from giteaflow.services.pulls import PullRequestService
from giteaflow.tools.conflicts import ConflictPoller

logger = get_logger(__name__)

TEST_BRANCH_PREFIX = "test-merge-"


def generate_test_branch_name(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return TEST_BRANCH_PREFIX + now.strftime("%Y%m%d-%H%M%S")


def build_conflict_comment(base_branch: str, conflict_files: List[str]) -> str:
    """Markdown explanation posted on a pull request closed for conflicts."""
    lines = [f"Closed automatically: merge conflicts with branch `{base_branch}`.", ""]
    if conflict_files:
        lines.append("**Conflicting files:**")
        lines.extend(f"- `{path}`" for path in conflict_files)
    else:
        lines.append("Could not determine the list of conflicting files.")
    lines.extend(["", "Please resolve the conflicts and open a new pull request."])
    return "\n".join(lines)


def build_merge_failed_comment(base_branch: str, error: Optional[str]) -> str:
    return (f"Closed automatically: merging into branch `{base_branch}` failed.\n\n"
            f"Error: {error or 'unknown'}")


class PRMergeResult(BaseModel):
    """Outcome of probing one pull request."""
    pr_number: int
    head_branch: str = ""
    base_branch: str = ""
    has_conflict: bool = False
    merge_result: str = ""  # "success" | "conflict" | "merge_failed" | "error"
    conflict_files: List[str] = Field(default_factory=list)
    closed: bool = False
    error_message: Optional[str] = None


class MergeCheckReport(BaseModel):
    """Summary of a merge check run."""
    base_branch: str
    test_branch: str
    total_prs: int = 0
    mergeable_prs: int = 0
    conflict_prs: int = 0
    closed_prs: int = 0
    pr_results: List[PRMergeResult] = Field(default_factory=list)


class MergeCheckAgent:
    """Runs the conflict probe over all open pull requests."""

    def __init__(self, pulls: PullRequestService, poller: ConflictPoller,
                 close_conflicted: bool = False):
        """Initialize the agent.

        Args:
            pulls: Pull request and branch endpoints
            poller: Mergeability poller
            close_conflicted: Close original pull requests found to conflict
        """
        self.pulls = pulls
        self.poller = poller
        self.close_conflicted = close_conflicted

    def run(self, base_branch: str, cancel: Optional[threading.Event] = None,
            test_branch: Optional[str] = None) -> MergeCheckReport:
        """Probe every open pull request targeting ``base_branch``.

        Args:
            base_branch: Branch the pull requests target
            cancel: Event that aborts any in-flight poll
            test_branch: Name of the throwaway branch (generated when omitted)

        Returns:
            MergeCheckReport with per-PR results
        """
        test_branch = test_branch or generate_test_branch_name()
        report = MergeCheckReport(base_branch=base_branch, test_branch=test_branch)

        open_pulls = self.pulls.list_open_pulls(base_branch)
        report.total_prs = len(open_pulls)
        if not open_pulls:
            logger.info(f"No open pull requests against {base_branch}")
            return report

        try:
            self.pulls.delete_branch(test_branch)
        except GiteaFlowError as e:
            logger.debug(f"Test branch cleanup before run: {e}")
        self.pulls.create_branch(test_branch, base_branch)

        try:
            for pr in open_pulls:
                result = self.check_pull(pr, test_branch, cancel)
                report.pr_results.append(result)
                if result.has_conflict:
                    report.conflict_prs += 1
                    if result.closed:
                        report.closed_prs += 1
                else:
                    report.mergeable_prs += 1
        finally:
            try:
                self.pulls.delete_branch(test_branch)
            except GiteaFlowError as e:
                logger.warning(f"Could not delete test branch {test_branch}: {e}",
                               extra={"branch": test_branch})

        logger.info(
            f"Merge check on {base_branch}: {report.total_prs} checked, "
            f"{report.mergeable_prs} clean, {report.conflict_prs} conflicting"
        )
        return report

    def check_pull(self, pr: PullRequest, test_branch: str,
                   cancel: Optional[threading.Event] = None) -> PRMergeResult:
        head = pr.head.ref or pr.head.label
        result = PRMergeResult(
            pr_number=pr.number,
            head_branch=head,
            base_branch=pr.base.ref or pr.base.label,
        )

        try:
            probe = self.pulls.create_pull(head, test_branch, f"Test merge {head} to {test_branch}",
                                           body="Automated conflict probe")
        except GiteaFlowError as e:
            logger.warning(f"Cannot open probe for PR #{pr.number}: {e}",
                           extra={"pr_number": pr.number})
            result.has_conflict = True
            result.merge_result = "error"
            result.error_message = str(e)
            return result

        try:
            result.has_conflict = self.poller.has_conflict(probe.number, cancel)
        except Cancelled:
            self._close_quietly(probe.number)
            raise
        except GiteaFlowError as e:
            logger.warning(f"Conflict check failed for PR #{pr.number}: {e}",
                           extra={"pr_number": pr.number})
            self._close_quietly(probe.number)
            return self._failed(result, "error", e)

        if result.has_conflict:
            result.merge_result = "conflict"
            try:
                result.conflict_files = self.pulls.conflict_files(probe.number)
            except GiteaFlowError as e:
                logger.warning(f"Cannot list conflicting files of PR #{pr.number}: {e}")
            self._close_quietly(probe.number)
            self._close_original(result, build_conflict_comment(result.base_branch, result.conflict_files))
            return result

        try:
            self.pulls.merge_pull(probe.number)
        except GiteaFlowError as e:
            self._close_quietly(probe.number)
            return self._failed(result, "merge_failed", e)

        result.merge_result = "success"
        return result

    def _failed(self, result: PRMergeResult, outcome: str, error: GiteaFlowError) -> PRMergeResult:
        result.has_conflict = True
        result.merge_result = outcome
        result.error_message = str(error)
        self._close_original(result, build_merge_failed_comment(result.base_branch, result.error_message))
        return result

    def _close_original(self, result: PRMergeResult, comment: str) -> None:
        """Explain the outcome on the pull request, then close it."""
        if not self.close_conflicted:
            return
        try:
            self.pulls.add_comment(result.pr_number, comment)
        except GiteaFlowError as e:
            logger.warning(f"Cannot comment on PR #{result.pr_number}: {e}",
                           extra={"pr_number": result.pr_number})
        try:
            self.pulls.close_pull(result.pr_number)
            result.closed = True
        except GiteaFlowError as e:
            logger.warning(f"Cannot close PR #{result.pr_number}: {e}",
                           extra={"pr_number": result.pr_number})

    def _close_quietly(self, number: int) -> None:
        try:
            self.pulls.close_pull(number)
        except GiteaFlowError as e:
            logger.debug(f"Probe PR #{number} left open: {e}")
