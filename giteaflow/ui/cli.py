#!/usr/bin/env python3
"""CLI for giteaflow - commit range, merge-base, conflict and batch commit operations."""

import argparse
import json
import signal
import sys
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
from pydantic import TypeAdapter, ValidationError

from giteaflow.agents.merge_check import MergeCheckAgent
from giteaflow.core.config import AppConfig, load_config
from giteaflow.core.errors import GiteaFlowError, InvalidArgument
from giteaflow.core.logging import setup_logging
from giteaflow.core.types import ChangeFileOperation
from giteaflow.services.gitea import GiteaClient
from giteaflow.services.pulls import PullRequestService
from giteaflow.tools.batch import BatchCommitter
from giteaflow.tools.branch_range import BranchRangeResolver
from giteaflow.tools.conflicts import ConflictPoller, is_conflicted
from giteaflow.tools.history import CommitHistoryResolver
from giteaflow.tools.merge_base import MergeBaseResolver

_operation_list = TypeAdapter(List[ChangeFileOperation])

# Commands that wait on the server and honour the cancel event
POLLING_COMMANDS = ("conflict", "merge-check")


def load_operations(path: str) -> List[ChangeFileOperation]:
    """Read batch operations from a JSON file (a list, or an object with "files")."""
    file_path = Path(path)
    if not file_path.exists():
        raise InvalidArgument(f"operations file '{path}' does not exist")
    try:
        payload = json.loads(file_path.read_text())
        if isinstance(payload, dict):
            payload = payload.get("files", [])
        return _operation_list.validate_python(payload)
    except (json.JSONDecodeError, ValidationError) as e:
        raise InvalidArgument(f"invalid operations file '{path}'", cause=e) from e


def run_command(args: argparse.Namespace, config: AppConfig,
                transport: Optional[httpx.BaseTransport] = None,
                cancel: Optional[threading.Event] = None) -> Dict[str, Any]:
    """Run one subcommand.

    Args:
        args: Parsed command line arguments
        config: Loaded application configuration
        transport: Optional httpx transport (tests inject a fake server here)
        cancel: Event that aborts conflict polling

    Returns:
        Result dictionary to output as JSON
    """
    settings = config.resolver
    with GiteaClient(config.gitea, transport=transport) as client:
        history = CommitHistoryResolver(client, settings)
        merge_bases = MergeBaseResolver(client, history)

        if args.command == "commits":
            commits = history.list_commits(args.branch, limit=args.limit)
            return {"branch": args.branch, "commits": [c.model_dump() for c in commits]}

        elif args.command == "merge-base":
            commit = merge_bases.merge_base(args.base, args.head)
            return {"base": args.base, "head": args.head, "merge_base": commit.model_dump()}

        elif args.command == "commit-range":
            resolver = BranchRangeResolver(history, merge_bases, settings,
                                           base_branch=config.gitea.base_branch)
            commit_range = resolver.commit_range(args.branch, base_branch=args.base)
            return {"branch": args.branch, **commit_range.model_dump()}

        elif args.command == "conflict":
            poller = ConflictPoller(client, settings)
            state = poller.wait_for_state(args.pr, cancel)
            return {
                "pr_number": args.pr,
                "mergeable_state": state.mergeable_state,
                "has_conflict": is_conflicted(state),
            }

        elif args.command == "apply-batch":
            operations = load_operations(args.operations)
            committer = BatchCommitter(client, config.identity)
            if args.new_branch:
                result = committer.apply_batch_with_new_branch(
                    operations, args.branch, args.new_branch, args.message
                )
                return {"branch": args.new_branch, **result.model_dump()}
            committer.apply_batch(operations, args.branch, args.message)
            return {"branch": args.branch, "applied": len(operations)}

        elif args.command == "merge-check":
            agent = MergeCheckAgent(PullRequestService(client), ConflictPoller(client, settings),
                                    close_conflicted=args.close_conflicted)
            report = agent.run(args.base or config.gitea.base_branch, cancel=cancel)
            return report.model_dump()

        else:
            raise InvalidArgument(f"Unknown command: {args.command}")


def build_parser() -> argparse.ArgumentParser:
    common_parser = argparse.ArgumentParser(add_help=False)
    common_parser.add_argument("--config", type=str, default=argparse.SUPPRESS,
                               help="Path to YAML config (default: configs/giteaflow.yaml)")
    common_parser.add_argument("--log-level", type=str, default=argparse.SUPPRESS, help="Override log level")

    parser = argparse.ArgumentParser(
        prog="giteaflow",
        description="Gitea CI client - commit ranges, merge bases, conflict checks, batch commits",
        parents=[common_parser]
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    commits_parser = subparsers.add_parser("commits", help="List commits of a branch",
                                           parents=[common_parser])
    commits_parser.add_argument("branch")
    commits_parser.add_argument("--limit", type=int, default=0, help="Maximum commits (0 = all)")

    merge_base_parser = subparsers.add_parser("merge-base", help="Find the merge base of two branches",
                                              parents=[common_parser])
    merge_base_parser.add_argument("base")
    merge_base_parser.add_argument("head")

    range_parser = subparsers.add_parser("commit-range", help="Resolve first/last commit of a branch",
                                         parents=[common_parser])
    range_parser.add_argument("branch")
    range_parser.add_argument("--base", type=str, default=None, help="Base branch for feature branches")

    conflict_parser = subparsers.add_parser("conflict", help="Check a pull request for conflicts",
                                            parents=[common_parser])
    conflict_parser.add_argument("pr", type=int)

    batch_parser = subparsers.add_parser("apply-batch", help="Apply file operations as one commit",
                                         parents=[common_parser])
    batch_parser.add_argument("operations", help="JSON file with file operations")
    batch_parser.add_argument("--branch", required=True, help="Target (or base) branch")
    batch_parser.add_argument("--new-branch", type=str, default=None, help="Create this branch")
    batch_parser.add_argument("--message", "-m", required=True, help="Commit message")

    check_parser = subparsers.add_parser("merge-check", help="Probe all open pull requests for conflicts",
                                         parents=[common_parser])
    check_parser.add_argument("--base", type=str, default=None, help="Base branch (default: config)")
    check_parser.add_argument("--close-conflicted", action="store_true",
                              help="Close pull requests that conflict")

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    config = load_config(getattr(args, "config", None))
    log_level = getattr(args, "log_level", None) or config.logging.level
    setup_logging(log_level, structured=config.logging.structured,
                  context={"owner": config.gitea.owner, "repo": config.gitea.repo})

    cancel = threading.Event()
    if args.command in POLLING_COMMANDS:
        # SIGTERM cancels the poll loop
        signal.signal(signal.SIGTERM, lambda *_: cancel.set())

    try:
        result = run_command(args, config, cancel=cancel)
        print(json.dumps(result, separators=(',', ':')))

    except GiteaFlowError as e:
        print(f"Error {e}", file=sys.stderr)
        sys.exit(1)
    except ValueError as e:
        print(f"Error [INVALID_ARGUMENT] {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        cancel.set()
        print("Error [CANCELLED] interrupted", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    main()
