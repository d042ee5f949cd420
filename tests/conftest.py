"""Shared fixtures: an in-process fake Gitea server behind httpx.MockTransport."""

import hashlib
import json
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx
import pytest

from giteaflow.core.config import GiteaConfig, ResolverSettings
from giteaflow.services.gitea import GiteaClient

REPO_PREFIX = "/api/v1/repos/acme/erp/"


def sha_of(name: str) -> str:
    """Deterministic 40-hex commit hash for a readable commit name."""
    return hashlib.sha1(name.encode()).hexdigest()


def make_commit(name: str, message: Optional[str] = None) -> Dict[str, Any]:
    return {
        "sha": sha_of(name),
        "url": f"http://gitea.test/acme/erp/commit/{sha_of(name)}",
        "commit": {
            "author": {"name": "Dev", "email": "dev@example.com", "date": "2024-01-01T00:00:00Z"},
            "committer": {"name": "Dev", "email": "dev@example.com", "date": "2024-01-01T00:00:00Z"},
            "message": message or f"commit {name}",
        },
    }


def make_pull(number: int, head: str, base: str = "main", title: str = "") -> Dict[str, Any]:
    return {
        "id": number * 10,
        "number": number,
        "title": title or f"Merge {head}",
        "state": "open",
        "html_url": f"http://gitea.test/acme/erp/pulls/{number}",
        "base": {"label": base, "ref": base},
        "head": {"label": head, "ref": head},
    }


Route = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


class FakeGitea:
    """Minimal stand-in for the Gitea endpoints the client talks to."""

    def __init__(self):
        self.histories: Dict[str, List[Dict[str, Any]]] = {}
        self.tags: List[Dict[str, Any]] = []
        self.compares: Dict[str, Dict[str, Any]] = {}
        self.pull_states: Dict[int, List[Any]] = {}
        self.pulls: List[Dict[str, Any]] = []
        self.pull_files: Dict[int, List[str]] = {}
        self.next_pull_number = 100
        self.routes: Dict[Tuple[str, str], Route] = {}
        self.requests: List[httpx.Request] = []

    # -- setup helpers -------------------------------------------------
    def set_history(self, ref: str, names: List[str]) -> None:
        """History of ``ref``, newest first."""
        self.histories[ref] = [make_commit(n) for n in names]

    def add_tag(self, name: str, commit_name: str) -> None:
        self.tags.append({"name": name, "commit": {"sha": sha_of(commit_name)}})

    def add_pull(self, number: int, head: str, base: str = "main") -> None:
        self.pulls.append(make_pull(number, head, base))

    def set_pull_states(self, number: int, states: List[Any]) -> None:
        """Successive /pulls/{n} responses; dicts are bodies, ints are error statuses."""
        self.pull_states[number] = list(states)

    def route(self, method: str, path: str, response: Route) -> None:
        self.routes[(method, path)] = response

    # -- inspection ----------------------------------------------------
    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and self.path_of(r) == path]

    @staticmethod
    def path_of(request: httpx.Request) -> str:
        path = request.url.path
        return path[len(REPO_PREFIX):] if path.startswith(REPO_PREFIX) else path

    # -- transport handler ---------------------------------------------
    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = self.path_of(request)

        override = self.routes.get((request.method, path))
        if override is not None:
            return override(request) if callable(override) else override

        if request.method == "GET" and path == "commits":
            return self._commits(request)
        if request.method == "GET" and path == "tags":
            return httpx.Response(200, json=self.tags)
        if request.method == "GET" and path.startswith("compare/"):
            key = path[len("compare/"):]
            return httpx.Response(200, json=self.compares.get(key, {"merge_base_commit": None, "commits": []}))
        if request.method == "GET" and path == "pulls":
            return httpx.Response(200, json=self.pulls)
        if request.method == "POST" and path == "pulls":
            return self._create_pull(request)
        if request.method == "GET" and path.startswith("pulls/") and path.count("/") == 1:
            return self._pull(int(path.split("/")[1]))
        if request.method == "GET" and path.startswith("pulls/") and path.endswith("/files"):
            files = self.pull_files.get(int(path.split("/")[1]), [])
            return httpx.Response(200, json=[{"filename": f, "status": "changed"} for f in files])
        if request.method == "PATCH" and path.startswith("pulls/"):
            return httpx.Response(201, json={"number": int(path.split("/")[1]), "state": "closed"})
        if request.method == "POST" and path.startswith("pulls/") and path.endswith("/merge"):
            return httpx.Response(200)
        if request.method == "POST" and path.startswith("issues/") and path.endswith("/comments"):
            return httpx.Response(201, json={"id": 1, "body": json.loads(request.content)["body"]})
        if request.method == "POST" and path == "branches":
            return httpx.Response(201, json={"name": json.loads(request.content)["new_branch_name"]})
        if request.method == "DELETE" and path.startswith("branches/"):
            return httpx.Response(204)
        if request.method == "POST" and path == "contents":
            body = json.loads(request.content)
            return httpx.Response(201, json={"commit": {"sha": sha_of(body["message"])}})
        return httpx.Response(404, json={"message": "not found"})

    def _commits(self, request: httpx.Request) -> httpx.Response:
        ref = request.url.params.get("sha", "")
        history = self.histories.get(ref)
        if history is None:
            history = self._history_from_sha(ref)
        if history is None:
            return httpx.Response(404, json={"message": f"ref {ref} not found"})

        limit = request.url.params.get("limit")
        page = int(request.url.params.get("page", "1"))
        if limit is not None:
            size = int(limit)
            history = history[(page - 1) * size: page * size]
        return httpx.Response(200, json=history)

    def _history_from_sha(self, sha: str) -> Optional[List[Dict[str, Any]]]:
        for history in self.histories.values():
            for index, item in enumerate(history):
                if item["sha"] == sha:
                    return history[index:]
        return None

    def _create_pull(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.next_pull_number += 1
        pull = make_pull(self.next_pull_number, body["head"], body["base"], body.get("title", ""))
        return httpx.Response(201, json=pull)

    def _pull(self, number: int) -> httpx.Response:
        states = self.pull_states.get(number)
        if not states:
            return httpx.Response(404, json={"message": "pull not found"})
        state = states.pop(0) if len(states) > 1 else states[0]
        if isinstance(state, int):
            return httpx.Response(state, json={"message": "error"})
        return httpx.Response(200, json={"number": number, **state})


@pytest.fixture
def fake_gitea() -> FakeGitea:
    return FakeGitea()


@pytest.fixture
def gitea_config() -> GiteaConfig:
    return GiteaConfig(url="http://gitea.test", owner="acme", repo="erp", token="s3cr3t-token")


@pytest.fixture
def client(fake_gitea, gitea_config):
    gitea = GiteaClient(gitea_config, transport=httpx.MockTransport(fake_gitea.handler))
    yield gitea
    gitea.close()


@pytest.fixture
def settings() -> ResolverSettings:
    """Resolver settings with no poll delay."""
    return ResolverSettings(poll_interval_seconds=0, poll_max_attempts=5)
