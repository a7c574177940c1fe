"""ObjectStore implementation over the GitHub git-data REST API.

Every request goes through a :class:`~branchsync.ratelimit.RateLimitedExecutor`.
Responses are classified here: quota exhaustion becomes
:class:`RateLimitExceeded`, network failures and 5xx become
:class:`TransientError`, everything else maps onto the sync error taxonomy.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from urllib.parse import quote, urlparse

import httpx

from .exceptions import (
    ConflictError,
    FatalConfigurationError,
    NotFoundError,
    RateLimitExceeded,
    RefNotFoundError,
    RemoteError,
    TransientError,
)
from .plan import Delete, TreeOp
from .ratelimit import RateLimitedExecutor, RateLimitInfo
from .store import BlobContent, CommitInfo, ObjectStore
from .tree import MODE_SUBMODULE, MODE_TREE, TreeEntry

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
API_VERSION = "2022-11-28"


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.reason_phrase


def classify_response(response: httpx.Response, operation: str) -> httpx.Response:
    """Return *response* if successful, else raise the matching error."""
    status = response.status_code
    if status < 400:
        return response
    message = f"{operation}: {status} {_error_message(response)}"
    info = RateLimitInfo.from_headers(response.headers)
    if status in (403, 429):
        if info is not None and info.retry_after is not None:
            raise RateLimitExceeded(message, info, secondary=True)
        if "secondary rate limit" in message.lower():
            raise RateLimitExceeded(message, info, secondary=True)
        if info is not None and info.remaining == 0:
            raise RateLimitExceeded(message, info)
        if status == 429:
            raise RateLimitExceeded(message, info)
    if status >= 500:
        raise TransientError(message, status, info)
    if status == 404:
        raise NotFoundError(message)
    if status in (409, 422):
        raise ConflictError(message)
    if status == 401:
        raise FatalConfigurationError(message)
    raise RemoteError(message, status)


class GitHubStore(ObjectStore):
    """One GitHub repository seen through its git-data endpoints.

    Args:
        owner: Repository owner (user or organization).
        repo: Repository name.
        token: Access token (installation or personal).
        executor: Executor all requests go through; a default one if None.
        api_url: Base URL of the REST API.
        client: Pre-built ``httpx.Client`` (tests pass one with a mock
            transport); the store closes only clients it created.
    """

    def __init__(
        self,
        owner: str,
        repo: str,
        *,
        token: str | None = None,
        executor: RateLimitedExecutor | None = None,
        api_url: str = DEFAULT_API_URL,
        client: httpx.Client | None = None,
        timeout: float = 30.0,
    ):
        if not owner or not repo:
            raise FatalConfigurationError("GitHub owner and repository are required")
        self.owner = owner
        self.repo = repo
        self.label = f"{owner}/{repo}"
        self.executor = executor or RateLimitedExecutor()
        self._endpoint = urlparse(api_url).netloc or api_url
        self._owns_client = client is None
        if client is None:
            headers = {
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": API_VERSION,
            }
            if token:
                headers["Authorization"] = f"Bearer {token}"
            client = httpx.Client(base_url=api_url, headers=headers, timeout=timeout)
        self._client = client
        self._prefix = f"/repos/{quote(owner, safe='')}/{quote(repo, safe='')}"

    def __repr__(self) -> str:
        return f"GitHubStore({self.label!r})"

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, operation: str, **kwargs) -> httpx.Response:
        url = self._prefix + path

        def call() -> httpx.Response:
            try:
                response = self._client.request(method, url, **kwargs)
            except httpx.TransportError as exc:
                raise TransientError(f"{operation}: {exc}") from exc
            return classify_response(response, operation)

        logger.debug("[%s] %s %s", self.label, method, url)
        return self.executor.execute(call, operation=f"[{self.label}] {operation}", endpoint=self._endpoint)

    # -- refs ---------------------------------------------------------------

    def get_ref(self, name: str) -> str:
        try:
            response = self._request("GET", f"/git/ref/heads/{quote(name)}", f"get {name} ref")
        except NotFoundError:
            raise RefNotFoundError(name)
        return response.json()["object"]["sha"]

    def update_ref(self, name: str, commit_id: str, *, force: bool = False) -> None:
        self._request(
            "PATCH", f"/git/refs/heads/{quote(name)}", f"update {name} ref",
            json={"sha": commit_id, "force": force},
        )

    # -- reads --------------------------------------------------------------

    def get_commit(self, commit_id: str) -> CommitInfo:
        data = self._request("GET", f"/git/commits/{commit_id}", f"get commit {commit_id[:7]}").json()
        return CommitInfo(
            data["sha"],
            data["tree"]["sha"],
            tuple(p["sha"] for p in data.get("parents", [])),
        )

    def _list_tree(self, tree_id: str, recursive: bool) -> tuple[list[TreeEntry], bool]:
        params = {"recursive": "1"} if recursive else None
        data = self._request("GET", f"/git/trees/{tree_id}", f"get tree {tree_id[:7]}", params=params).json()
        entries = [
            TreeEntry(item["path"], item["mode"], item["sha"], item["type"])
            for item in data.get("tree", [])
        ]
        return entries, bool(data.get("truncated"))

    def get_tree(self, tree_id: str, *, recursive: bool = False) -> list[TreeEntry]:
        entries, truncated = self._list_tree(tree_id, recursive)
        if not (recursive and truncated):
            return entries
        logger.warning("[%s] Tree %s listing truncated, walking sub-trees", self.label, tree_id[:7])
        return list(self._walk(tree_id, ""))

    def _walk(self, tree_id: str, prefix: str):
        entries, _ = self._list_tree(tree_id, False)
        for entry in entries:
            path = f"{prefix}/{entry.path}" if prefix else entry.path
            yield entry._replace(path=path)
            if entry.kind == "tree" and entry.mode == MODE_TREE:
                yield from self._walk(entry.id, path)

    def get_blob(self, blob_id: str) -> BlobContent:
        data = self._request("GET", f"/git/blobs/{blob_id}", f"get blob {blob_id[:7]}").json()
        return BlobContent(data["content"], data.get("encoding", "base64"))

    # -- writes -------------------------------------------------------------

    def create_blob(self, content: str, encoding: str) -> str:
        response = self._request("POST", "/git/blobs", "create blob", json={"content": content, "encoding": encoding})
        return response.json()["sha"]

    def create_tree(self, base_tree_id: str | None, ops: Sequence[TreeOp]) -> str:
        tree = []
        for op in ops:
            if isinstance(op, Delete):
                # A null sha removes the path from the base tree
                tree.append({"path": op.path, "mode": "100644", "type": "blob", "sha": None})
            else:
                kind = "commit" if op.mode == MODE_SUBMODULE else "blob"
                tree.append({"path": op.path, "mode": op.mode, "type": kind, "sha": op.id})
        body: dict = {"tree": tree}
        if base_tree_id is not None:
            body["base_tree"] = base_tree_id
        return self._request("POST", "/git/trees", "create tree", json=body).json()["sha"]

    def create_commit(self, message: str, tree_id: str, parents: Sequence[str]) -> str:
        body = {"message": message, "tree": tree_id, "parents": list(parents)}
        return self._request("POST", "/git/commits", "create commit", json=body).json()["sha"]

    def create_merge(self, base: str, head: str, message: str) -> str | None:
        body = {"base": base, "head": head, "commit_message": message}
        try:
            response = self._request("POST", "/merges", f"merge {head} into {base}", json=body)
        except NotFoundError:
            raise RefNotFoundError(f"{base} or {head}")
        if response.status_code == 204:
            return None
        return response.json()["sha"]
