#!/usr/bin/env python3
"""
client.py
---------
Async client for the GitHub repository used as the library's system of record.

Presents a small transactional file-store interface over the contents and
git-data APIs:

    - get_file / list_tree / list_directory: reads, not-found is None / []
    - put_file / delete_file: single-file writes guarded by the revision sha
    - batch_commit: many paths in one commit (blob -> tree -> commit -> ref)
    - upload_image: create-only image writes with bounded name disambiguation
    - write_deployment_marker: redeploy trigger for the static site

Every write carries the sha it is based on. A stale sha comes back as a
conflict (409, or 422 mentioning the sha / fast-forward); the client
re-reads the current state and retries with exponential backoff, up to
RemoteConfig.max_attempts, then raises RemoteConflictError.

Usage:
    async with RepositoryClient(config.remote, logger=logger) as remote:
        doc = await remote.get_file("data/entries/1.json")
        await remote.batch_commit(updates, "Create entry 7")

Tests inject an httpx.MockTransport through the `transport` argument.
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import asyncio
import base64
import hashlib
import json
import re
import time
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional, Sequence, Union
from urllib.parse import quote, unquote, urlsplit

# --- Third party imports ---
import httpx

# --- Local imports ---
from midweave.core.config import RemoteConfig
from midweave.core.exceptions import RemoteConflictError, RemoteStoreError
from midweave.core.logging_manager import MidweaveLogger, safe_logger

from .types import (
    DEPLOYMENT_DIR,
    IMAGES_DIR,
    DirectoryItem,
    FileUpdate,
    RemoteFile,
    children_of,
)

API_VERSION = "2022-11-28"

# Phrases GitHub uses in 422 bodies for stale-revision failures
_CONFLICT_HINTS = (
    "sha",
    "fast forward",
    "fast-forward",
    "does not match",
    "reference cannot be updated",
)

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")

# git tree node types; submodules ("commit") are skipped
_TREE_TYPES = {"blob": "file", "tree": "dir"}


def sanitize_filename(filename: str) -> str:
    """
    Reduce a caller-supplied name to a safe, upper-cased basename.

    Directories are discarded, anything outside [a-zA-Z0-9._-] becomes '_'.

    Examples:
        >>> sanitize_filename("../../etc/My Photo (1).png")
        'MY_PHOTO__1_.PNG'
    """
    basename = PurePosixPath(filename.replace("\\", "/")).name
    cleaned = _UNSAFE_NAME_CHARS.sub("_", basename).upper().lstrip(".")
    return cleaned or "IMAGE"


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


class RepositoryClient:
    """
    GitHub contents / git-data API wrapper.

    Attributes:
        config: Owner, repo, branch, token, URLs and retry settings
        logger: Optional MidweaveLogger
    """

    def __init__(
        self,
        config: RemoteConfig,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[MidweaveLogger] = None,
    ) -> None:
        """
        Args:
            config: Remote settings
            client: Pre-built AsyncClient (caller keeps ownership)
            transport: Transport for a client built here (e.g. MockTransport)
            logger: Optional logger
        """
        self.config = config
        self.logger = logger

        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
            "User-Agent": "midweave",
        }
        if config.token:
            headers["Authorization"] = f"Bearer {config.token}"

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=config.api_url,
            headers=headers,
            timeout=config.timeout,
            transport=transport,
        )

    # ---- Lifecycle ----
    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> RepositoryClient:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # ---- URL helpers ----
    @property
    def _repo(self) -> str:
        return f"/repos/{self.config.owner}/{self.config.repo}"

    def _contents_url(self, path: str) -> str:
        return f"{self._repo}/contents/{quote(path.strip('/'), safe='/')}"

    def raw_url(self, path: str) -> str:
        """Canonical public URL of a stored file."""
        return (
            f"{self.config.raw_url.rstrip('/')}/{self.config.owner}/"
            f"{self.config.repo}/{self.config.branch}/{path.lstrip('/')}"
        )

    @staticmethod
    def path_from_url(url: str) -> Optional[str]:
        """
        Map an image URL back to its repository path.

        Accepts canonical raw URLs, legacy URLs without a branch segment and
        bare relative paths; anything without an images/originals/ segment
        maps to None.

        Examples:
            >>> RepositoryClient.path_from_url(
            ...     "https://raw.githubusercontent.com/o/r/main/images/originals/A.PNG")
            'images/originals/A.PNG'
        """
        if not url:
            return None
        raw_path = urlsplit(url).path if "://" in url else url.split("?")[0].split("#")[0]
        raw_path = unquote(raw_path)
        marker = f"{IMAGES_DIR}/"
        index = raw_path.find(marker)
        if index < 0:
            return None
        path = raw_path[index:]
        return path if len(path) > len(marker) else None

    # ---- Request plumbing ----
    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text[:200]
        return str(data.get("message", "")) if isinstance(data, dict) else ""

    @classmethod
    def _is_conflict(cls, response: httpx.Response) -> bool:
        if response.status_code == 409:
            return True
        if response.status_code != 422:
            return False
        message = cls._error_message(response).lower()
        return any(hint in message for hint in _CONFLICT_HINTS)

    async def _request(
        self,
        method: str,
        url: str,
        *,
        path: Optional[str] = None,
        allow_404: bool = False,
        **kwargs: Any,
    ) -> Optional[httpx.Response]:
        """
        Send one API request.

        Returns:
            The response, or None for a 404 when allow_404 is set

        Raises:
            RemoteConflictError: On a stale-revision response
            RemoteStoreError: On any other failure
        """
        safe_logger(self.logger).log_debug(f"{method} {url}")
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise RemoteStoreError(f"{method} {url} failed: {e}", path=path) from e

        if response.status_code == 404 and allow_404:
            return None
        if self._is_conflict(response):
            raise RemoteConflictError(
                f"{method} {url} conflicted ({response.status_code})",
                status_code=response.status_code,
                path=path,
            )
        if response.is_error:
            detail = self._error_message(response)
            raise RemoteStoreError(
                f"{method} {url} returned {response.status_code}: {detail}",
                status_code=response.status_code,
                path=path,
            )
        return response

    @staticmethod
    def _json(response: httpx.Response, path: Optional[str] = None) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise RemoteStoreError(
                f"Malformed JSON from {response.request.url}", path=path
            ) from e

    async def _backoff(self, attempt: int, operation: str, path: str) -> None:
        delay = self.config.backoff_base * (2 ** (attempt - 1))
        safe_logger(self.logger).log_warning(
            f"Conflict during {operation}, retrying in {delay}s",
            {"path": path, "attempt": attempt, "max_attempts": self.config.max_attempts},
        )
        if delay > 0:
            await asyncio.sleep(delay)

    # ---- Reads ----
    async def _stat(self, path: str) -> Optional[Dict[str, Any]]:
        response = await self._request(
            "GET",
            self._contents_url(path),
            params={"ref": self.config.branch},
            allow_404=True,
            path=path,
        )
        if response is None:
            return None
        data = self._json(response, path)
        if isinstance(data, list) or data.get("type") != "file":
            raise RemoteStoreError(f"{path} is not a file", path=path)
        return data

    async def current_sha(self, path: str) -> Optional[str]:
        """Revision token of a file, or None if it does not exist."""
        data = await self._stat(path)
        return data["sha"] if data else None

    async def get_file(self, path: str) -> Optional[RemoteFile]:
        """
        Read a file.

        Returns:
            RemoteFile, or None when the path does not exist

        Raises:
            RemoteStoreError: If the path is a directory or the call fails
        """
        data = await self._stat(path)
        if data is None:
            return None

        encoded = data.get("content") or ""
        if not encoded and data.get("size", 0):
            # Files over 1MB come back without inline content
            blob = await self._request(
                "GET", f"{self._repo}/git/blobs/{data['sha']}", path=path
            )
            encoded = self._json(blob, path).get("content", "")

        try:
            content = base64.b64decode(encoded)
        except (ValueError, TypeError) as e:
            raise RemoteStoreError(f"Undecodable content at {path}", path=path) from e
        return RemoteFile(path=data.get("path", path), content=content, sha=data["sha"])

    async def list_tree(self) -> List[DirectoryItem]:
        """
        Every file and directory on the branch, from one recursive tree read.

        Returns:
            Items with repository-relative paths, sorted by path

        Raises:
            RemoteStoreError: If GitHub truncated the tree; a partial listing
                would make present files look absent
        """
        branch = self.config.branch
        response = await self._request(
            "GET",
            f"{self._repo}/git/trees/{quote(branch, safe='')}",
            params={"recursive": "1"},
            allow_404=True,
            path=branch,
        )
        if response is None:
            return []
        data = self._json(response, branch)
        if not isinstance(data, dict):
            raise RemoteStoreError(f"Malformed tree for {branch}", path=branch)
        if data.get("truncated"):
            raise RemoteStoreError(
                f"Tree listing of {branch} was truncated by the API", path=branch
            )

        items = []
        for node in data.get("tree") or []:
            kind = _TREE_TYPES.get(node.get("type"))
            node_path = node.get("path", "")
            if kind is None or not node_path:
                continue
            items.append(
                DirectoryItem(
                    name=node_path.rsplit("/", 1)[-1],
                    path=node_path,
                    type=kind,
                    sha=node.get("sha", ""),
                    size=int(node.get("size") or 0),
                )
            )
        return sorted(items, key=lambda item: item.path)

    async def list_directory(self, path: str) -> List[DirectoryItem]:
        """List the direct children of a directory; a missing one is []."""
        return children_of(await self.list_tree(), path)

    # ---- Single-file writes ----
    async def put_file(
        self,
        path: str,
        content: Union[str, bytes],
        message: Optional[str] = None,
        expected_sha: Optional[str] = None,
    ) -> str:
        """
        Create or update a file.

        Args:
            path: Repository path
            content: New contents (str is encoded as UTF-8)
            message: Commit message (default 'Create <path>' / 'Update <path>')
            expected_sha: Revision the write is based on; looked up when omitted

        Returns:
            The new blob sha

        Raises:
            RemoteConflictError: If conflicts persist past max_attempts
        """
        data = content.encode("utf-8") if isinstance(content, str) else content
        sha = expected_sha if expected_sha is not None else await self.current_sha(path)

        attempt = 1
        while True:
            body: Dict[str, Any] = {
                "message": message or (f"Update {path}" if sha else f"Create {path}"),
                "content": _b64(data),
                "branch": self.config.branch,
            }
            if sha:
                body["sha"] = sha
            try:
                response = await self._request(
                    "PUT", self._contents_url(path), json=body, path=path
                )
                result = self._json(response, path)
                return (result.get("content") or {}).get("sha", "")
            except RemoteConflictError as e:
                if attempt >= self.config.max_attempts:
                    raise RemoteConflictError(
                        f"Could not write {path} after {attempt} attempts",
                        status_code=e.status_code,
                        path=path,
                    ) from e
                await self._backoff(attempt, "put_file", path)
                attempt += 1
                sha = await self.current_sha(path)

    async def _create_file(self, path: str, data: bytes, message: str) -> bool:
        """PUT without a sha; False when the path is already taken."""
        body = {"message": message, "content": _b64(data), "branch": self.config.branch}
        try:
            await self._request("PUT", self._contents_url(path), json=body, path=path)
        except RemoteConflictError:
            return False
        return True

    async def delete_file(self, path: str, message: Optional[str] = None) -> bool:
        """
        Delete a file.

        Returns:
            True if a file was deleted, False if it was already absent

        Raises:
            RemoteConflictError: If conflicts persist past max_attempts
        """
        attempt = 1
        while True:
            sha = await self.current_sha(path)
            if sha is None:
                safe_logger(self.logger).log_debug(f"Nothing to delete at {path}")
                return False
            body = {
                "message": message or f"Delete {path}",
                "sha": sha,
                "branch": self.config.branch,
            }
            try:
                response = await self._request(
                    "DELETE", self._contents_url(path), json=body, path=path, allow_404=True
                )
                return response is not None
            except RemoteConflictError as e:
                if attempt >= self.config.max_attempts:
                    raise RemoteConflictError(
                        f"Could not delete {path} after {attempt} attempts",
                        status_code=e.status_code,
                        path=path,
                    ) from e
                await self._backoff(attempt, "delete_file", path)
                attempt += 1

    # ---- Batch commits ----
    async def batch_commit(
        self, updates: Sequence[FileUpdate], message: str
    ) -> Optional[str]:
        """
        Write several paths as one commit on the branch tip.

        Sequence: read ref -> read commit -> blobs -> tree on the base tree
        -> commit -> fast-forward ref. The ref only moves once the whole tree
        exists, so no partial state is ever visible. A moved tip restarts
        the sequence with exponential backoff.

        Args:
            updates: Paths to write; content=None deletes the path
            message: Commit message

        Returns:
            The new commit sha, or None for an empty update list

        Raises:
            RemoteConflictError: If the tip keeps moving past max_attempts
        """
        if not updates:
            return None

        attempt = 1
        while True:
            try:
                commit_sha = await self._commit_once(updates, message)
            except RemoteConflictError as e:
                if attempt >= self.config.max_attempts:
                    raise RemoteConflictError(
                        f"Batch commit rejected after {attempt} attempts",
                        status_code=e.status_code,
                    ) from e
                await self._backoff(attempt, "batch_commit", self.config.branch)
                attempt += 1
                continue

            safe_logger(self.logger).log_operation(
                "batch_commit",
                {
                    "commit": commit_sha,
                    "paths": [u.path for u in updates],
                    "attempts": attempt,
                },
            )
            return commit_sha

    async def _commit_once(self, updates: Sequence[FileUpdate], message: str) -> str:
        branch = self.config.branch
        ref = self._json(
            await self._request("GET", f"{self._repo}/git/ref/heads/{branch}")
        )
        head_sha = ref["object"]["sha"]

        head = self._json(
            await self._request("GET", f"{self._repo}/git/commits/{head_sha}")
        )
        base_tree = head["tree"]["sha"]

        tree: List[Dict[str, Any]] = []
        for update in updates:
            blob_sha: Optional[str] = None
            if not update.is_deletion:
                blob = self._json(
                    await self._request(
                        "POST",
                        f"{self._repo}/git/blobs",
                        json={"content": _b64(update.as_bytes()), "encoding": "base64"},
                        path=update.path,
                    ),
                    update.path,
                )
                blob_sha = blob["sha"]
            tree.append(
                {"path": update.path, "mode": "100644", "type": "blob", "sha": blob_sha}
            )

        new_tree = self._json(
            await self._request(
                "POST",
                f"{self._repo}/git/trees",
                json={"base_tree": base_tree, "tree": tree},
            )
        )
        commit = self._json(
            await self._request(
                "POST",
                f"{self._repo}/git/commits",
                json={"message": message, "tree": new_tree["sha"], "parents": [head_sha]},
            )
        )
        await self._request(
            "PATCH",
            f"{self._repo}/git/refs/heads/{branch}",
            json={"sha": commit["sha"], "force": False},
        )
        return commit["sha"]

    # ---- Images ----
    def candidate_paths(self, data: bytes, filename: str) -> List[str]:
        """
        Ordered names tried for an upload, most readable first.

        plain -> <timestamp>_<name> -> <timestamp>_<hash8>_<name>
        """
        name = sanitize_filename(filename)
        stamp = int(time.time() * 1000)
        digest = hashlib.sha256(data).hexdigest()[:8]
        return [
            f"{IMAGES_DIR}/{name}",
            f"{IMAGES_DIR}/{stamp}_{name}",
            f"{IMAGES_DIR}/{stamp}_{digest}_{name}",
        ]

    async def upload_image(self, data: bytes, filename: str) -> str:
        """
        Store an image under images/originals/ without overwriting anything.

        Args:
            data: Image bytes
            filename: Caller-supplied name; only the sanitized basename is kept

        Returns:
            Canonical raw URL of the stored file

        Raises:
            RemoteConflictError: If every candidate name is taken
        """
        candidates = self.candidate_paths(data, filename)
        for path in candidates:
            name = path.rsplit("/", 1)[-1]
            if await self._create_file(path, data, f"Upload image: {name}"):
                safe_logger(self.logger).log_operation(
                    "upload_image", {"path": path, "size": len(data)}
                )
                return self.raw_url(path)
            safe_logger(self.logger).log_debug(f"Upload name taken: {path}")

        raise RemoteConflictError(
            f"No free name for {filename} after {len(candidates)} candidates",
            path=candidates[-1],
        )

    # ---- Deployment ----
    async def write_deployment_marker(self) -> str:
        """
        Write data/.deployment/<timestamp>.json to trigger a site rebuild.

        Returns:
            Path of the marker file
        """
        now = datetime.now(timezone.utc)
        path = f"{DEPLOYMENT_DIR}/{int(now.timestamp() * 1000)}.json"
        body = json.dumps({"timestamp": now.isoformat(), "source": "midweave"}, indent=2)
        await self.put_file(path, body, message="Trigger deployment", expected_sha="")
        return path
