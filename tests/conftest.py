"""
conftest.py
-----------
Shared pytest fixtures for Midweave tests.

Provides fixtures for:
- An in-memory GitHub repository served through httpx.MockTransport
- Remote client, cache database and sync engine wiring
- Entry document factories and generated image bytes
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import base64
import hashlib
import itertools
import json
from io import BytesIO
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

# --- Third party imports ---
import httpx
import pytest
from PIL import Image

# --- Local imports ---
from midweave.core.config import RemoteConfig
from midweave.core.logging_manager import MidweaveLogger
from midweave.database import CacheDB
from midweave.remote import RepositoryClient
from midweave.storage import LibraryStorage
from midweave.sync import SyncEngine

OWNER = "curator"
REPO = "gallery"
BRANCH = "main"
RAW_BASE = f"https://raw.githubusercontent.com/{OWNER}/{REPO}/{BRANCH}"


# ----- Fake GitHub -----


def _blob_sha(content: bytes) -> str:
    return hashlib.sha1(b"blob %d\0" % len(content) + content).hexdigest()


class FakeGitHub:
    """
    Minimal in-memory model of the GitHub contents and git-data APIs.

    Files live in a flat {path: bytes} dict that is the tree of the branch
    tip. Every contents write or ref update advances the tip, so stale
    revision tokens are rejected the way GitHub rejects them.

    Attributes:
        files: Current branch contents
        calls: (method, path) of every request, in order
        messages: Commit messages, in order
        listing_limit: Max items of a contents-API directory listing
            (GitHub stops at 1000 without saying so)
        tree_limit: Max nodes of a recursive tree before it is marked
            truncated (None: unlimited)
    """

    def __init__(self) -> None:
        self.files: Dict[str, bytes] = {}
        self.calls: List[Tuple[str, str]] = []
        self.messages: List[str] = []
        self._blobs: Dict[str, bytes] = {}
        self._trees: Dict[str, Dict[str, bytes]] = {}
        self._commits: Dict[str, Dict[str, Any]] = {}
        self._counter = itertools.count(1)
        self._failures: List[Dict[str, Any]] = []
        self.head = self._snapshot("initial", parent=None)
        self.prefix = f"/repos/{OWNER}/{REPO}"
        self.tree_limit: Optional[int] = None
        self.listing_limit = 1000

    # ---- Test helpers ----
    def seed(self, path: str, content: Any) -> None:
        """Place a file directly on the branch (no commit recorded)."""
        if isinstance(content, (dict, list)):
            content = json.dumps(content, indent=2)
        if isinstance(content, str):
            content = content.encode("utf-8")
        self.files[path] = content
        self.head = self._snapshot("seed", parent=self.head)

    def json_file(self, path: str) -> Any:
        return json.loads(self.files[path])

    def fail(
        self,
        method: str,
        fragment: str,
        status: int = 409,
        message: str = "conflict",
        times: int = 1,
    ) -> None:
        """Make the next `times` matching requests fail with `status`."""
        self._failures.append(
            {
                "method": method,
                "fragment": fragment,
                "status": status,
                "message": message,
                "times": times,
            }
        )

    def count(self, method: str, fragment: str = "") -> int:
        return sum(1 for m, p in self.calls if m == method and fragment in p)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    # ---- Internals ----
    def _snapshot(self, message: str, parent: Optional[str]) -> str:
        sha = f"commit{next(self._counter):04d}"
        tree_sha = f"tree{next(self._counter):04d}"
        self._trees[tree_sha] = dict(self.files)
        self._commits[sha] = {"tree": tree_sha, "parents": [parent] if parent else []}
        return sha

    def _commit_contents(self, message: str) -> str:
        self.messages.append(message)
        self.head = self._snapshot(message, parent=self.head)
        return self.head

    @staticmethod
    def _reply(status: int, payload: Any) -> httpx.Response:
        return httpx.Response(status, json=payload)

    def _injected(self, method: str, path: str) -> Optional[httpx.Response]:
        for failure in self._failures:
            if failure["times"] > 0 and failure["method"] == method and failure["fragment"] in path:
                failure["times"] -= 1
                return self._reply(failure["status"], {"message": failure["message"]})
        return None

    def _file_payload(self, path: str) -> Dict[str, Any]:
        content = self.files[path]
        return {
            "type": "file",
            "name": path.rsplit("/", 1)[-1],
            "path": path,
            "sha": _blob_sha(content),
            "size": len(content),
            "encoding": "base64",
            "content": base64.b64encode(content).decode("ascii"),
        }

    def _listing(self, directory: str) -> Optional[List[Dict[str, Any]]]:
        prefix = directory.rstrip("/") + "/"
        items: Dict[str, Dict[str, Any]] = {}
        for path, content in self.files.items():
            if not path.startswith(prefix):
                continue
            rest = path[len(prefix):]
            name = rest.split("/", 1)[0]
            if "/" in rest:
                items.setdefault(
                    name, {"type": "dir", "name": name, "path": prefix + name, "sha": ""}
                )
            else:
                items[name] = {
                    "type": "file",
                    "name": name,
                    "path": path,
                    "sha": _blob_sha(content),
                    "size": len(content),
                }
        listing = [items[k] for k in sorted(items)][: self.listing_limit]
        return listing or None

    def _tree(self) -> Dict[str, Any]:
        nodes: Dict[str, Dict[str, Any]] = {}
        for path, content in self.files.items():
            parts = path.split("/")
            for depth in range(1, len(parts)):
                folder = "/".join(parts[:depth])
                nodes.setdefault(folder, {"path": folder, "type": "tree", "sha": ""})
            nodes[path] = {
                "path": path,
                "type": "blob",
                "sha": _blob_sha(content),
                "size": len(content),
            }
        tree = [nodes[k] for k in sorted(nodes)]
        truncated = self.tree_limit is not None and len(tree) > self.tree_limit
        if truncated:
            tree = tree[: self.tree_limit]
        return {"sha": self._commits[self.head]["tree"], "tree": tree, "truncated": truncated}

    # ---- Request handling ----
    def handle(self, request: httpx.Request) -> httpx.Response:
        method = request.method
        path = request.url.path
        self.calls.append((method, path))

        injected = self._injected(method, path)
        if injected is not None:
            return injected

        if not path.startswith(self.prefix):
            return self._reply(404, {"message": "Not Found"})
        route = path[len(self.prefix):]
        body = json.loads(request.content) if request.content else {}

        if route.startswith("/contents/"):
            return self._contents(method, route[len("/contents/"):], body)
        if route.startswith("/git/"):
            return self._git(method, route[len("/git/"):], body)
        return self._reply(404, {"message": "Not Found"})

    def _contents(self, method: str, file_path: str, body: Dict[str, Any]) -> httpx.Response:
        exists = file_path in self.files
        current = _blob_sha(self.files[file_path]) if exists else None

        if method == "GET":
            if exists:
                return self._reply(200, self._file_payload(file_path))
            listing = self._listing(file_path)
            if listing is not None:
                return self._reply(200, listing)
            return self._reply(404, {"message": "Not Found"})

        if method == "PUT":
            if exists and "sha" not in body:
                return self._reply(
                    422, {"message": 'Invalid request.\n\n"sha" wasn\'t supplied.'}
                )
            if exists and body["sha"] != current:
                return self._reply(
                    409, {"message": f"{file_path} does not match {body['sha']}"}
                )
            content = base64.b64decode(body["content"])
            self.files[file_path] = content
            commit = self._commit_contents(body.get("message", ""))
            return self._reply(
                201 if not exists else 200,
                {
                    "content": {"path": file_path, "sha": _blob_sha(content)},
                    "commit": {"sha": commit},
                },
            )

        if method == "DELETE":
            if not exists:
                return self._reply(404, {"message": "Not Found"})
            if body.get("sha") != current:
                return self._reply(409, {"message": f"{file_path} does not match"})
            del self.files[file_path]
            commit = self._commit_contents(body.get("message", ""))
            return self._reply(200, {"commit": {"sha": commit}})

        return self._reply(405, {"message": "Method not allowed"})

    def _git(self, method: str, route: str, body: Dict[str, Any]) -> httpx.Response:
        if method == "GET" and route == f"ref/heads/{BRANCH}":
            return self._reply(200, {"object": {"sha": self.head, "type": "commit"}})

        if method == "GET" and route == f"trees/{BRANCH}":
            return self._reply(200, self._tree())

        if method == "GET" and route.startswith("commits/"):
            sha = route[len("commits/"):]
            commit = self._commits.get(sha)
            if commit is None:
                return self._reply(404, {"message": "Not Found"})
            return self._reply(200, {"sha": sha, "tree": {"sha": commit["tree"]}})

        if method == "GET" and route.startswith("blobs/"):
            sha = route[len("blobs/"):]
            if sha not in self._blobs:
                return self._reply(404, {"message": "Not Found"})
            encoded = base64.b64encode(self._blobs[sha]).decode("ascii")
            return self._reply(200, {"sha": sha, "content": encoded, "encoding": "base64"})

        if method == "POST" and route == "blobs":
            content = base64.b64decode(body["content"])
            sha = _blob_sha(content)
            self._blobs[sha] = content
            return self._reply(201, {"sha": sha})

        if method == "POST" and route == "trees":
            files = dict(self._trees[body["base_tree"]])
            for item in body["tree"]:
                if item["sha"] is None:
                    files.pop(item["path"], None)
                else:
                    files[item["path"]] = self._blobs[item["sha"]]
            tree_sha = f"tree{next(self._counter):04d}"
            self._trees[tree_sha] = files
            return self._reply(201, {"sha": tree_sha})

        if method == "POST" and route == "commits":
            sha = f"commit{next(self._counter):04d}"
            self._commits[sha] = {
                "tree": body["tree"],
                "parents": list(body["parents"]),
                "message": body["message"],
            }
            return self._reply(201, {"sha": sha})

        if method == "PATCH" and route == f"refs/heads/{BRANCH}":
            commit = self._commits.get(body["sha"])
            if commit is None:
                return self._reply(422, {"message": "Object does not exist"})
            if commit["parents"] != [self.head] and not body.get("force"):
                return self._reply(422, {"message": "Update is not a fast forward"})
            self.head = body["sha"]
            self.files = dict(self._trees[commit["tree"]])
            self.messages.append(commit["message"])
            return self._reply(200, {"object": {"sha": self.head}})

        return self._reply(404, {"message": "Not Found"})


# ----- Factories -----


def image_url(name: str) -> str:
    return f"{RAW_BASE}/images/originals/{name}"


def make_entry_doc(
    entry_id: Optional[str] = None,
    title: str = "Misty harbour",
    sref: str = "1234567",
    images: Optional[List[str]] = None,
    **overrides: Any,
) -> Dict[str, Any]:
    """Entry document in its JSON wire form."""
    names = images if images is not None else ["HARBOUR.PNG"]
    doc: Dict[str, Any] = {
        "title": title,
        "description": "Soft watercolor washes over a quiet port",
        "images": [
            {"url": image_url(name), "thumbnail": image_url(name), "size": 10}
            for name in names
        ],
        "parameters": {"sref": sref, "prompt": "harbour at dawn", "chaos": 10},
        "adminMetadata": {
            "createdAt": "2024-05-01T10:00:00.000Z",
            "lastModified": "2024-05-01T10:00:00.000Z",
            "featured": False,
            "curatorNotes": "",
        },
    }
    if entry_id is not None:
        doc["id"] = entry_id
    doc.update(overrides)
    return doc


def make_png(color: str = "red", size: Tuple[int, int] = (4, 4), fmt: str = "PNG") -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color=color).save(buffer, format=fmt)
    return buffer.getvalue()


def seed_entry(github: FakeGitHub, entry_id: str, **kwargs: Any) -> Dict[str, Any]:
    """Seed an entry document and every image it references."""
    doc = make_entry_doc(entry_id, **kwargs)
    github.seed(f"data/entries/{entry_id}.json", doc)
    for img in doc["images"]:
        name = img["url"].rsplit("/", 1)[-1]
        github.seed(f"images/originals/{name}", make_png())
    return doc


# ----- Fixtures -----


@pytest.fixture
def tmp_dir(tmp_path):
    """Temporary directory for test file operations."""
    return Path(tmp_path)


@pytest.fixture
def test_logger(tmp_dir):
    """MidweaveLogger writing into the temporary directory."""
    return MidweaveLogger(tmp_dir / "logs", component_name="test")


@pytest.fixture
def github():
    """Fresh in-memory GitHub repository."""
    return FakeGitHub()


@pytest.fixture
def remote_config():
    """Remote settings pointing at the fake repository, without backoff delays."""
    return RemoteConfig(
        owner=OWNER,
        repo=REPO,
        branch=BRANCH,
        token="test-token",
        max_attempts=3,
        backoff_base=0,
    )


@pytest.fixture
async def remote(remote_config, github):
    """RepositoryClient wired to the fake repository."""
    client = RepositoryClient(remote_config, transport=github.transport)
    yield client
    await client.aclose()


@pytest.fixture
def cache(tmp_dir):
    """Empty cache database in the temporary directory."""
    db = CacheDB(tmp_dir / "cache" / "midweave.db")
    yield db
    db.close()


@pytest.fixture
def engine(remote, cache):
    """SyncEngine over the fake remote and the temporary cache."""
    return SyncEngine(remote, cache)


@pytest.fixture
async def storage(remote, cache, engine):
    """LibraryStorage facade over the fake remote and the temporary cache."""
    store = LibraryStorage(remote, cache, engine=engine)
    yield store
    await engine.wait_idle()


@pytest.fixture
def make_image():
    """Factory producing small encoded images (PNG unless fmt is given)."""
    return make_png


@pytest.fixture
def entry_doc():
    """Factory producing entry documents in their JSON wire form."""
    return make_entry_doc


@pytest.fixture
def seeded(github):
    """Seed an entry and its images into the fake repository."""

    def _seed(entry_id: str, **kwargs: Any) -> Dict[str, Any]:
        return seed_entry(github, entry_id, **kwargs)

    return _seed
