"""
types.py
--------
Value types and path layout of the remote store.

Layout:
    data/entries/<id>.json           one JSON document per entry
    data/entries/.deleted-<id>       deletion marker for unresolved ids
    images/originals/<name>          uploaded image blobs
    data/.deployment/<ts>.json       redeploy trigger for the static site
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Union

from midweave.dataclasses.parsers.entry_parser import DELETION_MARKER_PREFIX

ENTRIES_DIR = "data/entries"
IMAGES_DIR = "images/originals"
DEPLOYMENT_DIR = "data/.deployment"


def entry_path(entry_id: str) -> str:
    return f"{ENTRIES_DIR}/{entry_id}.json"


def deletion_marker_path(entry_id: str) -> str:
    return f"{ENTRIES_DIR}/{DELETION_MARKER_PREFIX}{entry_id}"


@dataclass(frozen=True)
class RemoteFile:
    """
    A file read from the remote store.

    Attributes:
        path: Repository-relative path
        content: Decoded bytes
        sha: Revision token required to update or delete the file
    """

    path: str
    content: bytes
    sha: str

    @property
    def text(self) -> str:
        return self.content.decode("utf-8")


@dataclass(frozen=True)
class DirectoryItem:
    """One entry of a directory listing ('file' or 'dir')."""

    name: str
    path: str
    type: str
    sha: str = ""
    size: int = 0

    @property
    def is_file(self) -> bool:
        return self.type == "file"


def children_of(items: Iterable[DirectoryItem], directory: str) -> List[DirectoryItem]:
    """Direct children of `directory` among repository-relative tree items."""
    prefix = directory.strip("/") + "/"
    return [
        item
        for item in items
        if item.path.startswith(prefix) and "/" not in item.path[len(prefix):]
    ]


@dataclass(frozen=True)
class FileUpdate:
    """
    One path of a batch commit.

    content=None deletes the path in the new tree.
    """

    path: str
    content: Optional[Union[str, bytes]]
    message: str = ""

    @property
    def is_deletion(self) -> bool:
        return self.content is None

    def as_bytes(self) -> bytes:
        if self.content is None:
            return b""
        if isinstance(self.content, str):
            return self.content.encode("utf-8")
        return self.content
