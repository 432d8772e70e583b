"""
Remote store package: GitHub repository used as a JSON + blob database.
"""
from .client import RepositoryClient, sanitize_filename
from .types import (
    DEPLOYMENT_DIR,
    ENTRIES_DIR,
    IMAGES_DIR,
    DirectoryItem,
    FileUpdate,
    RemoteFile,
    children_of,
    deletion_marker_path,
    entry_path,
)

__all__ = [
    "RepositoryClient",
    "sanitize_filename",
    "DEPLOYMENT_DIR",
    "ENTRIES_DIR",
    "IMAGES_DIR",
    "DirectoryItem",
    "FileUpdate",
    "RemoteFile",
    "children_of",
    "deletion_marker_path",
    "entry_path",
]
