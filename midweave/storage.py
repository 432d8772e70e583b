#!/usr/bin/env python3
"""
storage.py
----------
Storage facade: the single entry point for reading and writing the library.

Reads are served from the local cache. An empty cache triggers a full
resync before answering; a stale one (older than stale_after_seconds)
schedules a background resync and answers from the cache immediately.

Writes go through the sync engine:
    save_entry    validate -> cache insert (assigns id) -> one batch commit
                  of metadata + uploaded images; a failed commit removes the
                  cache row again
    update_entry  merge -> bump lastModified -> validate -> cache -> remote
    delete_entry  remote first, cache last

Usage:
    config = MidweaveConfig.load()
    async with LibraryStorage.from_config(config, logger=logger) as storage:
        entries = await storage.get_all_entries()
        new_id = await storage.save_entry(EntryDraft(title="Dusk", ...))
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import asyncio
import copy
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set

# --- Third party imports ---
import httpx

# --- Local imports ---
from midweave.core.config import MidweaveConfig
from midweave.core.exceptions import (
    DatabaseError,
    MidweaveError,
    PartialBatchError,
    RemoteConflictError,
    RemoteStoreError,
)
from midweave.core.logging_manager import MidweaveLogger, safe_logger
from midweave.core.validators import DataValidator
from midweave.dataclasses.library_entry import (
    AIAnalysis,
    EntryDraft,
    ImageUpload,
    LibraryEntry,
    utc_now_iso,
)
from midweave.dataclasses.parsers import require_entry
from midweave.database import CacheDB
from midweave.remote import IMAGES_DIR, FileUpdate, RepositoryClient, sanitize_filename
from midweave.sync import ResyncReport, SyncEngine

# Placeholder id for drafts; the cache assigns the real one
UNSAVED_ID = "unsaved"

# Partial-update keys routed into adminMetadata
_ADMIN_KEYS = ("featured", "curatorNotes")


class LibraryStorage:
    """
    Public operation set consumed by the CLI and any UI layer.

    Attributes:
        remote: RepositoryClient
        cache: CacheDB
        engine: SyncEngine shared by all operations
        stale_after_seconds: Age after which reads trigger a background resync
    """

    def __init__(
        self,
        remote: RepositoryClient,
        cache: CacheDB,
        logger: Optional[MidweaveLogger] = None,
        stale_after_seconds: float = 300.0,
        engine: Optional[SyncEngine] = None,
    ) -> None:
        self.remote = remote
        self.cache = cache
        self.logger = logger
        self.stale_after_seconds = stale_after_seconds
        self.engine = engine or SyncEngine(remote, cache, logger)
        self._background: Optional[asyncio.Task] = None

    @classmethod
    def from_config(
        cls,
        config: MidweaveConfig,
        logger: Optional[MidweaveLogger] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> LibraryStorage:
        """Build client, cache and engine from a MidweaveConfig."""
        remote = RepositoryClient(config.remote, transport=transport, logger=logger)
        cache = CacheDB(config.cache.path, logger=logger)
        return cls(
            remote,
            cache,
            logger=logger,
            stale_after_seconds=config.cache.stale_after_seconds,
        )

    # ---- Lifecycle ----
    async def aclose(self) -> None:
        """Let in-flight resyncs finish, then release the client and cache."""
        await self.engine.wait_idle()
        if self._background is not None and not self._background.done():
            await asyncio.wait({self._background})
        await self.remote.aclose()
        self.cache.close()

    async def __aenter__(self) -> LibraryStorage:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def _ensure_populated(self) -> None:
        if self.cache.count_entries() == 0:
            safe_logger(self.logger).log_info("Cache empty, resyncing before read")
            await self.engine.resync_library()

    async def get_all_entries(self, revalidate: bool = True) -> List[LibraryEntry]:
        """
        All entries, most recently modified first.

        Args:
            revalidate: Schedule a background resync when the cache is stale

        Raises:
            SyncIntegrityError: If the cache was empty and the resync failed
        """
        await self._ensure_populated()
        if revalidate:
            self.revalidate_if_stale()
        return self.cache.get_all_entries()

    async def search_entries(self, query: str) -> List[LibraryEntry]:
        """Case-insensitive substring search over text and AI-analysis fields."""
        await self._ensure_populated()
        return self.cache.search_entries(query)

    async def get_entry(self, entry_id: str) -> Optional[LibraryEntry]:
        await self._ensure_populated()
        return self.cache.get_entry(entry_id)

    async def get_featured_entries(self) -> List[LibraryEntry]:
        await self._ensure_populated()
        return self.cache.get_featured_entries()

    # -------------------------------------------------------------------------
    # Staleness
    # -------------------------------------------------------------------------

    def is_stale(self, now: Optional[datetime] = None) -> bool:
        """True if there was no successful resync within stale_after_seconds."""
        state = self.cache.last_sync()
        if state is None or not state.success:
            return True
        now = now or datetime.now(timezone.utc)
        age = (now - state.synced_at_utc).total_seconds()
        return age > self.stale_after_seconds

    def revalidate_if_stale(self) -> Optional[asyncio.Task]:
        """
        Schedule a background resync if the cache is stale.

        Must be called from a running event loop. Errors of the background
        resync are logged, never raised to the reader.

        Returns:
            The scheduled task, or None when nothing was scheduled
        """
        if self.engine.resync_in_progress or not self.is_stale():
            return None
        if self._background is not None and not self._background.done():
            return None
        self._background = asyncio.ensure_future(self._background_resync())
        return self._background

    async def _background_resync(self) -> None:
        try:
            await self.engine.resync_library()
        except MidweaveError as e:
            safe_logger(self.logger).log_error(e, {"operation": "background_resync"})

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def _plan_uploads(
        self, uploads: Sequence[ImageUpload]
    ) -> List[Dict[str, Any]]:
        """Pick a free images/originals/ path for every upload."""
        taken: Set[str] = {
            item.path for item in await self.remote.list_directory(IMAGES_DIR)
        }
        planned: List[Dict[str, Any]] = []
        for upload in uploads:
            path = next(
                (
                    candidate
                    for candidate in self.remote.candidate_paths(upload.data, upload.filename)
                    if candidate not in taken
                ),
                None,
            )
            if path is None:
                raise RemoteConflictError(
                    f"No free name for {upload.filename}", path=IMAGES_DIR
                )
            taken.add(path)
            planned.append({"path": path, "upload": upload})
        return planned

    async def save_entry(self, draft: EntryDraft) -> str:
        """
        Create a new entry.

        Returns:
            The new entry id

        Raises:
            ValidationError: If an upload is not a supported image
            EntryValidationError: If the resulting entry is invalid
            RemoteStoreError: If the commit fails (the cache row is removed)
        """
        for upload in draft.uploads:
            DataValidator.validate_image_bytes(upload.data, upload.filename)

        if self.cache.last_sync() is None:
            # New keys must land above every id already on the remote
            await self.engine.resync_library()

        planned = await self._plan_uploads(draft.uploads) if draft.uploads else []
        images = [img.to_dict() for img in draft.images]
        blob_updates: List[FileUpdate] = []
        for item in planned:
            upload: ImageUpload = item["upload"]
            url = self.remote.raw_url(item["path"])
            images.append({"url": url, "thumbnail": url, "size": upload.size})
            blob_updates.append(
                FileUpdate(
                    path=item["path"],
                    content=upload.data,
                    message=f"Upload image: {sanitize_filename(upload.filename)}",
                )
            )

        analysis = draft.ai_analysis
        if isinstance(analysis, AIAnalysis):
            analysis = analysis.to_dict()

        now = utc_now_iso()
        entry = require_entry(
            {
                "title": draft.title,
                "description": draft.description,
                "images": images,
                "parameters": dict(draft.parameters),
                "adminMetadata": {
                    "createdAt": now,
                    "lastModified": now,
                    "featured": draft.featured,
                    "curatorNotes": draft.curator_notes,
                },
                "aiAnalysis": analysis,
            },
            entry_id=UNSAVED_ID,
        )

        stored = self.cache.add_entry(entry)
        try:
            await self.engine.mirror_entry(stored, blob_updates)
        except MidweaveError:
            self.cache.delete_entry(stored.id)
            raise

        safe_logger(self.logger).log_operation(
            "save_entry", {"entry_id": stored.id, "images": len(stored.images)}
        )
        return stored.id

    async def update_entry(
        self, entry_id: str, partial: Mapping[str, Any]
    ) -> LibraryEntry:
        """
        Merge partial fields over the cached entry and mirror the result.

        Keys use the JSON wire names. `parameters` is merged key by key;
        `featured` and `curatorNotes` go into adminMetadata. The id and
        createdAt never change.

        Raises:
            DatabaseError: If the entry is not cached
            EntryValidationError: If the merged entry is invalid
        """
        current = self.cache.get_entry(entry_id)
        if current is None:
            raise DatabaseError(f"Entry {entry_id} not found")

        raw = current.to_dict()
        admin = raw["adminMetadata"]
        for key, value in partial.items():
            if key == "id":
                continue
            if key == "parameters" and isinstance(value, Mapping):
                raw["parameters"] = {**raw["parameters"], **value}
            elif key == "adminMetadata" and isinstance(value, Mapping):
                admin.update({k: v for k, v in value.items() if k != "createdAt"})
            elif key in _ADMIN_KEYS:
                admin[key] = value
            elif key == "aiAnalysis" and isinstance(value, AIAnalysis):
                raw[key] = value.to_dict()
            else:
                raw[key] = copy.deepcopy(value)
        admin["lastModified"] = utc_now_iso()

        entry = require_entry(raw, entry_id=entry_id)
        self.cache.update_entry(entry)
        await self.engine.mirror_metadata(entry)
        safe_logger(self.logger).log_operation(
            "update_entry", {"entry_id": entry_id, "fields": sorted(partial.keys())}
        )
        return entry

    async def delete_entry(self, entry_id: str) -> None:
        await self.engine.delete_entry(entry_id)

    async def delete_entries(self, entry_ids: Sequence[str]) -> List[str]:
        return await self.engine.delete_entries(entry_ids)

    async def upload_images(self, uploads: Sequence[ImageUpload]) -> List[str]:
        """
        Upload several images, continuing past individual failures.

        Returns:
            Canonical URLs, in upload order

        Raises:
            PartialBatchError: Keyed by filename, if any upload failed
        """
        urls: List[str] = []
        failures: Dict[str, str] = {}
        for upload in uploads:
            try:
                DataValidator.validate_image_bytes(upload.data, upload.filename)
                urls.append(await self.remote.upload_image(upload.data, upload.filename))
            except MidweaveError as e:
                failures[upload.filename] = str(e)
                safe_logger(self.logger).log_error(
                    e, {"operation": "upload_images", "file": upload.filename}
                )
        if failures:
            raise PartialBatchError("upload_images", failures, urls)
        return urls

    # -------------------------------------------------------------------------
    # Sync
    # -------------------------------------------------------------------------

    async def resync_library(self) -> ResyncReport:
        return await self.engine.resync_library()

    async def force_resync_and_clear_cache(self) -> ResyncReport:
        return await self.engine.force_resync_and_clear_cache()

    async def request_deployment(self) -> Optional[str]:
        """
        Ask the static site to rebuild by writing a deployment marker.

        Returns:
            The marker path, or None if writing it failed (logged)
        """
        try:
            return await self.remote.write_deployment_marker()
        except RemoteStoreError as e:
            safe_logger(self.logger).log_error(e, {"operation": "request_deployment"})
            return None

    # -------------------------------------------------------------------------
    # Export / import
    # -------------------------------------------------------------------------

    def export_library(self) -> Dict[str, Any]:
        """JSON-ready dump of every cached entry."""
        return self.cache.export_json()

    def import_library(self, data: Dict[str, Any]) -> int:
        """
        Replace the local cache with an export.

        The remote store is untouched; the next resync brings the cache
        back in line with it.
        """
        return self.cache.import_json(data)
