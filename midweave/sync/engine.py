#!/usr/bin/env python3
"""
engine.py
---------
Synchronization between the remote entry store and the local cache.

Resync state machine:
    1. Start     single-flight: concurrent callers share one running task
    2. Fetch     read the branch tree once (a truncated tree aborts here)
                 and fetch every data/entries/*.json
    3. Validate  tagged parse + every image URL must exist in the listing
    4. Prune     delete unreferenced images in one commit (after 3 completes)
    5. Rebuild   replace the cache table in one transaction
    6. Complete  record sync state; zero added from a non-empty remote
                 raises SyncIntegrityError

Deletions run remote first, local last: the cache row goes only once the
remote metadata file is gone (or was never there).

Usage:
    engine = SyncEngine(remote, cache, logger)
    report = await engine.resync_library()
    print(f"{report.added} entries, {len(report.pruned)} orphans pruned")
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import asyncio
import json
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple

# --- Local imports ---
from midweave.core.exceptions import (
    EntryDeletionError,
    MidweaveError,
    PartialBatchError,
    RemoteStoreError,
    SyncIntegrityError,
)
from midweave.core.logging_manager import MidweaveLogger, safe_logger
from midweave.dataclasses.library_entry import LibraryEntry
from midweave.dataclasses.parsers import (
    DELETION_MARKER_PREFIX,
    EntryRejected,
    parse_entry_json,
)
from midweave.database import CacheDB
from midweave.database.managers import parse_key
from midweave.remote import (
    ENTRIES_DIR,
    IMAGES_DIR,
    DirectoryItem,
    FileUpdate,
    RepositoryClient,
    children_of,
    deletion_marker_path,
    entry_path,
)

RESYNC_OPERATION = "resync_library"
FETCH_CONCURRENCY = 8


@dataclass
class ResyncReport:
    """
    Outcome of one resync cycle.

    Attributes:
        total: Entry files listed on the remote
        accepted: Entries that passed validation
        rejected: Rejected entry ids mapped to the reason
        pruned: Orphaned image paths deleted from the remote
        added: Rows written to the cache
        skipped: Accepted ids left out of the cache (non-integer ids)
        duration_seconds: Wall-clock duration
        finished_at: Completion time (UTC)
    """

    total: int = 0
    accepted: int = 0
    rejected: Dict[str, str] = field(default_factory=dict)
    pruned: List[str] = field(default_factory=list)
    added: int = 0
    skipped: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0
    finished_at: Optional[datetime] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "accepted": self.accepted,
            "rejected": dict(self.rejected),
            "pruned": list(self.pruned),
            "added": self.added,
            "skipped": list(self.skipped),
            "duration_seconds": round(self.duration_seconds, 3),
        }


class SyncEngine:
    """
    Keeps the cache a validated projection of the remote store.

    Attributes:
        remote: RepositoryClient for the remote store
        cache: CacheDB mirror
        logger: Optional MidweaveLogger
    """

    def __init__(
        self,
        remote: RepositoryClient,
        cache: CacheDB,
        logger: Optional[MidweaveLogger] = None,
    ) -> None:
        self.remote = remote
        self.cache = cache
        self.logger = logger
        self._inflight: Dict[str, asyncio.Task] = {}

    # -------------------------------------------------------------------------
    # Single flight
    # -------------------------------------------------------------------------

    def _release(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def _single_flight(
        self, key: str, factory: Callable[[], Awaitable[Any]]
    ) -> Any:
        """
        Run factory() unless a task for `key` is already running.

        Callers await the shared task through asyncio.shield so one caller
        being cancelled does not cancel the work for the others.
        """
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._inflight[key] = task
            task.add_done_callback(lambda done: self._release(key, done))
        else:
            safe_logger(self.logger).log_debug(f"Joining in-flight {key}")
        return await asyncio.shield(task)

    @property
    def resync_in_progress(self) -> bool:
        return RESYNC_OPERATION in self._inflight

    async def wait_idle(self) -> None:
        """Wait for in-flight operations to finish, ignoring their outcome."""
        tasks = list(self._inflight.values())
        if tasks:
            await asyncio.wait(tasks)

    # -------------------------------------------------------------------------
    # Resync
    # -------------------------------------------------------------------------

    async def resync_library(self) -> ResyncReport:
        """
        Rebuild the cache from the remote store.

        Raises:
            RemoteStoreError: If listing, reading or pruning fails
            SyncIntegrityError: If the remote listed entries but none were added
        """
        return await self._single_flight(RESYNC_OPERATION, self._run_resync)

    async def force_resync_and_clear_cache(self) -> ResyncReport:
        """Delete and recreate the cache database, then resync."""
        running = self._inflight.get(RESYNC_OPERATION)
        if running is not None:
            await asyncio.wait({running})
        return await self._single_flight(RESYNC_OPERATION, self._run_forced_resync)

    async def _run_forced_resync(self) -> ResyncReport:
        safe_logger(self.logger).log_warning(
            "Destroying local cache before resync", {"db_path": str(self.cache.db_path)}
        )
        self.cache.destroy()
        self.cache.reopen()
        return await self._run_resync()

    async def _list_remote(self) -> Tuple[List[DirectoryItem], Set[str]]:
        # One recursive tree read; list_tree refuses a truncated listing
        tree = await self.remote.list_tree()
        entry_items = [
            item
            for item in children_of(tree, ENTRIES_DIR)
            if item.is_file
            and item.name.endswith(".json")
            and not item.name.startswith(DELETION_MARKER_PREFIX)
        ]
        image_paths = {item.path for item in children_of(tree, IMAGES_DIR) if item.is_file}
        return entry_items, image_paths

    async def _fetch_documents(
        self, items: Sequence[DirectoryItem]
    ) -> List[Tuple[str, Optional[bytes]]]:
        semaphore = asyncio.Semaphore(FETCH_CONCURRENCY)

        async def fetch(item: DirectoryItem) -> Tuple[str, Optional[bytes]]:
            async with semaphore:
                remote_file = await self.remote.get_file(item.path)
            entry_id = item.name[: -len(".json")]
            return entry_id, remote_file.content if remote_file else None

        tasks = [asyncio.ensure_future(fetch(item)) for item in items]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            # Collect the cancelled and failed siblings
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    def _validate(
        self,
        documents: Sequence[Tuple[str, Optional[bytes]]],
        image_paths: Set[str],
        report: ResyncReport,
    ) -> List[LibraryEntry]:
        logger = safe_logger(self.logger)
        validated: List[LibraryEntry] = []

        for entry_id, content in documents:
            if content is None:
                report.rejected[entry_id] = "Metadata file disappeared during sync"
                continue

            result = parse_entry_json(content, entry_id=entry_id)
            if isinstance(result, EntryRejected):
                report.rejected[entry_id] = result.reason
                logger.log_warning(
                    "Dropping invalid entry", {"entry_id": entry_id, "reason": result.reason}
                )
                continue

            entry = result.entry
            missing = [
                img.url
                for img in entry.images
                if self.remote.path_from_url(img.url) not in image_paths
            ]
            if missing:
                reason = f"References missing image(s): {', '.join(missing)}"
                report.rejected[entry_id] = reason
                logger.log_warning(
                    "Dropping entry with missing images",
                    {"entry_id": entry_id, "missing": missing},
                )
                continue

            validated.append(entry)
        return validated

    async def _prune_orphans(
        self, validated: Sequence[LibraryEntry], image_paths: Set[str]
    ) -> List[str]:
        referenced = set()
        for entry in validated:
            for img in entry.images:
                path = self.remote.path_from_url(img.url)
                if path:
                    referenced.add(path)

        orphans = sorted(image_paths - referenced)
        if orphans:
            await self.remote.batch_commit(
                [FileUpdate(path=path, content=None) for path in orphans],
                f"Prune {len(orphans)} orphaned image(s)",
            )
            safe_logger(self.logger).log_operation(
                "prune_orphans", {"count": len(orphans), "paths": orphans}
            )
        return orphans

    async def _run_resync(self) -> ResyncReport:
        logger = safe_logger(self.logger)
        started = time.monotonic()
        report = ResyncReport()
        logger.log_info("Starting library resync")

        try:
            entry_items, image_paths = await self._list_remote()
            report.total = len(entry_items)

            documents = await self._fetch_documents(entry_items)
            validated = self._validate(documents, image_paths, report)
            report.accepted = len(validated)

            if report.total and not validated:
                logger.log_warning(
                    "No entry passed validation, skipping orphan pruning",
                    {"listed": report.total},
                )
            else:
                report.pruned = await self._prune_orphans(validated, image_paths)

            reserve = max(
                [key for key in (parse_key(eid) for eid, _ in documents) if key] or [0]
            )
            report.added, report.skipped = self.cache.replace_all_entries(
                validated, reserve_up_to=reserve
            )

            if report.total and report.added == 0:
                raise SyncIntegrityError(
                    f"Remote listed {report.total} entries but none were added "
                    f"({len(report.rejected)} rejected, {len(report.skipped)} skipped)"
                )

        except MidweaveError as e:
            report.duration_seconds = time.monotonic() - started
            logger.log_error(e, {"operation": RESYNC_OPERATION, **report.as_dict()})
            self._record(report, success=False, error=str(e))
            raise

        report.duration_seconds = time.monotonic() - started
        report.finished_at = datetime.now(timezone.utc)
        self._record(report, success=True)
        logger.log_operation(RESYNC_OPERATION, report.as_dict())
        return report

    def _record(
        self, report: ResyncReport, success: bool, error: Optional[str] = None
    ) -> None:
        self.cache.record_sync(
            remote_ref=self.remote.config.branch,
            entries_listed=report.total,
            entries_added=report.added,
            entries_rejected=len(report.rejected),
            orphans_pruned=len(report.pruned),
            duration_seconds=report.duration_seconds,
            success=success,
            error_message=error,
            synced_at=report.finished_at,
        )

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def mirror_entry(
        self, entry: LibraryEntry, uploads: Sequence[FileUpdate] = ()
    ) -> Optional[str]:
        """Commit an entry's metadata and its new image blobs together."""
        updates = [FileUpdate(path=entry_path(entry.id), content=entry.to_json())]
        updates.extend(uploads)
        return await self.remote.batch_commit(updates, f"Create entry {entry.id}")

    async def mirror_metadata(self, entry: LibraryEntry) -> str:
        """Write an entry's metadata file, absorbing sha conflicts."""
        return await self.remote.put_file(
            entry_path(entry.id), entry.to_json(), message=f"Update entry {entry.id}"
        )

    # -------------------------------------------------------------------------
    # Deletion
    # -------------------------------------------------------------------------

    def _shared_image_paths(self, entry_id: str) -> Set[str]:
        """Image paths referenced by cached entries other than entry_id."""
        shared: Set[str] = set()
        for entry in self.cache.get_all_entries():
            if entry.id == entry_id:
                continue
            for img in entry.images:
                path = self.remote.path_from_url(img.url)
                if path:
                    shared.add(path)
        return shared

    def _image_paths_in(self, content: bytes) -> List[str]:
        """Image paths of a raw metadata document, however malformed."""
        try:
            raw = json.loads(content)
        except ValueError:
            return []
        images = raw.get("images") if isinstance(raw, dict) else None
        paths: List[str] = []
        for img in images if isinstance(images, list) else []:
            url = img.get("url") if isinstance(img, dict) else None
            path = self.remote.path_from_url(url) if isinstance(url, str) else None
            if path and path not in paths:
                paths.append(path)
        return paths

    async def _write_deletion_marker(self, entry_id: str) -> None:
        marker = deletion_marker_path(entry_id)
        body = json.dumps(
            {"id": entry_id, "deletedAt": datetime.now(timezone.utc).isoformat()},
            indent=2,
        )
        try:
            await self.remote.put_file(
                marker, body, message=f"Mark entry {entry_id} as deleted"
            )
        except RemoteStoreError as e:
            safe_logger(self.logger).log_error(
                e, {"operation": "write_deletion_marker", "entry_id": entry_id}
            )

    async def _cleanup_deletion_marker(self, entry_id: str) -> None:
        try:
            await self.remote.delete_file(deletion_marker_path(entry_id))
        except RemoteStoreError as e:
            safe_logger(self.logger).log_debug(
                "Deletion marker cleanup failed", {"entry_id": entry_id, "error": str(e)}
            )

    async def delete_entry(self, entry_id: str) -> None:
        """
        Delete an entry from the remote store, then from the cache.

        Order: images -> metadata file -> cache row -> stale marker. If the
        metadata file is already gone, a .deleted-<id> marker is written
        instead and the cache row is dropped.

        Raises:
            RemoteStoreError: If an image delete fails (nothing local changes)
            EntryDeletionError: If the metadata delete fails after the images
                went; the cache row is kept
        """
        logger = safe_logger(self.logger)
        metadata_path = entry_path(entry_id)
        metadata = await self.remote.get_file(metadata_path)

        if metadata is None:
            logger.log_warning(
                "Metadata file already absent, writing deletion marker",
                {"entry_id": entry_id},
            )
            await self._write_deletion_marker(entry_id)
            self.cache.delete_entry(entry_id)
            return

        shared = self._shared_image_paths(entry_id)
        for path in self._image_paths_in(metadata.content):
            if path in shared:
                logger.log_debug("Keeping image shared with another entry", {"path": path})
                continue
            await self.remote.delete_file(
                path, message=f"Delete image {path.rsplit('/', 1)[-1]} of entry {entry_id}"
            )

        try:
            await self.remote.delete_file(metadata_path, message=f"Delete entry {entry_id}")
        except RemoteStoreError as e:
            raise EntryDeletionError(
                f"Images of entry {entry_id} were deleted but its metadata was not: {e}",
                status_code=e.status_code,
                path=metadata_path,
            ) from e

        self.cache.delete_entry(entry_id)
        await self._cleanup_deletion_marker(entry_id)
        logger.log_operation("delete_entry", {"entry_id": entry_id})

    async def delete_entries(self, entry_ids: Sequence[str]) -> List[str]:
        """
        Delete several entries one after another.

        Every id is attempted even when earlier ones fail.

        Returns:
            Ids that were deleted

        Raises:
            PartialBatchError: Listing only the ids that failed
        """
        failures: Dict[str, str] = {}
        succeeded: List[str] = []
        for entry_id in entry_ids:
            try:
                await self.delete_entry(entry_id)
            except MidweaveError as e:
                failures[entry_id] = str(e)
                safe_logger(self.logger).log_error(
                    e, {"operation": "delete_entries", "entry_id": entry_id}
                )
            else:
                succeeded.append(entry_id)

        if failures:
            raise PartialBatchError("delete_entries", failures, succeeded)
        return succeeded
