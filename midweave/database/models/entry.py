"""
Entry Model
-----------

Cached copy of a library entry.

Models:
    - CachedEntry: One row per entry mirrored from data/entries/<id>.json

The integer primary key round-trips to the remote string id
(str(row.id) == entry.id). Images, parameters and the AI analysis are kept
as JSON columns; the columns used for filtering and ordering (sref,
featured, last_modified) are lifted out and indexed.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Boolean, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from midweave.dataclasses.library_entry import (
    AdminMetadata,
    AIAnalysis,
    ImageRecord,
    LibraryEntry,
    Parameters,
)

from .base import Base


class CachedEntry(Base):
    """
    Local mirror of a remote entry document.

    Attributes:
        id: Integer key; the remote id is its string form
        title: Entry title
        description: Entry description
        sref: Style reference (indexed lookup key)
        prompt: Generation prompt
        images: JSON list of {url, thumbnail, size}
        parameters: JSON object of Midjourney parameters
        ai_analysis: JSON object in the camelCase wire form
        featured: Curator featured flag
        curator_notes: Free-text curator notes
        created_at: ISO-8601 creation timestamp
        last_modified: ISO-8601 modification timestamp (listing order)
    """

    __tablename__ = "entries"
    __table_args__ = (
        Index("ix_entries_featured_modified", "featured", "last_modified"),
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    sref: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    prompt: Mapped[str] = mapped_column(Text, nullable=False, default="")

    images: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False)
    parameters: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    ai_analysis: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    featured: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, index=True
    )
    curator_notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[str] = mapped_column(String(40), nullable=False)
    last_modified: Mapped[str] = mapped_column(String(40), nullable=False, index=True)

    @classmethod
    def from_entry(cls, entry: LibraryEntry, with_id: bool = True) -> CachedEntry:
        """Build a row from an entry; with_id=False lets SQLite assign the key."""
        row = cls()
        if with_id:
            row.id = int(entry.id)
        row.apply(entry)
        return row

    def apply(self, entry: LibraryEntry) -> None:
        """Copy every field except the key from an entry."""
        self.title = entry.title
        self.description = entry.description
        self.sref = entry.parameters.sref
        self.prompt = entry.parameters.prompt
        self.images = [img.to_dict() for img in entry.images]
        self.parameters = entry.parameters.to_dict()
        self.ai_analysis = entry.ai_analysis.to_dict() if entry.ai_analysis else None
        self.featured = entry.admin_metadata.featured
        self.curator_notes = entry.admin_metadata.curator_notes
        self.created_at = entry.admin_metadata.created_at
        self.last_modified = entry.admin_metadata.last_modified

    def to_entry(self) -> LibraryEntry:
        params = dict(self.parameters or {})
        params.setdefault("sref", self.sref)
        params.setdefault("prompt", self.prompt)
        return LibraryEntry(
            id=str(self.id),
            title=self.title,
            description=self.description,
            images=[ImageRecord(**img) for img in (self.images or [])],
            parameters=Parameters(**params),
            admin_metadata=AdminMetadata(
                created_at=self.created_at,
                last_modified=self.last_modified,
                featured=bool(self.featured),
                curator_notes=self.curator_notes or "",
            ),
            ai_analysis=(
                AIAnalysis.from_dict(self.ai_analysis)
                if self.ai_analysis is not None
                else None
            ),
        )

    def __repr__(self) -> str:
        return f"<CachedEntry(id={self.id}, sref={self.sref!r}, title={self.title!r})>"
