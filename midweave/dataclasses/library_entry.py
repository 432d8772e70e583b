#!/usr/bin/env python3
"""
library_entry.py
----------------
Dataclasses for library entries shared by the local cache and the remote store.

An entry pairs one or more images with the Midjourney parameters used to
generate them, curator metadata, and an optional AI analysis. The remote
JSON documents use camelCase keys; these dataclasses use snake_case and
convert at the edges with to_dict() / from_dict().

Structures:
    - ImageRecord: One stored image (url, thumbnail, size)
    - ImageUpload: Raw bytes waiting to be written to the remote store
    - Parameters: Midjourney generation parameters
    - AdminMetadata: Timestamps, featured flag, curator notes
    - AIAnalysis: Captioning result (style, technical, colors, tags)
    - LibraryEntry: The full document stored at data/entries/<id>.json
    - EntryDraft: Input to LibraryStorage.save_entry()

Usage:
    from midweave.dataclasses.library_entry import LibraryEntry

    entry = LibraryEntry.from_dict(json.loads(text))
    payload = entry.to_json()
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import json
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Mapping, Optional, Union


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _str_list(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [str(item) for item in value if item is not None]


def _str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


# =============================================================================
# Images
# =============================================================================


@dataclass
class ImageRecord:
    """
    One image belonging to an entry.

    Attributes:
        url: Canonical URL of the original file
        thumbnail: Thumbnail URL (defaults to the original)
        size: File size in bytes (0 when unknown)
    """

    url: str
    thumbnail: str = ""
    size: int = 0

    def __post_init__(self) -> None:
        if not self.thumbnail:
            self.thumbnail = self.url

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "thumbnail": self.thumbnail, "size": self.size}


@dataclass
class ImageUpload:
    """
    An image file that still has to be written to the remote store.

    Attributes:
        filename: Name supplied by the uploader (directories are ignored)
        data: Raw file contents
    """

    filename: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


# =============================================================================
# Parameters
# =============================================================================


@dataclass
class Parameters:
    """
    Midjourney generation parameters.

    `sref` is the primary lookup key and `prompt` is always present (it may
    be empty). Every other field is optional and omitted from the JSON form
    when unset, except `no` which is always written as a list.
    """

    sref: str
    prompt: str = ""
    style: Optional[str] = None
    ar: Optional[str] = None
    chaos: Optional[float] = None
    no: List[str] = field(default_factory=list)
    niji: Optional[bool] = None
    version: Optional[str] = None
    tile: Optional[bool] = None
    weird: Optional[float] = None
    stop: Optional[float] = None
    quality: Optional[float] = None
    stylize: Optional[float] = None
    seed: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"sref": self.sref, "prompt": self.prompt}
        for key in (
            "style",
            "ar",
            "chaos",
            "niji",
            "version",
            "tile",
            "weird",
            "stop",
            "quality",
            "stylize",
            "seed",
        ):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        data["no"] = list(self.no)
        return data


# =============================================================================
# Admin metadata
# =============================================================================


@dataclass
class AdminMetadata:
    """Curator-facing metadata; timestamps are ISO-8601 strings."""

    created_at: str = field(default_factory=utc_now_iso)
    last_modified: str = field(default_factory=utc_now_iso)
    featured: bool = False
    curator_notes: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "createdAt": self.created_at,
            "lastModified": self.last_modified,
            "featured": self.featured,
            "curatorNotes": self.curator_notes,
        }

    def touched(self, timestamp: Optional[str] = None) -> AdminMetadata:
        """Copy with lastModified bumped to `timestamp` (default: now)."""
        return replace(self, last_modified=timestamp or utc_now_iso())


# =============================================================================
# AI analysis
# =============================================================================


@dataclass
class StyleAnalysis:
    primary: str = ""
    secondary: List[str] = field(default_factory=list)
    influences: List[str] = field(default_factory=list)


@dataclass
class TechnicalAnalysis:
    quality: str = ""
    render_style: str = ""
    detail_level: str = ""
    lighting: str = ""


@dataclass
class ColorAnalysis:
    palette: List[str] = field(default_factory=list)
    mood: str = ""
    contrast: str = ""


@dataclass
class TagAnalysis:
    style: List[str] = field(default_factory=list)
    technical: List[str] = field(default_factory=list)
    mood: List[str] = field(default_factory=list)


@dataclass
class AIAnalysis:
    """
    Output of the AI captioning service.

    from_dict() is tolerant: missing or non-object sections fall back to
    empty values so a partially populated remote document still loads.
    """

    SECTIONS = ("style", "technical", "colors", "tags")

    description: str = ""
    image_type: str = "generated"
    style: StyleAnalysis = field(default_factory=StyleAnalysis)
    technical: TechnicalAnalysis = field(default_factory=TechnicalAnalysis)
    colors: ColorAnalysis = field(default_factory=ColorAnalysis)
    tags: TagAnalysis = field(default_factory=TagAnalysis)

    @classmethod
    def default(cls, description: str = "") -> AIAnalysis:
        """Placeholder analysis used when an entry has none."""
        return cls(description=description or "")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AIAnalysis:
        style = _mapping(data.get("style"))
        technical = _mapping(data.get("technical"))
        colors = _mapping(data.get("colors"))
        tags = _mapping(data.get("tags"))
        return cls(
            description=_str(data.get("description")),
            image_type=_str(data.get("imageType")) or "generated",
            style=StyleAnalysis(
                primary=_str(style.get("primary")),
                secondary=_str_list(style.get("secondary")),
                influences=_str_list(style.get("influences")),
            ),
            technical=TechnicalAnalysis(
                quality=_str(technical.get("quality")),
                render_style=_str(technical.get("renderStyle")),
                detail_level=_str(technical.get("detailLevel")),
                lighting=_str(technical.get("lighting")),
            ),
            colors=ColorAnalysis(
                palette=_str_list(colors.get("palette")),
                mood=_str(colors.get("mood")),
                contrast=_str(colors.get("contrast")),
            ),
            tags=TagAnalysis(
                style=_str_list(tags.get("style")),
                technical=_str_list(tags.get("technical")),
                mood=_str_list(tags.get("mood")),
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "description": self.description,
            "imageType": self.image_type,
            "style": {
                "primary": self.style.primary,
                "secondary": list(self.style.secondary),
                "influences": list(self.style.influences),
            },
            "technical": {
                "quality": self.technical.quality,
                "renderStyle": self.technical.render_style,
                "detailLevel": self.technical.detail_level,
                "lighting": self.technical.lighting,
            },
            "colors": {
                "palette": list(self.colors.palette),
                "mood": self.colors.mood,
                "contrast": self.colors.contrast,
            },
            "tags": {
                "style": list(self.tags.style),
                "technical": list(self.tags.technical),
                "mood": list(self.tags.mood),
            },
        }

    def iter_text(self) -> Iterator[str]:
        """Yield every string and string-array value, for search."""
        yield self.description
        yield self.image_type
        yield self.style.primary
        yield from self.style.secondary
        yield from self.style.influences
        yield self.technical.quality
        yield self.technical.render_style
        yield self.technical.detail_level
        yield self.technical.lighting
        yield from self.colors.palette
        yield self.colors.mood
        yield self.colors.contrast
        yield from self.tags.style
        yield from self.tags.technical
        yield from self.tags.mood


# =============================================================================
# Entries
# =============================================================================


@dataclass
class LibraryEntry:
    """
    A library record: images + Midjourney parameters + metadata.

    Attributes:
        id: String id; the remote canonical id is the JSON filename stem
        title: Entry title
        description: Free-text description
        images: Ordered, non-empty list of images
        parameters: Generation parameters
        admin_metadata: Timestamps and curation flags
        ai_analysis: Captioning result, defaulted when absent
    """

    id: str
    title: str
    images: List[ImageRecord]
    parameters: Parameters
    description: str = ""
    admin_metadata: AdminMetadata = field(default_factory=AdminMetadata)
    ai_analysis: Optional[AIAnalysis] = None

    def __post_init__(self) -> None:
        if self.ai_analysis is None:
            self.ai_analysis = AIAnalysis.default(self.description)

    @property
    def metadata_path(self) -> str:
        return f"data/entries/{self.id}.json"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "images": [img.to_dict() for img in self.images],
            "parameters": self.parameters.to_dict(),
            "adminMetadata": self.admin_metadata.to_dict(),
            "aiAnalysis": self.ai_analysis.to_dict() if self.ai_analysis else None,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)

    def searchable_text(self) -> Iterator[str]:
        yield self.title
        yield self.description
        yield self.parameters.prompt
        if self.ai_analysis:
            yield from self.ai_analysis.iter_text()

    def matches(self, query: str) -> bool:
        """
        Case-insensitive substring match over title, description, prompt
        and every AI-analysis string or array value.
        """
        needle = query.strip().lower()
        if not needle:
            return True
        return any(needle in text.lower() for text in self.searchable_text() if text)


@dataclass
class EntryDraft:
    """
    Input to LibraryStorage.save_entry().

    `images` holds images that already live at a URL, `uploads` holds raw
    files that will be committed together with the metadata document.
    `parameters` is the raw camelCase-free dict accepted by the parser.
    """

    title: str
    parameters: Dict[str, Any]
    description: str = ""
    images: List[ImageRecord] = field(default_factory=list)
    uploads: List[ImageUpload] = field(default_factory=list)
    ai_analysis: Optional[Union[AIAnalysis, Dict[str, Any]]] = None
    featured: bool = False
    curator_notes: str = ""
