#!/usr/bin/env python3
"""
entry_parser.py
---------------
Tagged parse step turning raw JSON-like dictionaries into LibraryEntry objects.

Every path that accepts entry data (resync from the remote store, saving a
new draft, applying a partial update) goes through parse_entry(). It never
raises on bad input; it returns either EntryAccepted or EntryRejected so the
caller decides what a rejection means:

    - resync drops rejected entries and logs the reason
    - save/update raise EntryValidationError via require_entry()

Numeric Midjourney parameters are clamped into their documented ranges here
and nowhere else.

Usage:
    from midweave.dataclasses.parsers import parse_entry

    result = parse_entry(json.loads(text), entry_id="42")
    if result.accepted:
        cache.put(result.entry)
    else:
        logger.log_warning(f"Skipping {result.entry_id}: {result.reason}")
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import json
import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Union

# --- Local imports ---
from midweave.core.exceptions import EntryValidationError, ValidationError
from midweave.core.validators import PARAMETER_LIMITS, DataValidator
from midweave.dataclasses.library_entry import (
    AdminMetadata,
    AIAnalysis,
    ImageRecord,
    LibraryEntry,
    Parameters,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

DELETION_MARKER_PREFIX = ".deleted-"


@dataclass(frozen=True)
class EntryAccepted:
    """A raw document that passed validation."""

    entry: LibraryEntry
    accepted: bool = True

    @property
    def entry_id(self) -> str:
        return self.entry.id


@dataclass(frozen=True)
class EntryRejected:
    """A raw document that failed validation, with the reason."""

    entry_id: Optional[str]
    reason: str
    accepted: bool = False


EntryParseResult = Union[EntryAccepted, EntryRejected]


class _Rejection(Exception):
    """Internal short-circuit carrying a rejection reason."""


def _parse_id(raw: Mapping[str, Any], entry_id: Optional[str]) -> str:
    value: Any = entry_id if entry_id is not None else raw.get("id")
    if isinstance(value, int) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str) or not value.strip():
        raise _Rejection("Missing or invalid id")
    value = value.strip()
    if value.startswith(DELETION_MARKER_PREFIX):
        raise _Rejection("Id refers to a deletion marker")
    return value


def _parse_images(raw_images: Any) -> List[ImageRecord]:
    if not isinstance(raw_images, list) or not raw_images:
        raise _Rejection("Entry has no images")

    images: List[ImageRecord] = []
    for index, item in enumerate(raw_images):
        if not isinstance(item, Mapping):
            raise _Rejection(f"Image {index} is not an object")
        url = item.get("url")
        if not isinstance(url, str) or not url.strip():
            raise _Rejection(f"Image {index} has no url")
        thumbnail = item.get("thumbnail")
        size = DataValidator.normalize_int(item.get("size")) or 0
        images.append(
            ImageRecord(
                url=url.strip(),
                thumbnail=thumbnail if isinstance(thumbnail, str) else "",
                size=max(size, 0),
            )
        )
    return images


def _parse_number(name: str, value: Any) -> Optional[Union[int, float]]:
    if value is None:
        return None
    number = DataValidator.normalize_float(value)
    if number is None:
        raise _Rejection(f"Parameter '{name}' must be a number")
    clamped = DataValidator.clamp_parameter(name, number)
    if float(clamped).is_integer() and name != "quality":
        return int(clamped)
    return clamped


def _parse_parameters(raw_params: Any) -> Parameters:
    if not isinstance(raw_params, Mapping):
        raise _Rejection("Missing parameters")

    sref = raw_params.get("sref")
    if isinstance(sref, (int, float)) and not isinstance(sref, bool):
        sref = str(sref)
    if not isinstance(sref, str) or not sref.strip():
        raise _Rejection("Missing style reference (sref)")

    prompt = raw_params.get("prompt")
    if prompt is None:
        prompt = ""
    if not isinstance(prompt, str):
        raise _Rejection("Prompt must be a string")

    no = raw_params.get("no")
    if no is not None and not isinstance(no, (list, str)):
        raise _Rejection("Parameter 'no' must be a list of strings")

    try:
        niji = DataValidator.normalize_bool(raw_params.get("niji"))
        tile = DataValidator.normalize_bool(raw_params.get("tile"))
    except ValidationError as e:
        raise _Rejection(str(e))

    seed = raw_params.get("seed")
    if seed is not None:
        seed = DataValidator.normalize_int(seed)
        if seed is None:
            raise _Rejection("Parameter 'seed' must be an integer")

    numbers = {
        name: _parse_number(name, raw_params.get(name)) for name in PARAMETER_LIMITS
    }

    return Parameters(
        sref=sref.strip(),
        prompt=prompt,
        style=DataValidator.normalize_string(raw_params.get("style")),
        ar=DataValidator.normalize_string(raw_params.get("ar")),
        no=DataValidator.normalize_string_list(no),
        niji=niji,
        version=DataValidator.normalize_string(raw_params.get("version")),
        tile=tile,
        seed=seed,
        **numbers,
    )


def _parse_admin_metadata(raw_meta: Any, now: str) -> AdminMetadata:
    if not isinstance(raw_meta, Mapping):
        raw_meta = {}
    created_at = DataValidator.normalize_string(raw_meta.get("createdAt")) or now
    last_modified = (
        DataValidator.normalize_string(raw_meta.get("lastModified")) or created_at
    )
    try:
        featured = bool(DataValidator.normalize_bool(raw_meta.get("featured")))
    except ValidationError as e:
        raise _Rejection(str(e))
    notes = raw_meta.get("curatorNotes")
    return AdminMetadata(
        created_at=created_at,
        last_modified=last_modified,
        featured=featured,
        curator_notes=notes if isinstance(notes, str) else "",
    )


def parse_entry(
    raw: Any,
    entry_id: Optional[str] = None,
    now: Optional[str] = None,
) -> EntryParseResult:
    """
    Validate a raw entry document.

    Args:
        raw: Decoded JSON document (camelCase keys)
        entry_id: Authoritative id (the remote filename stem); overrides
            any id field inside the document
        now: Timestamp used for missing createdAt/lastModified values

    Returns:
        EntryAccepted with the parsed entry, or EntryRejected with a reason

    Examples:
        >>> parse_entry({"id": "1", "title": "x", "images": []}).reason
        'Entry has no images'
    """
    fallback_id = entry_id
    if fallback_id is None and isinstance(raw, Mapping):
        candidate = raw.get("id")
        fallback_id = str(candidate) if candidate is not None else None

    try:
        if not isinstance(raw, Mapping):
            raise _Rejection("Entry document is not an object")

        parsed_id = _parse_id(raw, entry_id)

        title = raw.get("title")
        if not isinstance(title, str):
            raise _Rejection("Missing or invalid title")
        description = raw.get("description")
        if description is not None and not isinstance(description, str):
            raise _Rejection("Description must be a string")
        description = description or ""

        images = _parse_images(raw.get("images"))
        parameters = _parse_parameters(raw.get("parameters"))
        admin_metadata = _parse_admin_metadata(
            raw.get("adminMetadata"), now or utc_now_iso()
        )

        raw_analysis = raw.get("aiAnalysis")
        if isinstance(raw_analysis, AIAnalysis):
            analysis = raw_analysis
        elif isinstance(raw_analysis, Mapping):
            for section in AIAnalysis.SECTIONS:
                value = raw_analysis.get(section)
                if value is not None and not isinstance(value, Mapping):
                    raise _Rejection(f"aiAnalysis.{section} must be an object")
            analysis = AIAnalysis.from_dict(dict(raw_analysis))
        else:
            analysis = AIAnalysis.default(description)

    except _Rejection as rejection:
        logger.debug(f"Rejected entry {fallback_id}: {rejection}")
        return EntryRejected(entry_id=fallback_id, reason=str(rejection))

    return EntryAccepted(
        LibraryEntry(
            id=parsed_id,
            title=title,
            description=description,
            images=images,
            parameters=parameters,
            admin_metadata=admin_metadata,
            ai_analysis=analysis,
        )
    )


def parse_entry_json(
    text: Union[str, bytes], entry_id: Optional[str] = None
) -> EntryParseResult:
    """Decode a JSON document and run parse_entry() on it."""
    try:
        raw = json.loads(text)
    except (ValueError, UnicodeDecodeError) as e:
        return EntryRejected(entry_id=entry_id, reason=f"Invalid JSON: {e}")
    return parse_entry(raw, entry_id=entry_id)


def require_entry(raw: Any, entry_id: Optional[str] = None) -> LibraryEntry:
    """
    Parse a document and raise on rejection.

    Raises:
        EntryValidationError: If the document is rejected
    """
    result = parse_entry(raw, entry_id=entry_id)
    if isinstance(result, EntryRejected):
        raise EntryValidationError(result.reason, entry_id=result.entry_id)
    return result.entry
