"""JSON project snapshot I/O.

A project file is one JSON object with camelCase keys:

    {
        "pdfFileName": "...", "exportDate": "...",
        "tags": [...], "relationships": [...], "rawTextItems": [...],
        "descriptions": [...], "loops": [...], "settings": {...}
    }

Loading is all-or-nothing: structural checks run first, then text
sanitization, then model validation. Any failure raises
ProjectValidationError and nothing is returned.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import ValidationError

from pidtag.config import settings
from pidtag.models import (
    ProjectSettings,
    ProjectSnapshot,
    ProjectState,
    RelationshipType,
)

logger = logging.getLogger(__name__)

REQUIRED_KEYS = ("pdfFileName", "exportDate", "tags", "relationships", "rawTextItems")
ARRAY_KEYS = ("tags", "relationships", "rawTextItems")
BBOX_KEYS = ("x1", "y1", "x2", "y2")

UNSAFE_PATTERNS = [
    re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r'on\w+="[^"]*"', re.IGNORECASE),
]


class ProjectValidationError(ValueError):
    """Project file is malformed, unsafe to load or too large."""


def sanitize_text(text: str) -> str:
    """Strip script blocks, `javascript:` URLs and inline event handlers."""
    for pattern in UNSAFE_PATTERNS:
        text = pattern.sub("", text)
    return text


def _require(entry: Any, keys: tuple[str, ...], what: str, index: int) -> None:
    if not isinstance(entry, dict):
        raise ProjectValidationError(f"{what} #{index} is not an object")
    missing = [k for k in keys if not entry.get(k)]
    if missing:
        raise ProjectValidationError(f"{what} #{index} is missing {', '.join(missing)}")


def _check_structure(data: Any) -> None:
    if not isinstance(data, dict):
        raise ProjectValidationError("Project file must contain a JSON object")

    missing = [k for k in REQUIRED_KEYS if k not in data]
    if missing:
        raise ProjectValidationError(f"Project file is missing {', '.join(missing)}")
    for key in ARRAY_KEYS:
        if not isinstance(data[key], list):
            raise ProjectValidationError(f"'{key}' must be a list")
    descriptions = data.get("descriptions")
    if descriptions is not None and not isinstance(descriptions, list):
        raise ProjectValidationError("'descriptions' must be a list")

    for n, tag in enumerate(data["tags"]):
        _require(tag, ("id", "text", "page", "bbox", "category"), "Tag", n)
        bbox = tag["bbox"]
        if not isinstance(bbox, dict) or any(k not in bbox for k in BBOX_KEYS):
            raise ProjectValidationError(f"Tag #{n} has an incomplete bbox")

    valid_types = {t.value for t in RelationshipType}
    for n, rel in enumerate(data["relationships"]):
        _require(rel, ("id", "from", "to", "type"), "Relationship", n)
        if rel["type"] not in valid_types:
            raise ProjectValidationError(f"Relationship #{n} has unknown type {rel['type']!r}")

    for n, item in enumerate(data["rawTextItems"]):
        _require(item, ("id", "text", "page", "bbox"), "Raw text item", n)


def _sanitize_sources(tag: dict) -> dict:
    sources = tag.get("sourceItems")
    if not isinstance(sources, list):
        return tag
    cleaned = []
    for item in sources:
        if isinstance(item, dict):
            item = dict(item)
            for key in ("text", "str"):
                if key in item:
                    item[key] = sanitize_text(str(item[key]))
        cleaned.append(item)
    return {**tag, "sourceItems": cleaned}


def _sanitize(data: dict) -> dict:
    clean = dict(data)
    clean["pdfFileName"] = sanitize_text(str(data["pdfFileName"]))
    for key in ("tags", "rawTextItems", "descriptions"):
        clean[key] = [
            {**entry, "text": sanitize_text(str(entry.get("text", "")))}
            for entry in data.get(key) or []
        ]
    clean["tags"] = [_sanitize_sources(tag) for tag in clean["tags"]]
    return clean


def validate_project_data(data: Any) -> ProjectSnapshot:
    """Check, sanitize and parse decoded project JSON.

    Raises:
        ProjectValidationError: On any structural or model error.
    """
    _check_structure(data)
    clean = _sanitize(data)
    clean.setdefault("loops", [])
    try:
        return ProjectSnapshot.model_validate(clean)
    except ValidationError as e:
        raise ProjectValidationError(f"Invalid project data: {e.error_count()} errors\n{e}") from e


def loads_project(text: Union[str, bytes]) -> ProjectSnapshot:
    """Parse a project snapshot from JSON text."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ProjectValidationError(f"Project file is not valid JSON: {e}") from e
    return validate_project_data(data)


def load_project(path: Union[str, Path]) -> ProjectSnapshot:
    """Load a project snapshot from a `.json` file.

    Raises:
        ProjectValidationError: Wrong extension, file too large or invalid
            content.
        FileNotFoundError: If the file does not exist.
    """
    path = Path(path)
    if path.suffix.lower() != ".json":
        raise ProjectValidationError(f"Project files must be .json: {path.name}")
    if not path.exists():
        raise FileNotFoundError(f"Project file not found: {path}")

    size = path.stat().st_size
    if size > settings.max_project_file_bytes:
        raise ProjectValidationError(
            f"Project file is {size / 1024 / 1024:.1f} MB; "
            f"the limit is {settings.max_project_file_mb} MB"
        )

    snapshot = loads_project(path.read_bytes())
    logger.info(
        "Loaded %s: %d tags, %d relationships, %d raw items",
        path.name,
        len(snapshot.tags),
        len(snapshot.relationships),
        len(snapshot.raw_text_items),
    )
    return snapshot


def build_snapshot(
    state: ProjectState,
    pdf_file_name: str,
    project_settings: Optional[ProjectSettings] = None,
) -> ProjectSnapshot:
    """Wrap a project state with file metadata and settings."""
    return ProjectSnapshot(
        pdf_file_name=pdf_file_name,
        settings=project_settings or ProjectSettings(),
        tags=state.tags,
        raw_text_items=state.raw_text_items,
        relationships=state.relationships,
        descriptions=state.descriptions,
        loops=state.loops,
    )


def dump_project(snapshot: ProjectSnapshot) -> str:
    """Serialize a snapshot to camelCase JSON."""
    return snapshot.model_dump_json(by_alias=True, indent=2)


def save_project(snapshot: ProjectSnapshot, path: Union[str, Path]) -> Path:
    """Write a snapshot to disk, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dump_project(snapshot), encoding="utf-8")
    logger.info("Saved project to %s", path)
    return path
