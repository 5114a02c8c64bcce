"""Static registry of embeddable content types.

Each content type maps to an ordered list of fields that are concatenated
into the text sent to the embedding provider, plus the fields copied into the
vector payload metadata. Manifest types (``npcs``, ``items``...) map onto
content types through ``MANIFEST_CONTENT_TYPES``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

TEXT_DELIMITER = "\n\n"
SEARCH_ALL = "all"

Render = Literal["text", "json", "list", "phrases", "names"]


class ContentType(str, Enum):
    """Kinds of content that can be embedded."""

    npc = "npc"
    lore = "lore"
    quest = "quest"
    item = "item"
    asset = "asset"
    character = "character"
    manifest = "manifest"


class UnknownContentTypeError(ValueError):
    """Raised when a string does not name a known content type."""


@dataclass(frozen=True)
class FieldSpec:
    """One embeddable field.

    ``keys`` are tried in order and the first non-empty value wins, so
    ``("title", "name")`` reads ``title`` and falls back to ``name``.
    """

    keys: tuple[str, ...]
    label: str | None = None
    render: Render = "text"

    def value(self, data: dict[str, Any]) -> Any:
        for key in self.keys:
            value = data.get(key)
            if value not in (None, "", [], {}):
                return value
        return None

    def format(self, data: dict[str, Any]) -> str:
        value = self.value(data)
        if value is None:
            return ""
        text = _render(value, self.render)
        if not text:
            return ""
        return f"{self.label}: {text}" if self.label else text


@dataclass(frozen=True)
class ContentSpec:
    fields: tuple[FieldSpec, ...]
    metadata: tuple[tuple[str, tuple[str, ...]], ...] = ()


def _render(value: Any, render: Render) -> str:
    if render == "json":
        return json.dumps(value, sort_keys=True, default=str)
    if render == "list":
        if isinstance(value, (list, tuple)):
            return ", ".join(str(v) for v in value)
        return str(value)
    if render == "phrases":
        if isinstance(value, (list, tuple)):
            return "; ".join(str(v) for v in value[:3])
        return str(value)
    if render == "names":
        if not isinstance(value, (list, tuple)):
            return str(value)
        names = [
            str(v.get("name") or v.get("id")) if isinstance(v, dict) else str(v)
            for v in value[:5]
        ]
        suffix = "..." if len(value) > 5 else ""
        return ", ".join(names) + suffix
    return str(value).strip()


_CHARACTER_FIELDS = (
    FieldSpec(("name",)),
    FieldSpec(("title",)),
    FieldSpec(("race", "species")),
    FieldSpec(("class", "role")),
    FieldSpec(("description",)),
    FieldSpec(("backstory",)),
    FieldSpec(("personality",)),
    FieldSpec(("dialogue",), label="Common phrases", render="phrases"),
    FieldSpec(("location",), label="Location"),
)

CONTENT_REGISTRY: dict[ContentType, ContentSpec] = {
    ContentType.lore: ContentSpec(
        fields=(
            FieldSpec(("title",)),
            FieldSpec(("category",)),
            FieldSpec(("content",)),
            FieldSpec(("summary",)),
        ),
        metadata=(
            ("title", ("title",)),
            ("category", ("category",)),
            ("tags", ("tags",)),
        ),
    ),
    ContentType.quest: ContentSpec(
        fields=(
            FieldSpec(("title", "name")),
            FieldSpec(("description",)),
            FieldSpec(("objective",)),
            FieldSpec(("questGiver",)),
            FieldSpec(("rewards",), label="Rewards", render="json"),
            FieldSpec(("requirements",), label="Requirements", render="json"),
        ),
        metadata=(
            ("title", ("title", "name")),
            ("difficulty", ("difficulty",)),
            ("questGiver", ("questGiver",)),
            ("level", ("level", "requiredLevel")),
        ),
    ),
    ContentType.item: ContentSpec(
        fields=(
            FieldSpec(("name",)),
            FieldSpec(("id",)),
            FieldSpec(("type", "category")),
            FieldSpec(("description",)),
            FieldSpec(("lore",)),
            FieldSpec(("stats",), label="Stats", render="json"),
            FieldSpec(("effects",), label="Effects", render="json"),
        ),
        metadata=(
            ("name", ("name",)),
            ("type", ("type", "category")),
            ("rarity", ("rarity",)),
            ("level", ("level",)),
        ),
    ),
    ContentType.npc: ContentSpec(
        fields=_CHARACTER_FIELDS,
        metadata=(
            ("name", ("name",)),
            ("type", ("type",)),
            ("location", ("location",)),
            ("faction", ("faction",)),
        ),
    ),
    ContentType.character: ContentSpec(
        fields=_CHARACTER_FIELDS,
        metadata=(
            ("name", ("name",)),
            ("race", ("race", "species")),
            ("class", ("class", "role")),
            ("location", ("location",)),
        ),
    ),
    ContentType.asset: ContentSpec(
        fields=(
            FieldSpec(("name",)),
            FieldSpec(("category", "type")),
            FieldSpec(("description",)),
            FieldSpec(("prompt",), label="Prompt"),
            FieldSpec(("tags",), label="Tags", render="list"),
        ),
        metadata=(
            ("name", ("name",)),
            ("category", ("category", "type")),
        ),
    ),
    ContentType.manifest: ContentSpec(
        fields=(
            FieldSpec(("name",)),
            FieldSpec(("category", "type")),
            FieldSpec(("description",)),
            FieldSpec(("tags",), label="Tags", render="list"),
            FieldSpec(("metadata",), label="Metadata", render="json"),
            FieldSpec(("items",), label="Items", render="names"),
        ),
        metadata=(
            ("name", ("name",)),
            ("category", ("category",)),
        ),
    ),
}

# Manifest types stored in preview manifests -> embeddable content type.
# Anything not listed embeds as a generic manifest record.
MANIFEST_CONTENT_TYPES: dict[str, ContentType] = {
    "items": ContentType.item,
    "resources": ContentType.item,
    "npcs": ContentType.npc,
    "avatars": ContentType.character,
    "quests": ContentType.quest,
    "lore": ContentType.lore,
}


def parse_content_type(value: str | ContentType) -> ContentType:
    """Resolve a content type name, accepting manifest type aliases."""
    if isinstance(value, ContentType):
        return value
    normalized = value.strip().lower()
    try:
        return ContentType(normalized)
    except ValueError:
        pass
    if normalized in MANIFEST_CONTENT_TYPES:
        return MANIFEST_CONTENT_TYPES[normalized]
    raise UnknownContentTypeError(f"Unknown content type: {value}")


def content_type_for_manifest(manifest_type: str) -> ContentType:
    """Map a preview manifest type onto the content type of its records.

    Manifest types may also be content type names themselves (``npc``).
    """
    key = manifest_type.strip().lower()
    if key in MANIFEST_CONTENT_TYPES:
        return MANIFEST_CONTENT_TYPES[key]
    try:
        return ContentType(key)
    except ValueError:
        return ContentType.manifest


def build_embedding_text(content_type: ContentType, data: dict[str, Any]) -> str:
    """Concatenate the salient fields of ``data`` in registry order.

    Empty or missing fields are dropped; a record with no usable fields
    yields an empty string.
    """
    spec = CONTENT_REGISTRY[content_type]
    parts = [field.format(data) for field in spec.fields]
    return TEXT_DELIMITER.join(part for part in parts if part)


def extract_metadata(content_type: ContentType, data: dict[str, Any]) -> dict[str, Any]:
    """Copy the registry's metadata fields out of ``data`` (absent ones skipped)."""
    metadata: dict[str, Any] = {}
    for name, keys in CONTENT_REGISTRY[content_type].metadata:
        for key in keys:
            if data.get(key) is not None:
                metadata[name] = data[key]
                break
    return metadata


def record_key(record: Any) -> str:
    """Stable identifier for a manifest record.

    Records carry their own ``id``; anything else is keyed by a hash of its
    canonical JSON so identical anonymous records still collapse.
    """
    if isinstance(record, dict) and record.get("id") not in (None, ""):
        return str(record["id"])
    canonical = json.dumps(record, sort_keys=True, default=str)
    return "sha1:" + hashlib.sha1(canonical.encode("utf-8")).hexdigest()[:16]
