"""Data models for the prompt launcher."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

import ulid

from .errors import DocumentParseError


DEFAULT_FOLDER = "uncategorized"
INDEX_VERSION = 1


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed) into aware UTC."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError as e:
            raise DocumentParseError(f"Invalid timestamp: {value!r}") from e
    else:
        raise DocumentParseError(f"Invalid timestamp: {value!r}")

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def normalize_tags(tags: Optional[Iterable[str]]) -> List[str]:
    """Lower-case, strip and deduplicate tags, keeping first-seen order."""
    normalized: List[str] = []
    for tag in tags or []:
        clean = str(tag).strip().lower()
        if clean and clean not in normalized:
            normalized.append(clean)
    return normalized


@dataclass
class MetadataHeader:
    """Structured header embedded at the top of a prompt document."""
    name: str = ""
    description: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    created: Optional[str] = None


@dataclass
class Document:
    """
    A stored prompt.

    Only metadata lives here; the body stays in storage and is loaded on
    demand through ``file_path``. ``use_count`` and ``last_used_at`` are
    changed only by usage recording.
    """
    id: str
    name: str
    file_path: str
    description: Optional[str] = None
    folder: str = DEFAULT_FOLDER
    tags: List[str] = field(default_factory=list)
    use_count: int = 0
    last_used_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if not self.id:
            self.id = str(ulid.ULID())
        if not self.folder:
            self.folder = DEFAULT_FOLDER
        self.tags = normalize_tags(self.tags)
        self.use_count = max(0, int(self.use_count))

    def header(self) -> MetadataHeader:
        return MetadataHeader(
            name=self.name,
            description=self.description,
            tags=list(self.tags),
            created=format_timestamp(self.created_at),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "folder": self.folder,
            "tags": list(self.tags),
            "filePath": self.file_path,
            "useCount": self.use_count,
            "createdAt": format_timestamp(self.created_at),
        }
        if self.description:
            data["description"] = self.description
        if self.last_used_at is not None:
            data["lastUsedAt"] = format_timestamp(self.last_used_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Document":
        try:
            name = data["name"]
            file_path = data["filePath"]
        except KeyError as e:
            raise DocumentParseError(f"Index entry missing field {e}") from e

        last_used = data.get("lastUsedAt")
        created = data.get("createdAt")
        return cls(
            id=data.get("id", ""),
            name=name,
            file_path=file_path,
            description=data.get("description"),
            folder=data.get("folder") or DEFAULT_FOLDER,
            tags=data.get("tags") or [],
            use_count=data.get("useCount", 0),
            last_used_at=parse_timestamp(last_used) if last_used else None,
            created_at=parse_timestamp(created) if created else utc_now(),
        )


@dataclass(frozen=True)
class FieldMatch:
    """Matched character ranges (half-open) inside one document field."""
    field: str
    value: str
    indices: Tuple[Tuple[int, int], ...]
    ref_index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "field": self.field,
            "value": self.value,
            "indices": [list(span) for span in self.indices],
        }
        if self.ref_index is not None:
            data["refIndex"] = self.ref_index
        return data


@dataclass(frozen=True)
class SearchResult:
    """A ranked document with its score and highlight regions."""
    document: Document
    score: float
    matches: Tuple[FieldMatch, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prompt": self.document.to_dict(),
            "score": round(self.score, 6),
            "matches": [m.to_dict() for m in self.matches],
        }


@dataclass
class PromptIndex:
    """Persisted snapshot of the document collection."""
    documents: List[Document] = field(default_factory=list)
    version: int = INDEX_VERSION
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "documents": [d.to_dict() for d in self.documents],
            "updatedAt": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PromptIndex":
        if not isinstance(data, dict) or not isinstance(data.get("documents"), list):
            raise DocumentParseError("Index snapshot has no document list")
        updated = data.get("updatedAt")
        return cls(
            documents=[Document.from_dict(d) for d in data["documents"]],
            version=int(data.get("version", INDEX_VERSION)),
            updated_at=parse_timestamp(updated) if updated else utc_now(),
        )
