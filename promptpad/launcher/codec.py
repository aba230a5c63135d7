"""
Prompt header codec.

Prompt files are markdown documents with a small ``---`` delimited header:

    ---
    name: Code Review
    description: "Review: checklist"
    tags: [dev, "c#"]
    created: "2025-01-15T10:30:00Z"
    ---

    Body text...

Only the four header keys above are understood, and only a minimal YAML
subset is accepted: one ``key: value`` per line, optional surrounding quotes,
and a bracketed tag list. Inside double quotes ``\\"`` and ``\\\\`` are the
only escapes. ``parse(stringify(h, b))`` reproduces ``h`` and ``b`` for
populated fields.
"""

import re
from typing import Any, Dict, List, Tuple, Union

import frontmatter
from frontmatter.default_handlers import BaseHandler
from loguru import logger

from .errors import DocumentParseError, ValidationError
from .models import MetadataHeader


DELIMITER = "---"
HEADER_KEYS = ("name", "description", "tags", "created")

SCALAR_SPECIALS = (":", "#", "'", '"')
TAG_SPECIALS = SCALAR_SPECIALS + (",", "[", "]")

ESCAPED = re.compile(r'\\(["\\])')


def needs_quotes(value: str, specials: Tuple[str, ...] = SCALAR_SPECIALS) -> bool:
    if value != value.strip():
        return True
    return any(ch in value for ch in specials)


def quote(value: str, specials: Tuple[str, ...] = SCALAR_SPECIALS) -> str:
    """Double-quote a value when it holds a special character."""
    if "\n" in value or "\r" in value:
        raise ValidationError(f"Header values must be single-line: {value!r}")
    if needs_quotes(value, specials):
        return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return value


def unquote(value: str) -> str:
    """Strip matching surrounding quotes; unescape ``\\"`` and ``\\\\`` inside double quotes."""
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        inner = value[1:-1]
        if value[0] == '"':
            inner = ESCAPED.sub(r"\1", inner)
        return inner
    return value


def split_tag_list(value: str) -> List[str]:
    """Split the inside of ``[...]`` on commas that are not inside quotes."""
    entries: List[str] = []
    current: List[str] = []
    quote_char = None
    i = 0
    while i < len(value):
        ch = value[i]
        if quote_char:
            current.append(ch)
            if quote_char == '"' and ch == "\\" and i + 1 < len(value):
                current.append(value[i + 1])
                i += 1
            elif ch == quote_char:
                quote_char = None
        elif ch in ("'", '"') and not "".join(current).strip():
            quote_char = ch
            current.append(ch)
        elif ch == ",":
            entries.append("".join(current))
            current = []
        else:
            current.append(ch)
        i += 1
    entries.append("".join(current))

    # Blank entries come from "[]" or stray commas; quoted blanks are real tags
    return [unquote(entry.strip()) for entry in entries if entry.strip()]


class PromptHeaderHandler(BaseHandler):
    """Loads and exports the minimal prompt header format."""

    FM_BOUNDARY = re.compile(r"^---[ \t]*\r?$", re.MULTILINE)
    START_DELIMITER = END_DELIMITER = DELIMITER

    def detect(self, text: str) -> bool:
        """A header needs an opening delimiter on the first line and a closing one."""
        if not self.FM_BOUNDARY.match(text):
            return False
        return len(self.FM_BOUNDARY.findall(text)) >= 2

    def load(self, fm: str) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {}
        # Only "\n" ends a line; values may hold other line-like separators
        for line_no, raw_line in enumerate(fm.split("\n"), start=1):
            line = raw_line.strip()
            if not line:
                continue
            if ":" not in line:
                raise DocumentParseError(
                    f"Header line {line_no} is not 'key: value': {line!r}"
                )
            key, _, value = line.partition(":")
            key = key.strip()
            value = value.strip()

            if key == "tags":
                if value.startswith("[") and value.endswith("]"):
                    metadata["tags"] = split_tag_list(value[1:-1])
                else:
                    logger.warning(f"Ignoring tags value without brackets: {value!r}")
            elif key in ("name", "description", "created"):
                metadata[key] = unquote(value)
        return metadata

    def export(self, metadata: Dict[str, Any], **kwargs) -> str:
        lines = []
        for key in HEADER_KEYS:
            value = metadata.get(key)
            if not value:
                continue
            if key == "tags":
                tags = [quote(str(t), TAG_SPECIALS) for t in value if str(t)]
                if tags:
                    lines.append(f"tags: [{', '.join(tags)}]")
            else:
                lines.append(f"{key}: {quote(str(value))}")
        return "\n".join(lines)


HANDLER = PromptHeaderHandler()


def parse(raw_text: Union[str, bytes]) -> Tuple[MetadataHeader, str]:
    """
    Split a prompt document into its header and body.

    Text without a leading header block is returned whole (trimmed) as the
    body with an empty header; the caller substitutes a name fallback.
    """
    if isinstance(raw_text, bytes):
        try:
            raw_text = raw_text.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DocumentParseError(f"Document is not valid UTF-8: {e}") from e

    text = raw_text.strip()
    if not HANDLER.detect(text):
        return MetadataHeader(), text

    post = frontmatter.loads(text, handler=HANDLER)
    header = MetadataHeader(
        name=post.get("name", ""),
        description=post.get("description") or None,
        tags=list(post.get("tags", [])),
        created=post.get("created") or None,
    )
    return header, post.content


def stringify(header: MetadataHeader, body: str) -> str:
    """Render a header and body back into a prompt document."""
    post = frontmatter.Post(
        body,
        handler=HANDLER,
        name=header.name,
        description=header.description,
        tags=list(header.tags),
        created=header.created,
    )
    return frontmatter.dumps(post, handler=HANDLER)
