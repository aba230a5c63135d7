"""Bulk JSON import/export and single markdown file import."""

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger

from . import codec
from .catalog import PromptCatalog
from .errors import PromptPadError, ScanReport, ValidationError
from .models import DEFAULT_FOLDER, Document, format_timestamp
from .storage import PromptStore


async def import_markdown_file(
    store: PromptStore,
    catalog: PromptCatalog,
    file_name: str,
    content: str,
    folder: Optional[str] = None,
) -> Document:
    """
    Import one markdown document.

    The header name wins over the file name; a missing header name falls back
    to the file stem.
    """
    header, body = codec.parse(content)
    name = header.name or Path(file_name).stem
    document = await store.create_prompt(
        name=name,
        content=body,
        description=header.description,
        folder=folder or DEFAULT_FOLDER,
        tags=header.tags,
        created=header.created,
    )
    catalog.add(document)
    return document


def _import_item(item: Any) -> Dict[str, Any]:
    if not isinstance(item, dict):
        raise ValidationError("Import item must be an object")
    content = item.get("content")
    if not isinstance(content, str):
        raise ValidationError("Import item needs string content")
    tags = item.get("tags") or []
    if not isinstance(tags, list):
        raise ValidationError("Import item tags must be a list")
    return {
        "name": item.get("name"),
        "content": content,
        "description": item.get("description"),
        "folder": item.get("folder") or DEFAULT_FOLDER,
        "tags": [str(t) for t in tags],
    }


async def import_bulk(
    items: Iterable[Any],
    store: PromptStore,
    catalog: PromptCatalog,
) -> ScanReport:
    """Create one prompt per item; bad items are reported, not fatal."""
    report = ScanReport()
    for position, item in enumerate(items):
        label = item.get("name") if isinstance(item, dict) else None
        label = label or f"item {position}"
        try:
            document = await store.create_prompt(**_import_item(item))
        except PromptPadError as e:
            logger.warning(f"Failed to import {label!r}: {e}")
            report.add_failure(str(label), e)
            continue
        catalog.add(document)
        report.add_success()

    logger.info(f"Imported {report.succeeded} prompts ({report.failed} failed)")
    return report


async def export_documents(store: PromptStore, documents: Iterable[Document]) -> List[Dict[str, Any]]:
    """Export documents with their bodies; unreadable ones are skipped."""
    exported = []
    for document in documents:
        try:
            body = await store.load_body(document.file_path)
        except PromptPadError as e:
            logger.warning(f"Failed to export {document.name!r}: {e}")
            continue

        item: Dict[str, Any] = {
            "name": document.name,
            "content": body,
            "folder": document.folder,
            "tags": list(document.tags),
            "useCount": document.use_count,
            "createdAt": format_timestamp(document.created_at),
        }
        if document.description:
            item["description"] = document.description
        if document.last_used_at is not None:
            item["lastUsedAt"] = format_timestamp(document.last_used_at)
        exported.append(item)
    return exported
