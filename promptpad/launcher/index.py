"""Index snapshot persistence and rebuild-from-storage."""

import asyncio
import json
from pathlib import Path
from typing import Optional, Tuple

import aiofiles
import aiofiles.os
import ulid
from loguru import logger

from .catalog import PromptCatalog
from .errors import (
    DocumentNotFoundError,
    DocumentParseError,
    ScanReport,
    StorageIOError,
)
from .models import Document, PromptIndex, utc_now
from .storage import PromptStore


INDEX_FILE_NAME = "index.json"


class IndexStore:
    """Reads and writes ``<root>/index.json``."""

    def __init__(self, root: Path):
        self.path = Path(root) / INDEX_FILE_NAME
        self._save_lock = asyncio.Lock()

    async def load(self) -> PromptIndex:
        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                content = await f.read()
        except FileNotFoundError:
            raise DocumentNotFoundError("Index snapshot not found", str(self.path)) from None
        except (OSError, UnicodeDecodeError) as e:
            raise DocumentParseError(f"Unreadable index snapshot: {e}", str(self.path)) from e

        try:
            return PromptIndex.from_dict(json.loads(content))
        except (ValueError, TypeError, AttributeError) as e:
            raise DocumentParseError(f"Corrupt index snapshot: {e}", str(self.path)) from e

    async def save(self, index: PromptIndex) -> None:
        """Write the snapshot atomically; concurrent saves land in call order."""
        async with self._save_lock:
            index.updated_at = utc_now()
            payload = json.dumps(index.to_dict(), indent=2, ensure_ascii=False)
            tmp_path = self.path.with_name(f"{self.path.name}.{ulid.ULID()}.tmp")
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                    await f.write(payload)
                await aiofiles.os.replace(tmp_path, self.path)
            except OSError as e:
                raise StorageIOError(f"Failed to save index: {e}", str(self.path)) from e
        logger.debug(f"Saved index with {len(index.documents)} prompts")

    async def rebuild(
        self, store: PromptStore, previous: Optional[PromptIndex] = None
    ) -> Tuple[PromptIndex, ScanReport]:
        """
        Rebuild the snapshot from the prompt files.

        Documents whose locator appears in ``previous`` keep their id and
        usage counters.
        """
        documents, report = await store.scan()
        known = {d.file_path: d for d in previous.documents} if previous else {}

        merged = []
        for document in documents:
            old = known.get(document.file_path)
            if old is not None:
                document = Document(
                    id=old.id,
                    name=document.name,
                    file_path=document.file_path,
                    description=document.description,
                    folder=document.folder,
                    tags=document.tags,
                    use_count=old.use_count,
                    last_used_at=old.last_used_at,
                    created_at=document.created_at,
                )
            merged.append(document)

        index = PromptIndex(documents=merged)
        await self.save(index)
        logger.info(f"Rebuilt index: {len(merged)} prompts, {report.failed} skipped")
        return index, report

    async def load_or_rebuild(self, store: PromptStore) -> PromptIndex:
        """Load the snapshot, rebuilding it when missing or unreadable."""
        try:
            return await self.load()
        except DocumentNotFoundError:
            logger.info("No index snapshot, rebuilding from prompt files")
        except DocumentParseError as e:
            logger.warning(f"Index snapshot unusable, rebuilding: {e}")
        index, _ = await self.rebuild(store)
        return index


class IndexUsageRecorder:
    """Persists the catalog's usage counters by saving a fresh snapshot."""

    def __init__(self, index_store: IndexStore, catalog: PromptCatalog):
        self.index_store = index_store
        self.catalog = catalog

    async def record(self, document: Document) -> None:
        await self.index_store.save(self.catalog.snapshot())
        logger.debug(f"Persisted usage for {document.name!r}")
