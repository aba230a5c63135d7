"""
Filesystem prompt store.

Layout under the storage root:

    prompts/
        uncategorized/
            code-review.md
        writing/
            summarize.md

A document's locator is its path relative to ``prompts/`` with forward
slashes. Folders are a single level deep.
"""

import re
from pathlib import Path
from typing import List, Optional, Tuple

import aiofiles
import aiofiles.os
import ulid
from loguru import logger

from . import codec
from .errors import (
    DocumentNotFoundError,
    DocumentParseError,
    PromptPadError,
    ScanReport,
    StorageIOError,
    ValidationError,
)
from .models import (
    DEFAULT_FOLDER,
    Document,
    MetadataHeader,
    parse_timestamp,
    utc_now,
)


PROMPTS_DIR_NAME = "prompts"
PROMPT_SUFFIX = ".md"
MAX_SLUG_LENGTH = 50

_SLUG_UNSAFE = re.compile(r"[^\w\- ]", re.UNICODE)


def sanitize_filename(name: str) -> str:
    """File stem for a prompt name: lower-case, dashes for anything unsafe."""
    slug = _SLUG_UNSAFE.sub("-", name.strip()).lower().replace(" ", "-")
    slug = slug[:MAX_SLUG_LENGTH].strip("-")
    return slug or "prompt"


def validate_name(name: Optional[str]) -> str:
    if name is None or not name.strip():
        raise ValidationError("Prompt name is required")
    return name.strip()


def validate_folder(folder: Optional[str]) -> str:
    folder = (folder or DEFAULT_FOLDER).strip()
    if not folder or folder in (".", "..") or "/" in folder or "\\" in folder:
        raise ValidationError(f"Invalid folder name: {folder!r}")
    return folder


class PromptStore:
    """Reads and writes prompt documents under ``<root>/prompts``."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self.prompts_dir = self.root / PROMPTS_DIR_NAME

    def initialize(self) -> None:
        (self.prompts_dir / DEFAULT_FOLDER).mkdir(parents=True, exist_ok=True)

    def resolve(self, locator: str) -> Path:
        parts = [p for p in re.split(r"[/\\]", locator) if p]
        if not parts or any(p in (".", "..") for p in parts):
            raise DocumentNotFoundError("Invalid prompt locator", locator)
        return self.prompts_dir.joinpath(*parts)

    def locator_for(self, path: Path) -> str:
        return path.relative_to(self.prompts_dir).as_posix()

    async def read_text(self, locator: str) -> str:
        path = self.resolve(locator)
        try:
            async with aiofiles.open(path, "rb") as f:
                raw = await f.read()
        except FileNotFoundError:
            raise DocumentNotFoundError("Prompt file not found", locator) from None
        except OSError as e:
            raise DocumentParseError(f"Unreadable prompt file: {e}", locator) from e
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DocumentParseError(f"Prompt file is not UTF-8: {e}", locator) from e

    async def load(self, locator: str) -> Tuple[MetadataHeader, str]:
        text = await self.read_text(locator)
        try:
            return codec.parse(text)
        except DocumentParseError as e:
            raise DocumentParseError(e.message, locator) from e

    async def load_body(self, locator: str) -> str:
        _, body = await self.load(locator)
        return body

    async def save_body(self, locator: str, header: MetadataHeader, body: str) -> None:
        """Write a document atomically (temp file + replace)."""
        path = self.resolve(locator)
        content = codec.stringify(header, body)
        tmp_path = path.with_name(f"{path.name}.{ulid.ULID()}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(content + "\n")
            await aiofiles.os.replace(tmp_path, path)
        except OSError as e:
            raise StorageIOError(f"Failed to write prompt: {e}", locator) from e
        logger.debug(f"Wrote prompt {locator}")

    def _free_locator(self, folder: str, name: str) -> str:
        stem = sanitize_filename(name)
        candidate = f"{folder}/{stem}{PROMPT_SUFFIX}"
        counter = 2
        while self.resolve(candidate).exists():
            candidate = f"{folder}/{stem}-{counter}{PROMPT_SUFFIX}"
            counter += 1
        return candidate

    async def create_prompt(
        self,
        name: str,
        content: str,
        description: Optional[str] = None,
        folder: Optional[str] = None,
        tags: Optional[List[str]] = None,
        created: Optional[str] = None,
    ) -> Document:
        """Validate, write and return a new prompt document."""
        name = validate_name(name)
        folder = validate_folder(folder)

        created_at = utc_now()
        if created:
            try:
                created_at = parse_timestamp(created)
            except DocumentParseError:
                logger.warning(f"Ignoring unparsable created timestamp {created!r}")

        document = Document(
            id="",
            name=name,
            file_path=self._free_locator(folder, name),
            description=description or None,
            folder=folder,
            tags=tags or [],
            created_at=created_at,
        )
        await self.save_body(document.file_path, document.header(), content.strip())
        logger.info(f"Created prompt {document.name!r} at {document.file_path}")
        return document

    async def update_prompt(
        self,
        document: Document,
        name: Optional[str] = None,
        description: Optional[str] = None,
        content: Optional[str] = None,
        folder: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> Document:
        """Rewrite a prompt, moving it when the folder changes."""
        new_name = validate_name(name) if name is not None else document.name
        new_folder = validate_folder(folder) if folder is not None else document.folder

        if content is None:
            content = await self.load_body(document.file_path)

        locator = document.file_path
        if new_folder != document.folder:
            locator = self._free_locator(new_folder, new_name)

        updated = Document(
            id=document.id,
            name=new_name,
            file_path=locator,
            description=(description or None) if description is not None else document.description,
            folder=new_folder,
            tags=tags if tags is not None else document.tags,
            use_count=document.use_count,
            last_used_at=document.last_used_at,
            created_at=document.created_at,
        )
        await self.save_body(locator, updated.header(), content.strip())

        if locator != document.file_path:
            try:
                await aiofiles.os.remove(self.resolve(document.file_path))
            except FileNotFoundError:
                pass
            except OSError as e:
                raise StorageIOError(f"Failed to remove old prompt file: {e}", document.file_path) from e
        return updated

    async def delete_prompt(self, document: Document) -> None:
        """Remove a prompt's file; an already missing file is not an error."""
        try:
            await aiofiles.os.remove(self.resolve(document.file_path))
        except FileNotFoundError:
            logger.warning(f"Prompt file already gone: {document.file_path}")
        except OSError as e:
            raise StorageIOError(f"Failed to delete prompt: {e}", document.file_path) from e
        logger.info(f"Deleted prompt {document.name!r} at {document.file_path}")

    async def search_content(self, documents: List[Document], query: str) -> List[Document]:
        """Documents whose body contains ``query``, ignoring case."""
        needle = query.casefold()
        found = []
        for document in documents:
            try:
                body = await self.load_body(document.file_path)
            except PromptPadError as e:
                logger.warning(f"Skipping {document.file_path} in content search: {e}")
                continue
            if needle in body.casefold():
                found.append(document)
        return found

    async def read_document(self, locator: str) -> Document:
        """Build a Document from a stored file's header."""
        header, _ = await self.load(locator)
        path = self.resolve(locator)
        parent = path.parent
        folder = parent.name if parent != self.prompts_dir else DEFAULT_FOLDER

        created_at = utc_now()
        if header.created:
            try:
                created_at = parse_timestamp(header.created)
            except DocumentParseError:
                logger.warning(f"Unparsable created timestamp in {locator}: {header.created!r}")

        return Document(
            id="",
            name=header.name or path.stem,
            file_path=locator,
            description=header.description,
            folder=folder,
            tags=header.tags,
            created_at=created_at,
        )

    def _prompt_files(self) -> List[Path]:
        if not self.prompts_dir.exists():
            return []
        files = sorted(self.prompts_dir.glob(f"*{PROMPT_SUFFIX}"))
        for folder in sorted(p for p in self.prompts_dir.iterdir() if p.is_dir()):
            files.extend(sorted(folder.glob(f"*{PROMPT_SUFFIX}")))
        return [f for f in files if f.is_file()]

    async def scan(self) -> Tuple[List[Document], ScanReport]:
        """Read every prompt file; unreadable ones are skipped and reported."""
        documents: List[Document] = []
        report = ScanReport()
        for path in self._prompt_files():
            locator = self.locator_for(path)
            try:
                documents.append(await self.read_document(locator))
                report.add_success()
            except PromptPadError as e:
                logger.warning(f"Skipping prompt file {locator}: {e}")
                report.add_failure(locator, e)
        logger.info(f"Scanned {report.succeeded} prompts ({report.failed} skipped)")
        return documents, report

    def list_folders(self) -> List[str]:
        if not self.prompts_dir.exists():
            return []
        return sorted(p.name for p in self.prompts_dir.iterdir() if p.is_dir())

    def create_folder(self, name: str) -> str:
        name = validate_folder(name)
        try:
            (self.prompts_dir / name).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOError(f"Failed to create folder: {e}", name) from e
        return name
