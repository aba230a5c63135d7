"""Main daemon process for PromptPad."""

import asyncio
import signal
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import psutil
from aiohttp import web
from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from .. import __version__
from .api import create_api_app
from .bus import Event, get_event_bus
from .catalog import PromptCatalog
from .collaborators import HeadlessWindow, MemoryClipboard, PreservingClipboard
from .config import DEFAULT_CONFIG_PATH, Config
from .controller import LauncherController
from .errors import (
    DocumentNotFoundError,
    DocumentParseError,
    ScanReport,
    StorageIOError,
    ValidationError,
)
from .index import IndexStore, IndexUsageRecorder
from .models import Document
from .ranking import RankingEngine
from .storage import PromptStore
from .transfer import export_documents, import_bulk, import_markdown_file


class LauncherDaemon:
    """Main daemon coordinating storage, index and the launcher session."""

    def __init__(self, config: Config, config_path: Optional[Path] = None,
                 clipboard=None, window=None, event_bus=None):
        self.config = config
        self.config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        self.start_time = datetime.now(timezone.utc)

        self.event_bus = event_bus or get_event_bus()
        self.store = PromptStore(config.storage_path)
        self.index_store = IndexStore(config.storage_path)
        self.catalog = PromptCatalog()
        self.engine = RankingEngine(
            field_weights=config.search.field_weights,
            cutoff=config.search.cutoff,
            empty_query_limit=config.search.empty_query_limit,
        )

        clipboard = clipboard or MemoryClipboard()
        if config.paste.preserve_clipboard:
            clipboard = PreservingClipboard(clipboard, config.paste.restore_delay_ms / 1000.0)
        self.clipboard = clipboard

        self.controller = LauncherController(
            catalog=self.catalog,
            engine=self.engine,
            store=self.store,
            clipboard=self.clipboard,
            window=window or HeadlessWindow(visible=False),
            usage_recorder=IndexUsageRecorder(self.index_store, self.catalog),
            event_bus=self.event_bus,
            debounce_ms=config.search.debounce_ms,
        )

        self.stats = {
            "paste_count": 0,
            "dismiss_count": 0,
            "import_count": 0,
        }
        self.running = False
        self._stopped = False

        # HTTP API
        self.api_app = None
        self.api_runner = None
        self.api_site = None

    async def initialize(self) -> None:
        """Prepare storage and load the catalog from the index snapshot."""
        self.store.initialize()
        index = await self.index_store.load_or_rebuild(self.store)
        self.catalog.replace_all(index.documents)
        logger.info(f"Loaded {len(self.catalog)} prompts from {self.config.storage_path}")

    async def start(self, serve_api: bool = True) -> None:
        """Start all daemon services."""
        logger.info("Starting PromptPad daemon...")

        await self.event_bus.start()
        await self.initialize()

        self.event_bus.subscribe("launcher.pasted", self._on_paste)
        self.event_bus.subscribe("launcher.dismissed", self._on_dismiss)
        self.event_bus.subscribe("prompt.imported", self._on_import)

        if serve_api:
            await self._start_api()

        self.running = True
        logger.info("PromptPad daemon started successfully")

    async def stop(self) -> None:
        """Stop all daemon services."""
        if self._stopped:
            return
        self._stopped = True
        self.running = False
        logger.info("Stopping PromptPad daemon...")

        if self.api_site:
            await self.api_site.stop()
        if self.api_runner:
            await self.api_runner.cleanup()

        await self.controller.wait_idle()
        if isinstance(self.clipboard, PreservingClipboard):
            await self.clipboard.wait_restored()
        await self.event_bus.stop()

        logger.info("PromptPad daemon stopped")

    def request_stop(self) -> None:
        """Ask the main loop to exit; cleanup happens in stop()."""
        self.running = False

    async def _start_api(self) -> None:
        """Start the HTTP API server."""
        host, port = self.config.api.host, self.config.api.port
        self.api_app = create_api_app(self)
        self.api_runner = web.AppRunner(self.api_app)
        await self.api_runner.setup()

        self.api_site = web.TCPSite(self.api_runner, host, port)
        await self.api_site.start()

        logger.info(f"API server started on http://{host}:{port}")

    # Library operations used by the API

    async def _library_changed(self) -> None:
        await self.index_store.save(self.catalog.snapshot())
        await self.controller.refresh()

    async def _emit(self, event_type: str, data: Dict[str, Any]) -> None:
        await self.event_bus.emit(Event(type=event_type, data=data, source="daemon"))

    async def create_prompt(self, **fields: Any) -> Document:
        document = await self.store.create_prompt(**fields)
        self.catalog.add(document)
        await self._library_changed()
        await self._emit("prompt.created", {"id": document.id, "name": document.name})
        return document

    async def update_prompt(self, document_id: str, **fields: Any) -> Document:
        """Rewrite one prompt; unset fields keep their current value."""
        document = self.catalog.get(document_id)
        updated = await self.store.update_prompt(document, **fields)
        self.catalog.add(updated)
        await self._library_changed()
        await self._emit("prompt.updated", {"id": updated.id, "name": updated.name})
        return updated

    async def delete_prompt(self, document_id: str) -> Document:
        document = self.catalog.get(document_id)
        await self.store.delete_prompt(document)
        self.catalog.remove(document_id)
        await self._library_changed()
        await self._emit("prompt.deleted", {"id": document.id, "name": document.name})
        return document

    async def prompt_content(self, document_id: str) -> str:
        return await self.store.load_body(self.catalog.get(document_id).file_path)

    async def search_content(self, query: str) -> List[Document]:
        return await self.store.search_content(self.catalog.documents(), query)

    def create_folder(self, name: str) -> str:
        folder = self.store.create_folder(name)
        logger.info(f"Created folder {folder!r}")
        return folder

    def list_folders(self) -> List[str]:
        return sorted(set(self.store.list_folders()) | set(self.catalog.folders))

    async def import_items(self, items: Iterable[Any]) -> ScanReport:
        report = await import_bulk(items, self.store, self.catalog)
        if report.succeeded:
            await self._library_changed()
        await self._emit("prompt.imported", report.to_dict())
        return report

    async def import_markdown(
        self, file_name: str, content: str, folder: Optional[str] = None
    ) -> Document:
        document = await import_markdown_file(self.store, self.catalog, file_name, content, folder)
        await self._library_changed()
        await self._emit("prompt.imported", {"success": 1, "failed": 0, "errors": []})
        return document

    async def export_items(self) -> List[Dict[str, Any]]:
        return await export_documents(self.store, self.catalog.documents())

    async def reindex(self) -> ScanReport:
        """Rebuild the index from the prompt files, keeping usage counters."""
        try:
            previous = await self.index_store.load()
        except (DocumentNotFoundError, DocumentParseError):
            previous = self.catalog.snapshot()
        index, report = await self.index_store.rebuild(self.store, previous)
        self.catalog.replace_all(index.documents)
        await self.controller.refresh()
        await self._emit("index.rebuilt", report.to_dict())
        return report

    # Settings

    def get_settings(self) -> Dict[str, Any]:
        return self.config.model_dump(mode="json")

    async def update_settings(self, changes: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate, persist and apply settings changes.

        Search and paste settings apply immediately; storage, API and
        hotkey changes take effect on the next start.
        """
        try:
            config = self.config.updated(changes)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid settings: {e}") from None

        try:
            config.save(self.config_path)
        except OSError as e:
            raise StorageIOError(f"Failed to save settings: {e}", str(self.config_path)) from e

        self.config = config
        self.engine.field_weights = dict(config.search.field_weights)
        self.engine.cutoff = config.search.cutoff
        self.engine.empty_query_limit = config.search.empty_query_limit
        self.controller.debounce = config.search.debounce_ms / 1000.0
        if isinstance(self.clipboard, PreservingClipboard):
            self.clipboard.restore_delay = config.paste.restore_delay_ms / 1000.0
        await self.controller.refresh()
        logger.info(f"Settings updated and saved to {self.config_path}")
        return self.get_settings()

    # Stats

    async def _on_paste(self, event: Event) -> None:
        self.stats["paste_count"] += 1

    async def _on_dismiss(self, event: Event) -> None:
        self.stats["dismiss_count"] += 1

    async def _on_import(self, event: Event) -> None:
        self.stats["import_count"] += event.data.get("success", 0)

    def get_status(self) -> dict:
        """Get daemon status and statistics."""
        process = psutil.Process()
        uptime = (datetime.now(timezone.utc) - self.start_time).total_seconds()

        return {
            "status": "running" if self.running else "stopped",
            "version": __version__,
            "uptime": f"{uptime:.0f}s",
            "stats": {
                "prompt_count": len(self.catalog),
                "folder_count": len(self.list_folders()),
                "paste_count": self.stats["paste_count"],
                "dismiss_count": self.stats["dismiss_count"],
                "import_count": self.stats["import_count"],
                "memory_mb": process.memory_info().rss / 1024 / 1024,
                "cpu_percent": process.cpu_percent(),
            },
            "config": {
                "storage_path": str(self.config.storage_path),
                "hotkey": self.config.hotkey,
                "theme": self.config.theme,
                "preserve_clipboard": self.config.paste.preserve_clipboard,
            },
        }


def setup_logging(level: str = "INFO") -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        level=level,
    )

    log_dir = Path.home() / ".local" / "share" / "promptpad" / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    logger.add(
        log_dir / "daemon.log",
        rotation="1 day",
        retention="7 days",
        level="DEBUG",
    )


async def main(config_path: Optional[str] = None):
    """Main entry point for the daemon."""
    setup_logging()

    path = Config.locate(Path(config_path) if config_path else None)
    try:
        config = Config.load(path)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    setup_logging(config.log_level)
    daemon = LauncherDaemon(config, config_path=path)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler, daemon, sig)

    try:
        await daemon.start()

        # Keep running until stopped
        while daemon.running:
            await asyncio.sleep(1)

    except Exception as e:
        logger.exception(f"Daemon error: {e}")
    finally:
        await daemon.stop()


def _signal_handler(daemon: LauncherDaemon, sig) -> None:
    logger.info(f"Received signal {sig}, shutting down...")
    daemon.request_stop()


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else None))
