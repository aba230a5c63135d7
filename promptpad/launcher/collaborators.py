"""
Interfaces the launcher core consumes, plus headless implementations.

Real clipboard access, keystroke simulation and window chrome belong to the
presentation layer. The daemon runs with the in-memory clipboard and the
headless window below unless a presentation layer provides its own.
"""

import asyncio
from typing import List, Optional, Protocol, Set, runtime_checkable

from loguru import logger

from .models import Document, MetadataHeader


@runtime_checkable
class BodyStore(Protocol):
    async def load_body(self, locator: str) -> str: ...

    async def save_body(self, locator: str, header: MetadataHeader, body: str) -> None: ...


@runtime_checkable
class Clipboard(Protocol):
    async def write(self, text: str) -> None: ...

    async def read(self) -> Optional[str]: ...


@runtime_checkable
class WindowController(Protocol):
    async def show(self) -> None: ...

    async def hide(self) -> None: ...

    def is_visible(self) -> bool: ...


@runtime_checkable
class UsageRecorder(Protocol):
    async def record(self, document: Document) -> None: ...


class MemoryClipboard:
    """Clipboard kept in process memory; remembers every write."""

    def __init__(self, initial: Optional[str] = None):
        self.content = initial
        self.history: List[str] = []

    async def write(self, text: str) -> None:
        self.content = text
        self.history.append(text)

    async def read(self) -> Optional[str]:
        return self.content


class HeadlessWindow:
    """Window stand-in that only tracks visibility."""

    def __init__(self, visible: bool = True):
        self._visible = visible

    async def show(self) -> None:
        self._visible = True

    async def hide(self) -> None:
        self._visible = False

    def is_visible(self) -> bool:
        return self._visible


class PreservingClipboard:
    """
    Restores the previous clipboard content after a paste.

    The previous content is read before writing and written back once
    ``restore_delay`` seconds have passed, leaving time for the downstream
    paste keystroke to fire.
    """

    def __init__(self, inner: Clipboard, restore_delay: float = 0.5):
        self.inner = inner
        self.restore_delay = restore_delay
        self._pending: Set[asyncio.Task] = set()

    async def write(self, text: str) -> None:
        try:
            saved = await self.inner.read()
        except Exception as e:
            logger.warning(f"Could not read clipboard before paste: {e}")
            saved = None

        await self.inner.write(text)

        if saved is not None:
            task = asyncio.create_task(self._restore(saved))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def read(self) -> Optional[str]:
        return await self.inner.read()

    async def _restore(self, saved: str) -> None:
        await asyncio.sleep(self.restore_delay)
        try:
            await self.inner.write(saved)
            logger.debug("Restored previous clipboard content")
        except Exception as e:
            logger.error(f"Failed to restore clipboard: {e}")

    async def wait_restored(self) -> None:
        """Wait for scheduled restores (used on shutdown)."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
