"""
Launcher controller.

Owns the interaction state and runs the reducer's effects against the
collaborators. Events are applied one at a time in arrival order. Query
edits are debounced: a newer edit replaces any pending one, and every key
event first applies the pending edit, so the reducer always sees the latest
query.

Paste sequence: load body -> compose text -> clipboard write -> usage bump
-> durable usage write (background) -> hide -> reset. A body or clipboard
failure skips the usage bump. Every paste ends hidden and reset, and input
arriving while a paste is in flight is ignored.
"""

import asyncio
from dataclasses import replace
from typing import List, Optional, Set

from loguru import logger

from .bus import Event, EventBus, get_event_bus
from .catalog import PromptCatalog
from .collaborators import BodyStore, Clipboard, UsageRecorder, WindowController
from .models import Document, SearchResult, utc_now
from .ranking import RankingEngine
from .state import (
    HideEffect,
    InteractionState,
    Key,
    KeyPressed,
    Mode,
    PasteEffect,
    Shown,
    TextChanged,
    Transition,
    clamp_index,
    reduce,
    reset_state,
)


# Joins a prompt body and the compose text.
PASTE_SEPARATOR = " "


def compose_paste_text(body: str, extra_text: str) -> str:
    if extra_text:
        return f"{body}{PASTE_SEPARATOR}{extra_text}"
    return body


class LauncherController:
    """Drives the launcher state machine for one session."""

    def __init__(
        self,
        catalog: PromptCatalog,
        engine: RankingEngine,
        store: BodyStore,
        clipboard: Clipboard,
        window: WindowController,
        usage_recorder: Optional[UsageRecorder] = None,
        event_bus: Optional[EventBus] = None,
        debounce_ms: int = 50,
    ):
        self.catalog = catalog
        self.engine = engine
        self.store = store
        self.clipboard = clipboard
        self.window = window
        self.usage_recorder = usage_recorder
        self.event_bus = event_bus or get_event_bus()
        self.debounce = max(debounce_ms, 0) / 1000.0

        self._state = InteractionState(visible=window.is_visible())
        self._lock = asyncio.Lock()
        self._busy = False
        self._pending_query: Optional[str] = None
        self._debounce_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()

        self.stats = {"pasted": 0, "dismissed": 0, "paste_failures": 0, "ignored": 0}

    @property
    def state(self) -> InteractionState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._busy

    def rank(self, query: str) -> List[SearchResult]:
        return self.engine.rank(query, self.catalog.documents())

    # Input

    async def dispatch(self, event) -> Transition:
        """Apply one event; ignored while a paste is in flight."""
        if self._busy:
            self.stats["ignored"] += 1
            logger.debug(f"Ignoring {event!r} while a paste is in flight")
            return Transition(self._state, handled=True)

        async with self._lock:
            transition = reduce(self._state, event, self.rank)
            self._state = transition.state

            effect = transition.effect
            if isinstance(effect, PasteEffect):
                await self._paste(effect.document, effect.extra_text)
                return Transition(self._state, effect, transition.handled)
            if isinstance(effect, HideEffect):
                await self._hide_window()
                self.stats["dismissed"] += 1
                await self._emit("launcher.dismissed", {})
            return transition

    async def press_key(self, key: Key) -> Transition:
        await self.flush()
        return await self.dispatch(KeyPressed(key))

    async def input_text(self, text: str) -> InteractionState:
        """
        Replace the text of the active field.

        Compose text applies immediately; query text is debounced.
        """
        if self._busy:
            self.stats["ignored"] += 1
            return self._state

        if self._state.mode is Mode.COMPOSING or self.debounce <= 0:
            self._cancel_debounce()
            self._pending_query = None
            await self.dispatch(TextChanged(text))
            return self._state

        self._pending_query = text
        self._cancel_debounce()
        task = asyncio.create_task(self._debounced_flush())
        self._debounce_task = task
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return self._state

    async def flush(self) -> None:
        """Apply a pending query edit now."""
        self._cancel_debounce()
        text = self._pending_query
        if text is None:
            return
        self._pending_query = None
        await self.dispatch(TextChanged(text))

    async def _debounced_flush(self) -> None:
        await asyncio.sleep(self.debounce)
        # Once the timer fired the edit must land; later flushes queue behind it
        self._debounce_task = None
        await self.flush()

    def _cancel_debounce(self) -> None:
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = None

    # Visibility

    async def show(self) -> InteractionState:
        try:
            await self.window.show()
        except Exception as e:
            logger.error(f"Failed to show launcher window: {e}")
        await self.dispatch(Shown())
        return self._state

    async def hide(self) -> InteractionState:
        """Dismiss from any mode: hide and reset."""
        await self.flush()
        async with self._lock:
            await self._hide_window()
            self._state = reset_state(visible=False)
        return self._state

    async def toggle(self) -> InteractionState:
        if self._state.visible:
            return await self.hide()
        return await self.show()

    async def refresh(self) -> InteractionState:
        """Re-rank the current query after the catalog changed."""
        async with self._lock:
            state = self._state
            if state.mode is Mode.SEARCHING:
                results = tuple(self.rank(state.query_text))
                self._state = replace(
                    state,
                    results=results,
                    selected_index=clamp_index(state.selected_index, len(results)),
                )
        return self._state

    # Paste

    async def _paste(self, document: Document, extra_text: str) -> None:
        self._busy = True
        try:
            if await self._deliver(document, extra_text):
                self.stats["pasted"] += 1
            else:
                self.stats["paste_failures"] += 1
        finally:
            await self._hide_window()
            self._state = reset_state(visible=False)
            self._busy = False

    async def _deliver(self, document: Document, extra_text: str) -> bool:
        try:
            body = await self.store.load_body(document.file_path)
        except Exception as e:
            logger.error(f"Cannot load prompt {document.name!r}: {e}")
            return False

        text = compose_paste_text(body, extra_text)
        try:
            await self.clipboard.write(text)
        except Exception as e:
            logger.error(f"Clipboard write failed for {document.name!r}: {e}")
            return False

        self._record_usage(document)
        await self._emit("launcher.pasted", {
            "id": document.id,
            "name": document.name,
            "extra_text": bool(extra_text),
            "length": len(text),
        })
        logger.info(f"Pasted prompt {document.name!r}")
        return True

    def _record_usage(self, document: Document) -> None:
        if document.id in self.catalog:
            document = self.catalog.record_usage(document.id)
        else:
            logger.warning(f"Pasted prompt {document.name!r} is no longer in the catalog")
            document.use_count += 1
            document.last_used_at = utc_now()

        if self.usage_recorder is not None:
            task = asyncio.create_task(self._persist_usage(document))
            self._background.add(task)
            task.add_done_callback(self._background.discard)

    async def _persist_usage(self, document: Document) -> None:
        try:
            await self.usage_recorder.record(document)
        except Exception as e:
            logger.error(f"Failed to persist usage for {document.name!r}: {e}")

    async def _hide_window(self) -> None:
        try:
            await self.window.hide()
        except Exception as e:
            logger.error(f"Failed to hide launcher window: {e}")

    async def _emit(self, event_type: str, data: dict) -> None:
        await self.event_bus.emit(Event(type=event_type, data=data, source="launcher"))

    async def wait_idle(self) -> None:
        """Wait for pending query edits and background usage writes."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
