"""
Launcher interaction state and its reducer.

The launcher has two modes. In SEARCHING the user types a query and moves a
selection through ranked results; in COMPOSING one prompt has been promoted
and the user types extra text to send along with it. ``reduce`` applies one
input event to a state and returns the next state, an optional effect for
the controller to run (paste or hide), and whether the key was consumed.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .models import Document, SearchResult


Ranker = Callable[[str], List[SearchResult]]


class Mode(Enum):
    SEARCHING = "searching"
    COMPOSING = "composing"


class Key(Enum):
    UP = "up"
    DOWN = "down"
    TAB = "tab"
    RIGHT = "right"
    SPACE = "space"
    ENTER = "enter"
    ESCAPE = "escape"
    BACKSPACE = "backspace"


@dataclass(frozen=True)
class KeyPressed:
    key: Key


@dataclass(frozen=True)
class TextChanged:
    """The query (SEARCHING) or compose text (COMPOSING) field changed."""
    text: str


@dataclass(frozen=True)
class Shown:
    """The launcher surface was brought up."""


Event = Union[KeyPressed, TextChanged, Shown]


@dataclass(frozen=True)
class PasteEffect:
    document: Document
    extra_text: str = ""


@dataclass(frozen=True)
class HideEffect:
    pass


Effect = Union[PasteEffect, HideEffect]


@dataclass(frozen=True)
class InteractionState:
    mode: Mode = Mode.SEARCHING
    query_text: str = ""
    compose_text: str = ""
    promoted: Optional[Document] = None
    selected_index: int = 0
    results: Tuple[SearchResult, ...] = ()
    visible: bool = True

    @property
    def selected(self) -> Optional[SearchResult]:
        if self.mode is not Mode.SEARCHING or not self.results:
            return None
        return self.results[self.selected_index]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "queryText": self.query_text,
            "composeText": self.compose_text,
            "promoted": self.promoted.to_dict() if self.promoted else None,
            "selectedIndex": self.selected_index,
            "results": [r.to_dict() for r in self.results],
            "visible": self.visible,
        }


@dataclass(frozen=True)
class Transition:
    state: InteractionState
    effect: Optional[Effect] = None
    handled: bool = True


def clamp_index(index: int, count: int) -> int:
    if count <= 0:
        return 0
    return min(max(index, 0), count - 1)


def reset_state(visible: bool = True) -> InteractionState:
    """Initial launcher state; only visibility carries over."""
    return InteractionState(visible=visible)


def _searching(state: InteractionState, rank: Ranker) -> InteractionState:
    return replace(
        state,
        mode=Mode.SEARCHING,
        promoted=None,
        compose_text="",
        selected_index=0,
        results=tuple(rank(state.query_text)),
    )


def _promote(state: InteractionState, document: Document) -> InteractionState:
    return replace(
        state,
        mode=Mode.COMPOSING,
        promoted=document,
        compose_text="",
        query_text="",
        selected_index=0,
        results=(),
    )


def _reduce_searching(state: InteractionState, event: Event, rank: Ranker) -> Transition:
    if isinstance(event, TextChanged):
        return Transition(replace(
            state,
            query_text=event.text,
            selected_index=0,
            results=tuple(rank(event.text)),
        ))

    key = event.key
    if key in (Key.UP, Key.DOWN):
        if not state.results:
            return Transition(state, handled=False)
        delta = 1 if key is Key.DOWN else -1
        index = clamp_index(state.selected_index + delta, len(state.results))
        return Transition(replace(state, selected_index=index))

    if key in (Key.TAB, Key.RIGHT, Key.SPACE):
        selected = state.selected
        if selected is None or (key is Key.SPACE and state.query_text):
            return Transition(state, handled=False)
        return Transition(_promote(state, selected.document))

    if key is Key.ENTER:
        selected = state.selected
        if selected is None:
            return Transition(state, handled=False)
        return Transition(state, effect=PasteEffect(selected.document, ""))

    if key is Key.ESCAPE:
        return Transition(reset_state(visible=False), effect=HideEffect())

    return Transition(state, handled=False)


def _reduce_composing(state: InteractionState, event: Event, rank: Ranker) -> Transition:
    if isinstance(event, TextChanged):
        return Transition(replace(state, compose_text=event.text))

    key = event.key
    if key is Key.ENTER:
        if state.promoted is None:
            return Transition(state, handled=False)
        return Transition(state, effect=PasteEffect(state.promoted, state.compose_text))

    if key is Key.BACKSPACE:
        if state.compose_text:
            return Transition(state, handled=False)
        return Transition(_searching(state, rank))

    if key is Key.ESCAPE:
        return Transition(_searching(state, rank))

    return Transition(state, handled=False)


def reduce(state: InteractionState, event: Event, rank: Ranker) -> Transition:
    """Apply one input event. ``rank`` maps a query to ranked results."""
    if isinstance(event, Shown):
        if state.mode is Mode.SEARCHING:
            state = replace(
                state,
                results=tuple(rank(state.query_text)),
                selected_index=0,
            )
        return Transition(replace(state, visible=True))

    if state.mode is Mode.SEARCHING:
        return _reduce_searching(state, event, rank)
    return _reduce_composing(state, event, rank)


_KEY_NAMES: Dict[str, Key] = {k.value: k for k in Key}
_KEY_NAMES.update({
    "arrowup": Key.UP,
    "arrowdown": Key.DOWN,
    "arrowright": Key.RIGHT,
    " ": Key.SPACE,
    "return": Key.ENTER,
    "esc": Key.ESCAPE,
})


def parse_key(name: str) -> Key:
    """Resolve a key name as sent by a presentation layer."""
    key = _KEY_NAMES.get(name if name == " " else name.strip().lower())
    if key is None:
        raise ValueError(f"Unknown key: {name!r}")
    return key
