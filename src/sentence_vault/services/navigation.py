"""Mirror navigation state into the address bar and history stack."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional, Protocol
from urllib.parse import parse_qs, urlencode, urlsplit

import structlog
from pydantic import ValidationError

from ..errors import ValidationFailure
from ..models import NavigationState

logger = structlog.get_logger(__name__)

# Query parameter names of the address bar contract.
PARAM_SECTION = "persona"
PARAM_ITEM = "conversation"
PARAM_PERSONA = "personaId"

# History payload keys.
_SECTION = "selectedPersonaItem"
_ITEM = "selectedConversationItem"
_PERSONA_ID = "personaId"
_PERSONA_NAME = "personaName"

ROOT = NavigationState()

PopListener = Callable[[Optional[Dict[str, Any]]], None]


def to_query(state: NavigationState) -> str:
    params = []
    if state.section_id:
        params.append((PARAM_SECTION, state.section_id))
    if state.item_id:
        params.append((PARAM_ITEM, state.item_id))
    if state.active_persona_id:
        params.append((PARAM_PERSONA, state.active_persona_id))
    return urlencode(params)


def to_url(state: NavigationState, path: str = "/") -> str:
    query = to_query(state)
    return f"{path}?{query}" if query else path


def parse_url(url: str) -> NavigationState:
    """Read the initial state from an address; the persona name is not in the URL."""
    query = parse_qs(urlsplit(url).query)

    def first(name: str) -> Optional[str]:
        values = query.get(name)
        return values[0] if values and values[0] else None

    return NavigationState(
        section_id=first(PARAM_SECTION),
        item_id=first(PARAM_ITEM),
        active_persona_id=first(PARAM_PERSONA),
    )


def to_payload(state: NavigationState) -> Dict[str, Any]:
    return {
        _SECTION: state.section_id,
        _ITEM: state.item_id,
        _PERSONA_ID: state.active_persona_id,
        _PERSONA_NAME: state.active_persona_name,
    }


def from_payload(payload: Any) -> NavigationState:
    """Parse a history payload; raises ``ValidationFailure`` when malformed."""
    if payload is None:
        return ROOT
    if not isinstance(payload, Mapping):
        raise ValidationFailure(f"History payload is not a mapping: {type(payload).__name__}")
    try:
        return NavigationState(
            section_id=payload.get(_SECTION),
            item_id=payload.get(_ITEM),
            active_persona_id=payload.get(_PERSONA_ID),
            active_persona_name=payload.get(_PERSONA_NAME),
        )
    except ValidationError as exc:
        raise ValidationFailure(f"Malformed history payload: {exc}") from exc


class HistoryEntry(NamedTuple):
    payload: Optional[Dict[str, Any]]
    url: str


class HistoryBackend(Protocol):
    @property
    def current(self) -> HistoryEntry: ...

    def push_state(self, payload: Dict[str, Any], url: str) -> None: ...

    def replace_state(self, payload: Dict[str, Any], url: str) -> None: ...


class MemoryHistory:
    """In-process history stack with browser push/replace/back/forward semantics."""

    def __init__(self, initial_url: str = "/") -> None:
        self._entries: List[HistoryEntry] = [HistoryEntry(None, initial_url)]
        self._index = 0
        self._listeners: List[PopListener] = []

    @property
    def current(self) -> HistoryEntry:
        return self._entries[self._index]

    @property
    def length(self) -> int:
        return len(self._entries)

    def push_state(self, payload: Dict[str, Any], url: str) -> None:
        del self._entries[self._index + 1:]
        self._entries.append(HistoryEntry(dict(payload), url))
        self._index += 1

    def replace_state(self, payload: Dict[str, Any], url: str) -> None:
        self._entries[self._index] = HistoryEntry(dict(payload), url)

    def add_listener(self, listener: PopListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: PopListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def back(self) -> bool:
        return self.go(-1)

    def forward(self) -> bool:
        return self.go(1)

    def go(self, delta: int) -> bool:
        target = self._index + delta
        if delta == 0 or not 0 <= target < len(self._entries):
            return False
        self._index = target
        payload = self.current.payload
        for listener in list(self._listeners):
            listener(dict(payload) if payload is not None else None)
        return True


class NavigationCoordinator:
    """Keeps one ``NavigationState`` in step with a history backend.

    ``sync`` is called after every selection change. The first call replaces
    the initial (empty) entry; later calls push a new entry only when the
    ``(section, item, persona)`` triple differs from the current entry.
    Back/forward deliver the stored payload to ``handle_pop``, which hands the
    parsed state to ``on_restore``. A payload that cannot be parsed restores
    the root view.
    """

    def __init__(
        self,
        history: HistoryBackend,
        on_restore: Callable[[NavigationState], None],
        path: str = "/",
    ) -> None:
        self._history = history
        self._on_restore = on_restore
        self._path = path
        self._mounted = False
        self._state = ROOT

    @property
    def state(self) -> NavigationState:
        return self._state

    def attach(self) -> None:
        add_listener = getattr(self._history, "add_listener", None)
        if add_listener is not None:
            add_listener(self.handle_pop)

    def detach(self) -> None:
        remove_listener = getattr(self._history, "remove_listener", None)
        if remove_listener is not None:
            remove_listener(self.handle_pop)

    def initial_state(self) -> NavigationState:
        return parse_url(self._history.current.url)

    def sync(self, state: NavigationState) -> bool:
        """Record ``state``; returns ``True`` when a new entry was pushed."""
        self._state = state
        payload = to_payload(state)
        url = to_url(state, self._path)

        if not self._mounted:
            self._mounted = True
            self._history.replace_state(payload, url)
            logger.debug("navigation.replace", url=url)
            return False

        try:
            previous = from_payload(self._history.current.payload)
        except ValidationFailure:
            previous = None
        if previous is not None and previous.key == state.key:
            return False

        self._history.push_state(payload, url)
        logger.debug("navigation.push", url=url)
        return True

    def handle_pop(self, payload: Optional[Dict[str, Any]]) -> NavigationState:
        try:
            state = from_payload(payload)
        except ValidationFailure as exc:
            logger.warning("navigation.pop.malformed", error=str(exc))
            state = ROOT
        logger.info(
            "navigation.pop",
            section_id=state.section_id,
            item_id=state.item_id,
            persona_id=state.active_persona_id,
        )
        self._state = state
        self._on_restore(state)
        return state


__all__ = [
    "HistoryBackend",
    "HistoryEntry",
    "MemoryHistory",
    "NavigationCoordinator",
    "PARAM_ITEM",
    "PARAM_PERSONA",
    "PARAM_SECTION",
    "ROOT",
    "from_payload",
    "parse_url",
    "to_payload",
    "to_query",
    "to_url",
]
