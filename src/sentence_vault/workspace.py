"""Workspace: persona map, active thread and navigation wired together."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional, Protocol, Tuple

import structlog

from .errors import NotFoundError, PersonaNotFoundError, SentenceVaultError, ValidationFailure
from .models import MemoVaultInteraction, NavigationState, Persona, SentenceVaultItem, Thread, ThreadLocation, ThreadType
from .notifications import LogNotifier, Notifier
from .services.actions import (
    ActionDispatcher,
    ActionKind,
    ActionOutcome,
    Clipboard,
    InputBox,
    SelectionCopier,
    ThreadContext,
)
from .services.annotations import AnnotationBackend, AnnotationStore
from .services.navigation import HistoryBackend, MemoryHistory, NavigationCoordinator
from .services.resolver import (
    VERBALIZATION_SECTION,
    ThreadBackend,
    ThreadResolver,
    parse_thread_item_id,
    thread_item_id,
)
from .services.thread_actions import ThreadActions, ThreadWriteBackend
from .session import SessionStore

logger = structlog.get_logger(__name__)


class ThreadService(ThreadBackend, ThreadWriteBackend, Protocol):
    async def list_personas(self) -> Dict[str, Persona]: ...


class VaultService(Protocol):
    async def save_sentences(self, request: Any) -> Any: ...

    async def save_memo(self, request: Any) -> Any: ...

    async def restore_sentence(self, item_id: str, thread_id: str, sentence_id: str) -> Any: ...

    async def interact_with_memo(self, memo_id: str) -> MemoVaultInteraction: ...


class Workspace:
    """One user's view: which section, conversation item and persona are open.

    Every user-driven selection change goes through :meth:`commit`, which
    mirrors the state into history. Back/forward call :meth:`restore`, which
    only applies state and cached data; it never pushes and never fetches.
    Threads that were not cached when restoring are loaded by
    :meth:`load_active_thread`.
    """

    def __init__(
        self,
        threads: ThreadService,
        annotations: AnnotationBackend,
        vault: VaultService,
        *,
        notifier: Optional[Notifier] = None,
        history: Optional[HistoryBackend] = None,
        session: Optional[SessionStore] = None,
        clipboard: Optional[Clipboard] = None,
        fallback_copier: Optional[SelectionCopier] = None,
        input_box: Optional[InputBox] = None,
        path: str = "/",
    ) -> None:
        self.notifier = notifier or LogNotifier()
        self.threads = threads
        self.annotations = annotations
        self.vault = vault
        self.session = session or SessionStore()
        self.history = history or MemoryHistory()

        self.resolver = ThreadResolver(threads)
        self.store = AnnotationStore(annotations, self.notifier)
        self.dispatcher = ActionDispatcher(
            self.store,
            vault,
            self.notifier,
            clipboard=clipboard,
            fallback_copier=fallback_copier,
            input_box=input_box,
        )
        self.thread_actions = ThreadActions(threads, self.resolver, self.store, self.notifier)
        self.navigation = NavigationCoordinator(self.history, self.restore, path=path)

        self.personas: Dict[str, Persona] = {}
        self.section_id: Optional[str] = None
        self.item_id: Optional[str] = None
        self.active_persona_id: Optional[str] = None
        self.active_thread: Optional[Thread] = None
        self._thread_cache: Dict[str, Thread] = {}

    # ------------------------------------------------------------------ state

    @property
    def state(self) -> NavigationState:
        persona = self.personas.get(self.active_persona_id) if self.active_persona_id else None
        return NavigationState(
            section_id=self.section_id,
            item_id=self.item_id,
            active_persona_id=self.active_persona_id,
            active_persona_name=persona.name if persona else None,
        )

    def commit(self) -> bool:
        """Mirror the current selection into history."""
        return self.navigation.sync(self.state)

    # ---------------------------------------------------------------- startup

    async def load_personas(self) -> Dict[str, Persona]:
        try:
            personas = await self.threads.list_personas()
        except SentenceVaultError as exc:
            logger.error("workspace.personas.load_failed", error=str(exc))
            self.notifier.notify("Could not load personas")
            return self.personas
        self.personas = dict(personas)
        self.resolver.invalidate()
        logger.info("workspace.personas.loaded", count=len(self.personas))
        return self.personas

    async def mount(self) -> NavigationState:
        """Load personas, apply the state in the current URL and record it."""
        await self.load_personas()
        self.navigation.attach()
        self._apply(self.navigation.initial_state())
        self.commit()
        await self.load_active_thread()
        return self.state

    async def close(self) -> None:
        self.navigation.detach()
        await self.store.drain()
        for backend in (self.threads, self.annotations, self.vault):
            close = getattr(backend, "close", None)
            if close is not None:
                await close()

    # -------------------------------------------------------- user selection

    def select_section(self, section_id: Optional[str]) -> bool:
        self.section_id = section_id
        self.item_id = None
        self.active_thread = None
        return self.commit()

    def select_item(self, item_id: Optional[str]) -> bool:
        self.item_id = item_id
        self.active_thread = None
        return self.commit()

    def select_persona(self, persona_id: Optional[str]) -> bool:
        if persona_id is not None and persona_id not in self.personas:
            self.notifier.alert(f"Persona not found: {persona_id}")
            return False
        self.active_persona_id = persona_id
        return self.commit()

    async def select_thread(self, thread: Thread) -> None:
        """Open ``thread`` and load its annotations."""
        if thread.thread_type is ThreadType.VERBALIZATION:
            self.section_id = VERBALIZATION_SECTION
            self.item_id = thread.id
        else:
            self.section_id = None
            self.item_id = thread_item_id(thread.thread_type, thread.id)
            if thread.persona_id in self.personas:
                self.active_persona_id = thread.persona_id
        self._open(thread)
        self.commit()
        await self.store.load_thread_sentence_data(thread.id)

    async def navigate_to_persona(
        self,
        persona_id: str,
        selected_sentence: Optional[str] = None,
        mode: ThreadType = ThreadType.SENTENCE,
    ) -> bool:
        """Open a persona's thread view, optionally pre-filling the input box.

        A pending interpretation-mode request overrides ``mode`` once.
        """
        if persona_id not in self.personas:
            logger.warning("workspace.persona.missing", persona_id=persona_id)
            self.notifier.alert(str(PersonaNotFoundError(persona_id)))
            return False
        if selected_sentence:
            self.session.selected_sentence_for_input.put(selected_sentence)

        interpretation = self.session.consume_interpretation_mode()
        self.section_id = None
        self.item_id = ThreadType.INTERPRETATION.value if interpretation else ThreadType(mode).value
        self.active_persona_id = persona_id
        self.active_thread = None
        self.commit()
        return True

    async def navigate_to_thread(
        self,
        thread_id: str,
        thread_type: Optional[ThreadType] = None,
        interaction_message: Optional[str] = None,
    ) -> Optional[ThreadLocation]:
        """Resolve ``thread_id`` and open it; alerts and changes nothing when it is unknown."""
        try:
            location = await self.resolver.resolve(thread_id, self.personas, thread_type)
        except NotFoundError as exc:
            logger.warning("workspace.navigate.not_found", thread_id=thread_id, error=str(exc))
            self.notifier.alert(f"Could not find the thread: {thread_id}")
            return None

        if interaction_message:
            self.session.selected_sentence_for_input.put(interaction_message)

        self.section_id = location.section_id
        self.item_id = location.item_id
        if location.persona_id is not None:
            self.active_persona_id = location.persona_id
        self.active_thread = None
        if location.thread is not None:
            self._open(location.thread)
        self.commit()

        if location.thread is not None:
            await self.store.load_thread_sentence_data(location.thread.id)
        logger.info(
            "workspace.navigate.completed",
            thread_id=thread_id,
            persona_id=location.persona_id,
            item_id=location.item_id,
        )
        return location

    def take_input_prefill(self) -> Optional[str]:
        """Text to place in the input box of the view just opened (read once)."""
        return self.session.selected_sentence_for_input.take()

    # ------------------------------------------------------------- history

    def restore(self, state: NavigationState) -> None:
        """Apply a state popped from history; cached data only."""
        self._apply(state)
        logger.debug(
            "workspace.restore",
            section_id=self.section_id,
            item_id=self.item_id,
            persona_id=self.active_persona_id,
            thread_cached=self.active_thread is not None,
        )

    async def load_active_thread(self) -> Optional[Thread]:
        """Fetch the thread named by the current item when restore found no cached copy."""
        thread_id, thread_type = self._item_thread()
        if thread_id is None:
            return None
        if self.active_thread is not None and self.active_thread.id == thread_id:
            if not self.store.is_cached(thread_id):
                await self.store.load_thread_sentence_data(thread_id)
            return self.active_thread

        try:
            location = await self.resolver.resolve(thread_id, self.personas, thread_type)
        except NotFoundError as exc:
            logger.warning("workspace.restore.thread_missing", thread_id=thread_id, error=str(exc))
            return None
        if location.thread is None:
            return None
        self._open(location.thread)
        if not self.store.is_cached(location.thread.id):
            await self.store.load_thread_sentence_data(location.thread.id)
        return self.active_thread

    def _apply(self, state: NavigationState) -> None:
        self.section_id = state.section_id
        self.item_id = state.item_id
        persona_id = state.active_persona_id
        if persona_id is not None and persona_id not in self.personas:
            logger.warning("workspace.restore.unknown_persona", persona_id=persona_id)
            persona_id = None
        self.active_persona_id = persona_id
        thread_id, _ = self._item_thread()
        self.active_thread = self._thread_cache.get(thread_id) if thread_id else None

    def _item_thread(self) -> Tuple[Optional[str], Optional[ThreadType]]:
        if not self.item_id:
            return None, None
        if self.section_id == VERBALIZATION_SECTION:
            return self.item_id, ThreadType.VERBALIZATION
        parsed = parse_thread_item_id(self.item_id)
        if parsed is None:
            return None, None
        thread_type, thread_id = parsed
        return thread_id, thread_type

    def _open(self, thread: Thread) -> None:
        self.active_thread = thread
        self._thread_cache[thread.id] = thread

    # ------------------------------------------------------------- actions

    def context(self) -> ThreadContext:
        if self.active_thread is None:
            raise ValidationFailure("Open a thread first")
        thread = self.active_thread
        persona_id = self.active_persona_id or thread.persona_id or thread.thread_type.value
        if thread.thread_type is ThreadType.VERBALIZATION:
            persona_id = ThreadType.VERBALIZATION.value
        return ThreadContext(thread=thread, persona_id=persona_id)

    async def dispatch(self, kind: ActionKind, sentence_ids: Optional[Iterable[str]] = None) -> ActionOutcome:
        try:
            context = self.context()
        except ValidationFailure as exc:
            self.dispatcher.selection.clear()
            self.notifier.notify(str(exc))
            return ActionOutcome(kind=ActionKind(kind), success=False, message=str(exc))
        return await self.dispatcher.dispatch(kind, context, sentence_ids)

    async def save_to_thread(self, thread_type: ThreadType, content: str) -> bool:
        try:
            await self.thread_actions.save_to_thread(thread_type, self.active_persona_id, content, self.personas)
        except ValidationFailure as exc:
            self.notifier.notify(str(exc))
            return False
        except PersonaNotFoundError as exc:
            self.notifier.alert(str(exc))
            return False
        except SentenceVaultError:
            return False
        return True

    # --------------------------------------------------------------- vault

    async def interact_with_memo(self, memo_id: str) -> Optional[ThreadLocation]:
        """Start a conversation about a vault memo in the thread it came from."""
        try:
            interaction = await self.vault.interact_with_memo(memo_id)
        except SentenceVaultError as exc:
            logger.error("workspace.memo.interact_failed", memo_id=memo_id, error=str(exc))
            self.notifier.notify("Failed to start a conversation about the memo")
            return None
        if not interaction.source_thread_id:
            self.notifier.alert("The memo has no source thread")
            return None
        thread_type = ThreadType(interaction.source_thread_type) if interaction.source_thread_type else None
        return await self.navigate_to_thread(
            interaction.source_thread_id,
            thread_type,
            interaction_message=interaction.interaction_message or None,
        )

    async def restore_vault_sentence(self, item: SentenceVaultItem) -> bool:
        """Re-apply a vault sentence's highlight and memo to its source thread."""
        if not item.source_thread_id or not item.source_sentence_id:
            self.notifier.notify("This sentence has no source thread")
            return False
        try:
            await self.vault.restore_sentence(item.id, item.source_thread_id, item.source_sentence_id)
        except SentenceVaultError as exc:
            logger.error("workspace.vault.restore_failed", item_id=item.id, error=str(exc))
            self.notifier.notify("Failed to restore the sentence")
            return False
        if self.store.is_cached(item.source_thread_id):
            await self.store.load_thread_sentence_data(item.source_thread_id)
        self.notifier.notify("Highlight and memo restored")
        return True


__all__ = ["ThreadService", "VaultService", "Workspace"]
