"""Menu actions over a selection of sentences."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

import structlog

from ..config import get_settings
from ..errors import InvalidSentenceIdError, SentenceVaultError, ValidationFailure
from ..models import MemoVaultItem, MemoVaultRequest, SentenceVaultItem, SentenceVaultRequest, Thread, ThreadType
from ..notifications import LogNotifier, Notifier
from ..sentences import format_quoted, resolve_text
from .annotations import AnnotationStore

logger = structlog.get_logger(__name__)


class ActionKind(str, Enum):
    SEND_TO_INPUT = "send_to_input"
    SAVE_TO_VAULT = "save_to_vault"
    ADD_MEMO = "add_memo"
    TOGGLE_HIGHLIGHT = "toggle_highlight"
    COPY = "copy"


class VaultBackend(Protocol):
    async def save_sentences(self, request: SentenceVaultRequest) -> List[SentenceVaultItem]: ...

    async def save_memo(self, request: MemoVaultRequest) -> Optional[MemoVaultItem]: ...


class Clipboard(Protocol):
    def write_text(self, text: str) -> None:
        """Raise ``OSError`` or ``RuntimeError`` when the platform refuses."""


class SelectionCopier(Protocol):
    def copy_selection(self, text: str) -> bool:
        """Copy by selecting ``text`` in a scratch element; ``False`` on failure."""


class InputBox(Protocol):
    def insert_text(self, text: str) -> None: ...


@dataclass
class ThreadContext:
    """The thread a selection was made in."""

    thread: Thread
    persona_id: str
    thread_type: Optional[ThreadType] = None

    def __post_init__(self) -> None:
        if self.thread_type is None:
            self.thread_type = self.thread.thread_type
        self.thread_type = ThreadType(self.thread_type)

    @property
    def source_message_id(self) -> str:
        return f"{self.thread_type.value}_{self.persona_id}"

    @property
    def tags(self) -> List[str]:
        return [self.thread_type.value, self.persona_id]


@dataclass
class ActionOutcome:
    kind: ActionKind
    sentence_ids: List[str] = field(default_factory=list)
    texts: List[str] = field(default_factory=list)
    success: bool = True
    message: str = ""


class Selection:
    """Selected sentence ids in the order they were picked."""

    def __init__(self) -> None:
        self._ids: Dict[str, None] = {}

    def toggle(self, sentence_id: str) -> bool:
        if sentence_id in self._ids:
            del self._ids[sentence_id]
            return False
        self._ids[sentence_id] = None
        return True

    def clear(self) -> None:
        self._ids.clear()

    @property
    def ids(self) -> List[str]:
        return list(self._ids)

    def __contains__(self, sentence_id: object) -> bool:
        return sentence_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)


Handler = Callable[[ThreadContext, List[str], List[str]], Awaitable[ActionOutcome]]


class ActionDispatcher:
    """Runs one of the five menu actions against the current selection.

    The selection is cleared after every dispatch, whatever happened inside.
    """

    def __init__(
        self,
        store: AnnotationStore,
        vault: VaultBackend,
        notifier: Optional[Notifier] = None,
        *,
        clipboard: Optional[Clipboard] = None,
        fallback_copier: Optional[SelectionCopier] = None,
        input_box: Optional[InputBox] = None,
        highlight_color: Optional[str] = None,
    ) -> None:
        self.store = store
        self.vault = vault
        self.notifier = notifier or LogNotifier()
        self.clipboard = clipboard
        self.fallback_copier = fallback_copier
        self.input_box = input_box
        self.highlight_color = highlight_color or get_settings().highlight_color
        self.selection = Selection()

        self._handlers: Dict[ActionKind, Handler] = {
            ActionKind.SEND_TO_INPUT: self._send_to_input,
            ActionKind.SAVE_TO_VAULT: self._save_to_vault,
            ActionKind.ADD_MEMO: self._add_memo,
            ActionKind.TOGGLE_HIGHLIGHT: self._toggle_highlight,
            ActionKind.COPY: self._copy,
        }
        missing = set(ActionKind) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for actions: {sorted(kind.value for kind in missing)}")

    async def dispatch(
        self,
        kind: ActionKind,
        context: ThreadContext,
        sentence_ids: Optional[Iterable[str]] = None,
    ) -> ActionOutcome:
        kind = ActionKind(kind)
        requested = list(sentence_ids) if sentence_ids is not None else self.selection.ids
        logger.info("actions.dispatch", action=kind.value, thread_id=context.thread.id, selected=len(requested))
        try:
            ids, texts = self.resolve_selection(context, requested)
            if not ids:
                raise ValidationFailure("Select at least one sentence")
            return await self._handlers[kind](context, ids, texts)
        except ValidationFailure as exc:
            self.notifier.notify(str(exc))
            return ActionOutcome(kind=kind, success=False, message=str(exc))
        except SentenceVaultError as exc:
            logger.error("actions.dispatch.failed", action=kind.value, error=str(exc))
            self.notifier.notify("Action failed")
            return ActionOutcome(kind=kind, success=False, message=str(exc))
        finally:
            self.selection.clear()

    @staticmethod
    def resolve_selection(context: ThreadContext, sentence_ids: Sequence[str]) -> Tuple[List[str], List[str]]:
        """Resolve ids to texts, dropping unresolvable ids; both lists stay aligned."""
        ids: List[str] = []
        texts: List[str] = []
        for sentence_id in sentence_ids:
            try:
                text = resolve_text(context.thread, sentence_id)
            except InvalidSentenceIdError:
                text = ""
            if not text:
                logger.debug("actions.selection.unresolved", sentence_id=sentence_id)
                continue
            ids.append(sentence_id)
            texts.append(text)
        return ids, texts

    async def _send_to_input(self, context: ThreadContext, ids: List[str], texts: List[str]) -> ActionOutcome:
        if self.input_box is None:
            raise ValidationFailure("No input box to send sentences to")
        self.input_box.insert_text(format_quoted(texts))
        self.notifier.notify("Selected sentences were added to the input")
        return ActionOutcome(kind=ActionKind.SEND_TO_INPUT, sentence_ids=ids, texts=texts)

    async def _copy(self, context: ThreadContext, ids: List[str], texts: List[str]) -> ActionOutcome:
        text = " ".join(texts)
        copied = False
        if self.clipboard is not None:
            try:
                self.clipboard.write_text(text)
                copied = True
            except (OSError, RuntimeError) as exc:
                logger.warning("actions.copy.clipboard_failed", error=str(exc))
        if not copied and self.fallback_copier is not None:
            copied = self.fallback_copier.copy_selection(text)

        message = "Selected sentences were copied" if copied else "Copy failed"
        self.notifier.notify(message)
        return ActionOutcome(kind=ActionKind.COPY, sentence_ids=ids, texts=texts, success=copied, message=message)

    async def _save_to_vault(self, context: ThreadContext, ids: List[str], texts: List[str]) -> ActionOutcome:
        thread_id = context.thread.id
        state = self.store.thread(thread_id)

        # Parallel arrays, index-aligned with ``ids``.
        highlight_states: List[bool] = []
        highlight_colors: List[Optional[str]] = []
        memo_contents: List[Optional[str]] = []
        memo_anchor: Optional[str] = None
        for sentence_id in ids:
            highlighted = sentence_id in state.highlighted
            memo = state.memos.get(sentence_id) or None
            highlight_states.append(highlighted)
            highlight_colors.append(self.highlight_color if highlighted else None)
            memo_contents.append(memo)
            if memo_anchor is None and memo and memo.strip():
                memo_anchor = sentence_id

        await self.vault.save_sentences(
            SentenceVaultRequest(
                sentences=texts,
                source_message_id=context.source_message_id,
                source_conversation_id=thread_id,
                source_thread_id=thread_id,
                source_thread_type=context.thread_type,
                source_sentence_ids=ids,
                tags=context.tags,
                highlight_states=highlight_states,
                highlight_colors=highlight_colors,
                memo_contents=memo_contents,
            )
        )

        if memo_anchor is not None:
            await self._save_memo_record(context, memo_anchor, state.memos[memo_anchor], ids, texts)

        await self.store.highlight_many(thread_id, context.thread_type, ids)

        message = "Saved to vault with memo" if memo_anchor else "Saved to vault"
        self.notifier.notify(message)
        return ActionOutcome(kind=ActionKind.SAVE_TO_VAULT, sentence_ids=ids, texts=texts, message=message)

    async def _save_memo_record(
        self,
        context: ThreadContext,
        anchor: str,
        memo: str,
        ids: List[str],
        texts: List[str],
    ) -> None:
        multi = len(texts) > 1
        request = MemoVaultRequest(
            memo_content=memo,
            sentence_content=format_quoted(texts) if multi else texts[0],
            source_message_id=context.source_message_id,
            source_conversation_id=context.thread.id,
            source_thread_id=context.thread.id,
            source_thread_type=context.thread_type,
            source_sentence_id=anchor,
            tags=context.tags,
            metadata={
                "related_sentence_ids": ids,
                "related_sentence_contents": texts,
                "memo_type": "multi_sentence" if multi else "single_sentence",
            },
        )
        try:
            await self.vault.save_memo(request)
        except SentenceVaultError as exc:
            # Memo record failures do not fail the sentence batch.
            logger.warning("actions.vault.memo_failed", anchor=anchor, error=str(exc))

    async def _add_memo(self, context: ThreadContext, ids: List[str], texts: List[str]) -> ActionOutcome:
        anchor = await self.store.add_group_memo(context.thread.id, context.thread_type, ids, texts)
        if len(ids) > 1:
            message = f"Memo created on the first sentence ({len(ids)} related sentences)"
        else:
            message = "Memo and highlight added"
        self.notifier.notify(message)
        return ActionOutcome(kind=ActionKind.ADD_MEMO, sentence_ids=[anchor], texts=texts, message=message)

    async def _toggle_highlight(self, context: ThreadContext, ids: List[str], texts: List[str]) -> ActionOutcome:
        state = self.store.thread(context.thread.id)
        if any(sentence_id in state.highlighted for sentence_id in ids):
            failed = await self.store.unhighlight_many(context.thread.id, ids)
            message = "Highlight removed"
        else:
            failed = await self.store.highlight_many(context.thread.id, context.thread_type, ids)
            message = "Highlight added"
        if failed:
            message = "Failed to update highlight"
        self.notifier.notify(message)
        return ActionOutcome(
            kind=ActionKind.TOGGLE_HIGHLIGHT,
            sentence_ids=ids,
            texts=texts,
            success=not failed,
            message=message,
        )


__all__ = [
    "ActionDispatcher",
    "ActionKind",
    "ActionOutcome",
    "Clipboard",
    "InputBox",
    "Selection",
    "SelectionCopier",
    "ThreadContext",
    "VaultBackend",
]
