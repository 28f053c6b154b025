"""Per-thread memo and highlight state with optimistic persistence."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Protocol, Sequence, Set, Tuple

import structlog

from ..errors import SentenceVaultError, ValidationFailure
from ..models import (
    Annotation,
    OperationResult,
    SentenceHighlightRequest,
    SentenceMemoRequest,
    ThreadSentenceData,
    ThreadType,
)
from ..notifications import LogNotifier, Notifier

logger = structlog.get_logger(__name__)


class AnnotationBackend(Protocol):
    async def upsert_memo(self, request: SentenceMemoRequest) -> OperationResult: ...

    async def delete_memo(self, sentence_id: str) -> OperationResult: ...

    async def create_highlight(self, request: SentenceHighlightRequest) -> OperationResult: ...

    async def delete_highlight(self, sentence_id: str) -> OperationResult: ...

    async def thread_sentence_data(self, thread_id: str) -> ThreadSentenceData: ...


SentenceKey = Tuple[str, str]


class _Turn:
    """One queued write for a sentence.

    The position in the queue is taken when the turn is created, not when it
    is entered, so work handed to a background task keeps its place.
    """

    def __init__(self, owner: "AnnotationStore", key: SentenceKey, previous: Optional[asyncio.Event]) -> None:
        self._owner = owner
        self._key = key
        self._previous = previous
        self.done = asyncio.Event()

    async def __aenter__(self) -> "_Turn":
        if self._previous is not None:
            try:
                await self._previous.wait()
            except BaseException:
                self._owner._release(self)
                raise
        return self

    async def __aexit__(self, *exc_info) -> None:
        self._owner._release(self)

    @property
    def key(self) -> SentenceKey:
        return self._key


@dataclass
class ThreadAnnotations:
    """Local annotation state of a single thread."""

    memos: Dict[str, str] = field(default_factory=dict)
    highlighted: Set[str] = field(default_factory=set)

    @classmethod
    def from_snapshot(cls, data: ThreadSentenceData) -> "ThreadAnnotations":
        return cls(memos=dict(data.memos), highlighted=set(data.highlights))


class AnnotationStore:
    """Memos and highlights partitioned by thread id.

    Every write mutates local state first so the view updates at once, then
    reaches the annotation service. Calls aimed at the same sentence of the
    same thread queue up in FIFO order so the service sees them in the order
    the user issued them.

    Recovery policy per operation:

    * ``set_memo`` / ``add_group_memo``: on failure reload the thread snapshot
      and replace local state wholesale.
    * ``toggle_highlight`` / ``highlight_many`` / ``unhighlight_many``: on
      failure restore the membership each sentence had before the call.
    * ``delete_memo``: fire and forget; failures are only logged.
    """

    def __init__(self, backend: AnnotationBackend, notifier: Optional[Notifier] = None) -> None:
        self._backend = backend
        self._notifier = notifier or LogNotifier()
        self._threads: Dict[str, ThreadAnnotations] = {}
        self._loaded: Set[str] = set()
        self._turns: Dict[SentenceKey, _Turn] = {}
        self._background: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------ reads

    def thread(self, thread_id: str) -> ThreadAnnotations:
        """Live state object for ``thread_id`` (created empty on first use)."""
        state = self._threads.get(thread_id)
        if state is None:
            state = self._threads[thread_id] = ThreadAnnotations()
        return state

    def memos(self, thread_id: str) -> Dict[str, str]:
        return dict(self.thread(thread_id).memos)

    def highlighted(self, thread_id: str) -> FrozenSet[str]:
        return frozenset(self.thread(thread_id).highlighted)

    def annotation(self, thread_id: str, sentence_id: str) -> Annotation:
        state = self.thread(thread_id)
        return Annotation(
            sentence_id=sentence_id,
            memo_text=state.memos.get(sentence_id),
            highlighted=sentence_id in state.highlighted,
        )

    def is_cached(self, thread_id: str) -> bool:
        """Whether an authoritative snapshot has been loaded for the thread."""
        return thread_id in self._loaded

    # ------------------------------------------------------------------ loads

    async def load_thread_sentence_data(self, thread_id: str) -> ThreadAnnotations:
        """Fetch the authoritative snapshot and replace local state wholesale."""
        try:
            data = await self._backend.thread_sentence_data(thread_id)
        except SentenceVaultError as exc:
            logger.error("annotations.load.failed", thread_id=thread_id, error=str(exc))
            self._threads[thread_id] = ThreadAnnotations()
            self._loaded.discard(thread_id)
            self._notifier.notify("Could not load memos and highlights")
            return self._threads[thread_id]

        state = ThreadAnnotations.from_snapshot(data)
        self._threads[thread_id] = state
        self._loaded.add(thread_id)
        logger.info(
            "annotations.load.completed",
            thread_id=thread_id,
            memo_count=len(state.memos),
            highlight_count=len(state.highlighted),
        )
        return state

    # ------------------------------------------------------------------ memos

    async def set_memo(
        self,
        thread_id: str,
        thread_type: ThreadType,
        sentence_id: str,
        text: str,
        sentence_content: Optional[str] = None,
        *,
        reraise: bool = False,
    ) -> bool:
        """Write a memo; returns ``False`` when the write failed and state was reloaded."""
        self.thread(thread_id).memos[sentence_id] = text
        request = SentenceMemoRequest(
            sentence_id=sentence_id,
            thread_id=thread_id,
            thread_type=thread_type,
            content=text,
            sentence_content=sentence_content,
        )
        try:
            async with self._claim(thread_id, sentence_id):
                await self._backend.upsert_memo(request)
        except SentenceVaultError as exc:
            logger.warning("annotations.memo.failed", thread_id=thread_id, sentence_id=sentence_id, error=str(exc))
            await self.load_thread_sentence_data(thread_id)
            self._notifier.notify("Failed to save memo")
            if reraise:
                raise
            return False

        logger.debug("annotations.memo.saved", thread_id=thread_id, sentence_id=sentence_id)
        return True

    def delete_memo(self, thread_id: str, sentence_id: str) -> asyncio.Task:
        """Drop the memo locally and delete it remotely in the background."""
        self.thread(thread_id).memos.pop(sentence_id, None)
        turn = self._claim(thread_id, sentence_id)
        task = asyncio.create_task(self._delete_memo_remote(turn, thread_id, sentence_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _delete_memo_remote(self, turn: _Turn, thread_id: str, sentence_id: str) -> None:
        try:
            async with turn:
                await self._backend.delete_memo(sentence_id)
        except SentenceVaultError as exc:
            logger.warning("annotations.memo.delete_failed", thread_id=thread_id, sentence_id=sentence_id, error=str(exc))

    async def add_group_memo(
        self,
        thread_id: str,
        thread_type: ThreadType,
        sentence_ids: Sequence[str],
        sentence_contents: Sequence[str],
        text: str = "",
    ) -> str:
        """Attach one memo to a group of sentences.

        All sentences are highlighted, but the memo is stored once and is
        addressable only at the first selected sentence. The others travel as
        related metadata on that single record. Returns the anchor id.
        """
        if not sentence_ids:
            raise ValidationFailure("No sentences selected for memo")
        ids = list(sentence_ids)
        contents = list(sentence_contents)
        anchor = ids[0]

        state = self.thread(thread_id)
        state.highlighted.update(ids)
        state.memos[anchor] = text

        request = SentenceMemoRequest(
            sentence_id=anchor,
            thread_id=thread_id,
            thread_type=thread_type,
            content=text,
            sentence_content=contents[0] if contents else None,
            source_message_id=f"{ThreadType(thread_type).value}_memo_{int(time.time() * 1000)}",
            related_sentence_ids=ids,
            related_sentence_contents=contents,
        )
        turns = [self._claim(thread_id, sentence_id) for sentence_id in ids]
        memo_turn = self._claim(thread_id, anchor)
        try:
            for sentence_id, turn in zip(ids, turns):
                async with turn:
                    await self._backend.create_highlight(self._highlight_request(sentence_id, thread_id, thread_type))
            async with memo_turn:
                await self._backend.upsert_memo(request)
        except SentenceVaultError as exc:
            logger.warning("annotations.group_memo.failed", thread_id=thread_id, anchor=anchor, error=str(exc))
            await self.load_thread_sentence_data(thread_id)
            self._notifier.notify("Failed to add memo")
            return anchor
        finally:
            self._release_all(turns + [memo_turn])

        logger.info("annotations.group_memo.saved", thread_id=thread_id, anchor=anchor, related=len(ids))
        return anchor

    # ------------------------------------------------------------- highlights

    async def toggle_highlight(
        self,
        sentence_id: str,
        thread_id: str,
        thread_type: ThreadType,
        *,
        reraise: bool = False,
    ) -> bool:
        """Flip one highlight; returns the membership after the call settled."""
        was_highlighted = sentence_id in self.thread(thread_id).highlighted
        target = not was_highlighted
        self._set_membership(thread_id, sentence_id, target)

        try:
            async with self._claim(thread_id, sentence_id):
                if target:
                    await self._backend.create_highlight(self._highlight_request(sentence_id, thread_id, thread_type))
                else:
                    await self._backend.delete_highlight(sentence_id)
        except SentenceVaultError as exc:
            logger.warning("annotations.highlight.failed", thread_id=thread_id, sentence_id=sentence_id, error=str(exc))
            self._set_membership(thread_id, sentence_id, was_highlighted)
            self._notifier.notify("Failed to update highlight")
            if reraise:
                raise
            return was_highlighted

        return target

    async def highlight_many(self, thread_id: str, thread_type: ThreadType, sentence_ids: Iterable[str]) -> List[str]:
        """Highlight every id; returns the ids whose remote write failed.

        Failed ids fall back to the membership they had before the call.
        """
        return await self._set_many(thread_id, thread_type, list(sentence_ids), True)

    async def unhighlight_many(self, thread_id: str, sentence_ids: Iterable[str]) -> List[str]:
        """Remove every highlight; returns the ids whose remote delete failed.

        Failed ids fall back to the membership they had before the call.
        """
        return await self._set_many(thread_id, None, list(sentence_ids), False)

    async def _set_many(
        self,
        thread_id: str,
        thread_type: Optional[ThreadType],
        ids: List[str],
        highlighted: bool,
    ) -> List[str]:
        state = self.thread(thread_id)
        previous = {sentence_id: sentence_id in state.highlighted for sentence_id in ids}
        for sentence_id in ids:
            self._set_membership(thread_id, sentence_id, highlighted)

        turns = [self._claim(thread_id, sentence_id) for sentence_id in ids]
        failed: List[str] = []
        try:
            for sentence_id, turn in zip(ids, turns):
                try:
                    async with turn:
                        if highlighted:
                            await self._backend.create_highlight(
                                self._highlight_request(sentence_id, thread_id, thread_type)
                            )
                        else:
                            await self._backend.delete_highlight(sentence_id)
                except SentenceVaultError as exc:
                    logger.warning(
                        "annotations.highlight_many.failed",
                        thread_id=thread_id,
                        sentence_id=sentence_id,
                        highlighted=highlighted,
                        error=str(exc),
                    )
                    self._set_membership(thread_id, sentence_id, previous[sentence_id])
                    failed.append(sentence_id)
        finally:
            self._release_all(turns)
        return failed

    # ---------------------------------------------------------------- helpers

    async def drain(self) -> None:
        """Wait for background writes (fire-and-forget deletes) to settle."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def pending_writes(self) -> int:
        """Number of sentences with a queued or running write."""
        return len(self._turns)

    def _claim(self, thread_id: str, sentence_id: str) -> _Turn:
        """Take the next place in the sentence's write queue, synchronously."""
        key = (thread_id, sentence_id)
        previous = self._turns.get(key)
        turn = _Turn(self, key, previous.done if previous is not None else None)
        self._turns[key] = turn
        return turn

    def _release(self, turn: _Turn) -> None:
        turn.done.set()
        # Only the last turn in line owns the map entry.
        if self._turns.get(turn.key) is turn:
            del self._turns[turn.key]

    def _release_all(self, turns: Iterable[_Turn]) -> None:
        for turn in turns:
            if not turn.done.is_set():
                self._release(turn)

    def _set_membership(self, thread_id: str, sentence_id: str, highlighted: bool) -> None:
        # A reload may have replaced the state object.
        state = self.thread(thread_id)
        if highlighted:
            state.highlighted.add(sentence_id)
        else:
            state.highlighted.discard(sentence_id)

    @staticmethod
    def _highlight_request(sentence_id: str, thread_id: str, thread_type: ThreadType) -> SentenceHighlightRequest:
        return SentenceHighlightRequest(
            sentence_id=sentence_id,
            thread_id=thread_id or "",
            thread_type=ThreadType(thread_type).value if thread_type else "",
        )


__all__ = ["AnnotationBackend", "AnnotationStore", "ThreadAnnotations"]
