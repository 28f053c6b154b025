"""Thread-level writes: saving content, editing messages, deleting threads."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Protocol

import structlog

from ..errors import PersonaNotFoundError, SentenceVaultError, ValidationFailure
from ..models import OperationResult, Persona, Thread, ThreadType
from ..notifications import LogNotifier, Notifier
from .annotations import AnnotationStore
from .resolver import ThreadResolver

logger = structlog.get_logger(__name__)

SAVABLE_TYPES = (ThreadType.INTERPRETATION, ThreadType.PROCEED, ThreadType.SENTENCE)


class ThreadWriteBackend(Protocol):
    async def save_content(self, thread_type: ThreadType, persona_id: str, content: str) -> Dict[str, Any]: ...

    async def edit_message(self, thread_id: str, message_index: int, new_content: str) -> Optional[Thread]: ...

    async def delete_thread(self, thread_id: str) -> OperationResult: ...

    async def list_verbalization_threads(self) -> List[Thread]: ...

    async def create_verbalization_thread(self) -> Thread: ...

    async def delete_verbalization_thread(self, thread_id: str) -> OperationResult: ...


class ThreadActions:
    """Writes that change the thread set, keeping the resolver index honest."""

    def __init__(
        self,
        backend: ThreadWriteBackend,
        resolver: ThreadResolver,
        store: AnnotationStore,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self._backend = backend
        self._resolver = resolver
        self._store = store
        self._notifier = notifier or LogNotifier()

    async def save_to_thread(
        self,
        thread_type: ThreadType,
        persona_id: Optional[str],
        content: str,
        personas: Mapping[str, Persona],
    ) -> Dict[str, Any]:
        """Append ``content`` to the persona's thread of ``thread_type``.

        Validation happens before any network call. Raises
        ``PersonaNotFoundError`` for an unknown persona.
        """
        thread_type = ThreadType(thread_type)
        if thread_type not in SAVABLE_TYPES:
            raise ValidationFailure(f"Content cannot be saved into a {thread_type.value} thread")
        if not persona_id:
            raise ValidationFailure("Select a persona first")
        if not content or not content.strip():
            raise ValidationFailure("Nothing to save")
        if persona_id not in personas:
            raise PersonaNotFoundError(persona_id)

        try:
            result = await self._backend.save_content(thread_type, persona_id, content.strip())
        except SentenceVaultError as exc:
            logger.error("threads.save.failed", thread_type=thread_type.value, persona_id=persona_id, error=str(exc))
            self._notifier.notify("Failed to save")
            raise

        # A first save creates the thread, so the id index is stale.
        self._resolver.invalidate()
        self._notifier.notify(f"Saved to {personas[persona_id].name}'s {thread_type.value} thread")
        logger.info("threads.save.completed", thread_type=thread_type.value, persona_id=persona_id)
        return result

    async def edit_message(self, thread: Thread, message_index: int, new_content: str) -> Thread:
        """Replace one user message; replies after it are regenerated server side.

        Sentence ids of the regenerated messages change, so the thread's
        annotations are reloaded from the service afterwards.
        """
        if not 0 <= message_index < len(thread.messages):
            raise ValidationFailure(f"Message index out of range: {message_index}")
        if thread.messages[message_index].role != "user":
            raise ValidationFailure("Only user messages can be edited")
        if not new_content or not new_content.strip():
            raise ValidationFailure("Message cannot be empty")

        try:
            updated = await self._backend.edit_message(thread.id, message_index, new_content.strip())
        except SentenceVaultError as exc:
            logger.error("threads.edit.failed", thread_id=thread.id, message_index=message_index, error=str(exc))
            self._notifier.notify("Failed to edit message")
            raise

        await self._store.load_thread_sentence_data(thread.id)
        self._notifier.notify("Message updated")
        return updated or thread

    async def delete_thread(self, thread: Thread) -> None:
        try:
            if thread.thread_type is ThreadType.VERBALIZATION:
                await self._backend.delete_verbalization_thread(thread.id)
            else:
                await self._backend.delete_thread(thread.id)
        except SentenceVaultError as exc:
            logger.error("threads.delete.failed", thread_id=thread.id, error=str(exc))
            self._notifier.notify("Failed to delete thread")
            raise

        self._resolver.invalidate()
        self._notifier.notify("Thread deleted")
        logger.info("threads.delete.completed", thread_id=thread.id, thread_type=thread.thread_type.value)

    async def create_verbalization_thread(self) -> Thread:
        thread = await self._backend.create_verbalization_thread()
        logger.info("threads.verbalization.created", thread_id=thread.id)
        return thread


__all__ = ["SAVABLE_TYPES", "ThreadActions", "ThreadWriteBackend"]
