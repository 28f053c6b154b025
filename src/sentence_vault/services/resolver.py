"""Locate the persona and thread that own a thread id."""

from __future__ import annotations

import re
from typing import Dict, List, Mapping, Optional, Protocol, Tuple

import structlog

from ..errors import NotFoundError, ThreadNotFoundError, TransientPersistenceError
from ..models import Persona, Thread, ThreadLocation, ThreadType

logger = structlog.get_logger(__name__)

INTERPRETATION_MARKER = "interpretation"
LEGACY_PREFIX = f"{INTERPRETATION_MARKER}_"
VERBALIZATION_SECTION = "verbalization"

_TIMESTAMP_SUFFIX = re.compile(r"\d{10,}$")


class ThreadBackend(Protocol):
    async def list_persona_threads(self, persona_id: str) -> List[Thread]: ...

    async def list_persona_threads_by_type(self, persona_id: str, thread_type: ThreadType) -> List[Thread]: ...

    async def list_verbalization_threads(self) -> List[Thread]: ...


def is_legacy_thread_id(thread_id: str) -> bool:
    """Legacy interpretation ids predate the hyphenated timestamp suffix.

    ``interpretation_freud`` is legacy; ``interpretation_freud-1700000000000``
    and ``interpretation_freud_1700000000000`` are not.
    """
    return (
        thread_id.startswith(LEGACY_PREFIX)
        and "-" not in thread_id
        and not _TIMESTAMP_SUFFIX.search(thread_id)
    )


def thread_item_id(thread_type: ThreadType, thread_id: str) -> str:
    """Conversation item that selects a specific persona thread."""
    return f"{ThreadType(thread_type).value}-thread-{thread_id}"


def parse_thread_item_id(item_id: str) -> Optional[Tuple[ThreadType, str]]:
    """Inverse of :func:`thread_item_id`; ``None`` for other items."""
    prefix, sep, thread_id = item_id.partition("-thread-")
    if not sep or not thread_id:
        return None
    try:
        return ThreadType(prefix), thread_id
    except ValueError:
        return None


class ThreadResolver:
    """Resolve thread ids through the type hint paths, then a global index.

    The global index maps ``thread_id -> (persona_id, thread)``. It is built
    once by walking personas in map order and keeping the first owner of every
    id, which reproduces a linear first-match scan. It is rebuilt after
    :meth:`invalidate`, when a different persona map is passed in, and once
    on a miss so threads created elsewhere are still found.
    """

    def __init__(self, backend: ThreadBackend) -> None:
        self._backend = backend
        self._index: Optional[Dict[str, Tuple[str, Thread]]] = None
        self._indexed_personas: Tuple[str, ...] = ()

    def invalidate(self) -> None:
        """Drop the index; call whenever threads are created or deleted."""
        self._index = None
        self._indexed_personas = ()

    async def resolve(
        self,
        thread_id: str,
        personas: Mapping[str, Persona],
        thread_type: Optional[ThreadType] = None,
    ) -> ThreadLocation:
        hint = ThreadType(thread_type) if thread_type else None
        logger.debug(
            "resolver.resolve.start",
            thread_id=thread_id,
            thread_type=hint.value if hint else None,
            legacy=is_legacy_thread_id(thread_id),
        )

        if hint is ThreadType.VERBALIZATION:
            return await self._resolve_verbalization(thread_id)

        if hint is ThreadType.INTERPRETATION:
            location = await self._resolve_interpretation(thread_id, personas)
            if location is not None:
                return location

        return await self._resolve_global(thread_id, personas, hint)

    async def _resolve_verbalization(self, thread_id: str) -> ThreadLocation:
        try:
            threads = await self._backend.list_verbalization_threads()
        except TransientPersistenceError as exc:
            logger.error("resolver.verbalization.load_failed", error=str(exc))
            raise ThreadNotFoundError(thread_id, ThreadType.VERBALIZATION.value) from exc

        target = next((thread for thread in threads if thread.id == thread_id), None)
        if target is None and threads:
            logger.warning("resolver.verbalization.fallback_first", thread_id=thread_id)
            target = threads[0]
        if target is None:
            raise ThreadNotFoundError(thread_id, ThreadType.VERBALIZATION.value)

        return ThreadLocation(
            persona_id=None,
            thread=target,
            thread_type=ThreadType.VERBALIZATION,
            section_id=VERBALIZATION_SECTION,
            item_id=target.id,
        )

    async def _resolve_interpretation(
        self, thread_id: str, personas: Mapping[str, Persona]
    ) -> Optional[ThreadLocation]:
        parts = thread_id.split("_")
        if len(parts) < 2 or parts[0] != INTERPRETATION_MARKER:
            return None
        persona_id = parts[1]
        if persona_id not in personas:
            logger.info("resolver.interpretation.persona_missing", thread_id=thread_id, persona_id=persona_id)
            return None

        try:
            threads = await self._backend.list_persona_threads_by_type(persona_id, ThreadType.INTERPRETATION)
        except (TransientPersistenceError, NotFoundError) as exc:
            logger.warning("resolver.interpretation.load_failed", persona_id=persona_id, error=str(exc))
            threads = []
        thread = next((candidate for candidate in threads if candidate.id == thread_id), None)

        return ThreadLocation(
            persona_id=persona_id,
            thread=thread,
            thread_type=ThreadType.INTERPRETATION,
            section_id=None,
            item_id=INTERPRETATION_MARKER,
        )

    async def _resolve_global(
        self,
        thread_id: str,
        personas: Mapping[str, Persona],
        hint: Optional[ThreadType],
    ) -> ThreadLocation:
        index, fresh = await self._ensure_index(personas)
        hit = index.get(thread_id)
        if hit is None and not fresh:
            # The thread may have been created elsewhere since the index was built.
            logger.info("resolver.global.stale_index", thread_id=thread_id)
            self.invalidate()
            index, _ = await self._ensure_index(personas)
            hit = index.get(thread_id)
        if hit is None:
            logger.warning("resolver.global.not_found", thread_id=thread_id)
            raise ThreadNotFoundError(thread_id, hint.value if hint else None)

        persona_id, thread = hit
        thread_type = hint or thread.thread_type
        return ThreadLocation(
            persona_id=persona_id,
            thread=thread,
            thread_type=thread_type,
            section_id=None,
            item_id=thread_item_id(thread_type, thread_id),
        )

    async def _ensure_index(self, personas: Mapping[str, Persona]) -> Tuple[Dict[str, Tuple[str, Thread]], bool]:
        """Return the index and whether it was built by this call."""
        persona_ids = tuple(personas)
        if self._index is not None and persona_ids == self._indexed_personas:
            return self._index, False

        index: Dict[str, Tuple[str, Thread]] = {}
        complete = True
        for persona_id in persona_ids:
            try:
                threads = await self._backend.list_persona_threads(persona_id)
            except (TransientPersistenceError, NotFoundError) as exc:
                logger.warning("resolver.index.persona_failed", persona_id=persona_id, error=str(exc))
                complete = False
                continue
            for thread in threads:
                if thread.id in index:
                    # Ambiguous id: the earlier persona keeps it.
                    logger.debug("resolver.index.duplicate", thread_id=thread.id, persona_id=persona_id)
                    continue
                index[thread.id] = (persona_id, thread)

        # A partial index is used once but not kept, so the next lookup retries.
        if complete:
            self._index = index
            self._indexed_personas = persona_ids
        logger.info("resolver.index.built", personas=len(persona_ids), threads=len(index), complete=complete)
        return index, True


__all__ = [
    "ThreadBackend",
    "ThreadResolver",
    "is_legacy_thread_id",
    "parse_thread_item_id",
    "thread_item_id",
]
