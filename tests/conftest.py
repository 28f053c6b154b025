"""Shared fixtures and dummy collaborators for sentence vault tests."""

import asyncio
from typing import Dict, List, Optional, Set

import pytest

from sentence_vault.errors import TransientPersistenceError
from sentence_vault.models import (
    MemoVaultInteraction,
    Message,
    OperationResult,
    Persona,
    Thread,
    ThreadSentenceData,
    ThreadType,
    VaultRestoreResponse,
)
from sentence_vault.notifications import LogNotifier
from sentence_vault.services.annotations import AnnotationStore


def make_thread(
    thread_id: str,
    persona_id: str = "freud",
    thread_type: ThreadType = ThreadType.SENTENCE,
    contents: Optional[List[str]] = None,
) -> Thread:
    contents = contents or ["Alpha one. Alpha two", "Beta one.\nBeta two"]
    messages = [
        Message(
            role="user" if index % 2 == 0 else "assistant",
            content=content,
            timestamp=f"2024-01-01T00:00:0{index}",
        )
        for index, content in enumerate(contents)
    ]
    return Thread(id=thread_id, persona_id=persona_id, thread_type=thread_type, messages=messages)


class DummyAnnotationBackend:
    def __init__(self) -> None:
        self.memos: Dict[str, Dict[str, str]] = {}
        self.highlights: Dict[str, List[str]] = {}
        self.calls: List[tuple] = []
        self.fail_on: Set[str] = set()
        self.last_memo_request = None

    def _maybe_fail(self, name: str) -> None:
        if name in self.fail_on:
            raise TransientPersistenceError(f"{name} failed", status_code=500)

    async def upsert_memo(self, request):
        self.calls.append(("upsert_memo", request.sentence_id))
        self._maybe_fail("upsert_memo")
        self.memos.setdefault(request.thread_id or "", {})[request.sentence_id] = request.content
        self.last_memo_request = request
        return OperationResult()

    async def delete_memo(self, sentence_id):
        self.calls.append(("delete_memo", sentence_id))
        self._maybe_fail("delete_memo")
        for memos in self.memos.values():
            memos.pop(sentence_id, None)
        return OperationResult()

    async def create_highlight(self, request):
        self.calls.append(("create_highlight", request.sentence_id))
        self._maybe_fail("create_highlight")
        highlights = self.highlights.setdefault(request.thread_id, [])
        if request.sentence_id not in highlights:
            highlights.append(request.sentence_id)
        return OperationResult()

    async def delete_highlight(self, sentence_id):
        self.calls.append(("delete_highlight", sentence_id))
        self._maybe_fail("delete_highlight")
        for highlights in self.highlights.values():
            if sentence_id in highlights:
                highlights.remove(sentence_id)
        return OperationResult()

    async def thread_sentence_data(self, thread_id):
        self.calls.append(("thread_sentence_data", thread_id))
        self._maybe_fail("thread_sentence_data")
        return ThreadSentenceData(
            memos=dict(self.memos.get(thread_id, {})),
            highlights=list(self.highlights.get(thread_id, [])),
        )

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)


class SlowCreateBackend(DummyAnnotationBackend):
    """Creates take longer than deletes; records the order writes finish in."""

    def __init__(self) -> None:
        super().__init__()
        self.finished: List[str] = []

    async def create_highlight(self, request):
        await asyncio.sleep(0.02)
        result = await super().create_highlight(request)
        self.finished.append("create")
        return result

    async def delete_highlight(self, sentence_id):
        result = await super().delete_highlight(sentence_id)
        self.finished.append("delete")
        return result


class DummyThreadBackend:
    def __init__(
        self,
        personas: Optional[Dict[str, Persona]] = None,
        threads: Optional[Dict[str, List[Thread]]] = None,
        verbalization: Optional[List[Thread]] = None,
    ) -> None:
        self.personas = personas or {}
        self.threads = threads or {}
        self.verbalization = verbalization or []
        self.failing_personas: Set[str] = set()
        self.fail_on: Set[str] = set()
        self.calls: List[tuple] = []
        self.saved: List[tuple] = []

    def _maybe_fail(self, name: str) -> None:
        if name in self.fail_on:
            raise TransientPersistenceError(f"{name} failed", status_code=503)

    async def list_personas(self):
        self._maybe_fail("list_personas")
        return dict(self.personas)

    async def list_persona_threads(self, persona_id):
        self.calls.append(("list_persona_threads", persona_id))
        if persona_id in self.failing_personas:
            raise TransientPersistenceError(f"threads of {persona_id} unavailable")
        return list(self.threads.get(persona_id, []))

    async def list_persona_threads_by_type(self, persona_id, thread_type):
        self.calls.append(("list_persona_threads_by_type", persona_id))
        if persona_id in self.failing_personas:
            raise TransientPersistenceError(f"threads of {persona_id} unavailable")
        return [thread for thread in self.threads.get(persona_id, []) if thread.thread_type == ThreadType(thread_type)]

    async def list_verbalization_threads(self):
        self.calls.append(("list_verbalization_threads",))
        self._maybe_fail("list_verbalization_threads")
        return list(self.verbalization)

    async def save_content(self, thread_type, persona_id, content):
        self._maybe_fail("save_content")
        self.saved.append((ThreadType(thread_type), persona_id, content))
        return {"success": True}

    async def edit_message(self, thread_id, message_index, new_content):
        self.calls.append(("edit_message", thread_id, message_index))
        self._maybe_fail("edit_message")
        for threads in self.threads.values():
            for thread in threads:
                if thread.id == thread_id:
                    messages = list(thread.messages)
                    messages[message_index] = messages[message_index].model_copy(update={"content": new_content})
                    return thread.model_copy(update={"messages": messages[: message_index + 1]})
        return None

    async def delete_thread(self, thread_id):
        self.calls.append(("delete_thread", thread_id))
        self._maybe_fail("delete_thread")
        for persona_id, threads in self.threads.items():
            self.threads[persona_id] = [thread for thread in threads if thread.id != thread_id]
        return OperationResult()

    async def create_verbalization_thread(self):
        thread = Thread(id=f"verbalization_{len(self.verbalization) + 1}", thread_type=ThreadType.VERBALIZATION)
        self.verbalization.append(thread)
        return thread

    async def delete_verbalization_thread(self, thread_id):
        self.calls.append(("delete_verbalization_thread", thread_id))
        self.verbalization = [thread for thread in self.verbalization if thread.id != thread_id]
        return OperationResult()

    def count(self, name: str, *args) -> int:
        return sum(1 for call in self.calls if call[0] == name and call[1 : 1 + len(args)] == args)


class DummyVaultBackend:
    def __init__(self) -> None:
        self.sentence_requests: List = []
        self.memo_requests: List = []
        self.restored: List[tuple] = []
        self.fail_on: Set[str] = set()
        self.interaction: Optional[MemoVaultInteraction] = None

    def _maybe_fail(self, name: str) -> None:
        if name in self.fail_on:
            raise TransientPersistenceError(f"{name} failed", status_code=500)

    async def save_sentences(self, request):
        self.sentence_requests.append(request)
        self._maybe_fail("save_sentences")
        return []

    async def save_memo(self, request):
        self.memo_requests.append(request)
        self._maybe_fail("save_memo")
        return None

    async def restore_sentence(self, item_id, thread_id, sentence_id):
        self.restored.append((item_id, thread_id, sentence_id))
        self._maybe_fail("restore_sentence")
        return VaultRestoreResponse(restored_highlight=True)

    async def interact_with_memo(self, memo_id):
        self._maybe_fail("interact_with_memo")
        return self.interaction


@pytest.fixture
def personas():
    return {
        "freud": Persona(name="Freud", description="Psychoanalysis"),
        "jung": Persona(name="Jung", description="Analytical psychology"),
    }


@pytest.fixture
def notifier():
    return LogNotifier()


@pytest.fixture
def annotation_backend():
    return DummyAnnotationBackend()


@pytest.fixture
def store(annotation_backend, notifier):
    return AnnotationStore(annotation_backend, notifier)


@pytest.fixture
def vault_backend():
    return DummyVaultBackend()
