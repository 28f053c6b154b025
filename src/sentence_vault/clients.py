"""Client wrappers for the annotation, thread and vault REST services."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from .config import get_settings
from .errors import NotFoundError, TransientPersistenceError
from .models import (
    MemoVaultInteraction,
    MemoVaultItem,
    MemoVaultRequest,
    OperationResult,
    Persona,
    SentenceHighlightRequest,
    SentenceMemoRequest,
    SentenceVaultItem,
    SentenceVaultRequest,
    Thread,
    ThreadSentenceData,
    ThreadType,
    VaultRestoreResponse,
    VaultUpdateRequest,
)

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class BaseClient:
    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.api_url).rstrip("/")
        self.timeout = timeout or settings.default_timeout
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Transport errors, timeouts, non-2xx answers and bodies that are not
        JSON all surface as ``TransientPersistenceError``, except 404 which is
        ``NotFoundError``.
        """
        client = await self._get_client()
        kwargs: Dict[str, Any] = {}
        if json is not None:
            kwargs["json"] = json
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            response = await client.request(method, f"{self.base_url}{path}", **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            detail = _error_detail(exc.response)
            logger.warning("client.request.status_error", method=method, path=path, status=status, detail=detail)
            if status == 404:
                raise NotFoundError(detail or f"{method} {path} not found") from exc
            raise TransientPersistenceError(
                detail or f"Server error ({status})", status_code=status
            ) from exc
        except httpx.TimeoutException as exc:
            logger.warning("client.request.timeout", method=method, path=path)
            raise TransientPersistenceError(f"Request timed out: {method} {path}") from exc
        except httpx.HTTPError as exc:
            logger.warning("client.request.transport_error", method=method, path=path, error=str(exc))
            raise TransientPersistenceError(f"Cannot reach backend: {exc}") from exc

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            logger.warning("client.response.not_json", method=method, path=path, status=response.status_code)
            raise TransientPersistenceError(
                f"Malformed response from {method} {path}", status_code=response.status_code
            ) from exc


def _error_detail(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return None


def _dump(model: Any) -> Dict[str, Any]:
    return model.model_dump(mode="json", exclude_none=True)


def _validate(model: Type[ModelT], data: Any) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        logger.warning("client.response.invalid", model=model.__name__, errors=exc.error_count())
        raise TransientPersistenceError(f"Unexpected {model.__name__} payload") from exc


def _object(data: Any) -> Dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning("client.response.unexpected_shape", expected="object", got=type(data).__name__)
        raise TransientPersistenceError("Expected a JSON object")
    return data


def _array(data: Any) -> List[Any]:
    if data is None:
        return []
    if not isinstance(data, list):
        logger.warning("client.response.unexpected_shape", expected="array", got=type(data).__name__)
        raise TransientPersistenceError("Expected a JSON array")
    return data


class AnnotationClient(BaseClient):
    """Memos and highlights keyed by sentence id."""

    async def upsert_memo(self, request: SentenceMemoRequest) -> OperationResult:
        data = await self._request("POST", "/memos", json=_dump(request))
        return _validate(OperationResult, _object(data))

    async def get_memo(self, sentence_id: str) -> Optional[Dict[str, Any]]:
        try:
            return await self._request("GET", f"/memos/{sentence_id}")
        except NotFoundError:
            return None

    async def delete_memo(self, sentence_id: str) -> OperationResult:
        data = await self._request("DELETE", f"/memos/{sentence_id}")
        return _validate(OperationResult, _object(data))

    async def list_memos(self) -> Dict[str, str]:
        return _object(await self._request("GET", "/memos"))

    async def create_highlight(self, request: SentenceHighlightRequest) -> OperationResult:
        data = await self._request("POST", "/highlights", json=_dump(request))
        return _validate(OperationResult, _object(data))

    async def delete_highlight(self, sentence_id: str) -> OperationResult:
        data = await self._request("DELETE", f"/highlights/{sentence_id}")
        return _validate(OperationResult, _object(data))

    async def list_highlights(self) -> Dict[str, List[str]]:
        return _object(await self._request("GET", "/highlights"))

    async def thread_highlights(self, thread_id: str) -> List[str]:
        data = _object(await self._request("GET", f"/highlights/thread/{thread_id}"))
        return list(_array(data.get("highlights")))

    async def thread_sentence_data(self, thread_id: str) -> ThreadSentenceData:
        data = await self._request("GET", f"/threads/{thread_id}/sentence-data")
        return _validate(ThreadSentenceData, _object(data))


class ThreadClient(BaseClient):
    """Personas, persona threads and verbalization threads."""

    async def list_personas(self) -> Dict[str, Persona]:
        data = _object(await self._request("GET", "/personas"))
        return {persona_id: _validate(Persona, raw) for persona_id, raw in data.items()}

    async def list_persona_threads(self, persona_id: str) -> List[Thread]:
        data = _array(await self._request("GET", f"/threads/{persona_id}"))
        return [_validate(Thread, raw) for raw in data]

    async def list_persona_threads_by_type(self, persona_id: str, thread_type: ThreadType) -> List[Thread]:
        data = _array(await self._request("GET", f"/threads/{persona_id}/{ThreadType(thread_type).value}"))
        return [_validate(Thread, raw) for raw in data]

    async def delete_thread(self, thread_id: str) -> OperationResult:
        data = await self._request("DELETE", f"/threads/{thread_id}")
        return _validate(OperationResult, _object(data))

    async def edit_message(self, thread_id: str, message_index: int, new_content: str) -> Optional[Thread]:
        """Edit one message; the server regenerates the replies after it."""
        data = _object(
            await self._request(
                "PUT",
                f"/threads/{thread_id}/messages/{message_index}",
                json={"new_content": new_content},
                timeout=get_settings().chat_timeout,
            )
        )
        updated = data.get("updated_thread")
        return _validate(Thread, updated) if updated else None

    async def list_verbalization_threads(self) -> List[Thread]:
        data = _array(await self._request("GET", "/verbalization/threads"))
        return [_validate(Thread, raw) for raw in data]

    async def create_verbalization_thread(self) -> Thread:
        data = await self._request("POST", "/verbalization/new-thread")
        return _validate(Thread, data)

    async def delete_verbalization_thread(self, thread_id: str) -> OperationResult:
        data = await self._request("DELETE", f"/verbalization/threads/{thread_id}")
        return _validate(OperationResult, _object(data))

    async def save_content(self, thread_type: ThreadType, persona_id: str, content: str) -> Dict[str, Any]:
        """Append ``content`` to the persona's interpretation/proceed/sentence thread."""
        paths = {
            ThreadType.INTERPRETATION: "/interpretations/save",
            ThreadType.PROCEED: "/proceed/save",
            ThreadType.SENTENCE: "/sentence/save",
        }
        path = paths.get(ThreadType(thread_type))
        if path is None:
            raise ValueError(f"Cannot save content into a {thread_type} thread")
        data = await self._request(
            "POST",
            path,
            json={"persona_id": persona_id, "content": content},
            timeout=get_settings().generation_timeout,
        )
        return _object(data)


class VaultClient(BaseClient):
    """Sentence vault and memo vault."""

    async def save_sentences(self, request: SentenceVaultRequest) -> List[SentenceVaultItem]:
        data = _object(await self._request("POST", "/vault/sentences", json=_dump(request)))
        return [_validate(SentenceVaultItem, raw) for raw in _array(data.get("saved_items"))]

    async def list_sentences(self) -> List[SentenceVaultItem]:
        data = _array(await self._request("GET", "/vault/sentences"))
        return [_validate(SentenceVaultItem, raw) for raw in data]

    async def delete_sentence(self, item_id: str) -> OperationResult:
        data = await self._request("DELETE", f"/vault/sentences/{item_id}")
        return _validate(OperationResult, _object(data))

    async def update_sentence(self, item_id: str, request: VaultUpdateRequest) -> Optional[SentenceVaultItem]:
        data = _object(await self._request("PUT", f"/vault/sentences/{item_id}", json=_dump(request)))
        updated = data.get("updated_item")
        return _validate(SentenceVaultItem, updated) if updated else None

    async def restore_sentence(self, item_id: str, thread_id: str, sentence_id: str) -> VaultRestoreResponse:
        data = await self._request(
            "POST",
            f"/vault/sentences/{item_id}/restore",
            json={"thread_id": thread_id, "sentence_id": sentence_id},
        )
        return _validate(VaultRestoreResponse, _object(data))

    async def save_memo(self, request: MemoVaultRequest) -> Optional[MemoVaultItem]:
        data = _object(await self._request("POST", "/vault/memos", json=_dump(request)))
        saved = data.get("saved_item")
        return _validate(MemoVaultItem, saved) if saved else None

    async def list_memos(self) -> List[MemoVaultItem]:
        data = _array(await self._request("GET", "/vault/memos"))
        return [_validate(MemoVaultItem, raw) for raw in data]

    async def delete_memo(self, memo_id: str) -> OperationResult:
        data = await self._request("DELETE", f"/vault/memos/{memo_id}")
        return _validate(OperationResult, _object(data))

    async def interact_with_memo(self, memo_id: str) -> MemoVaultInteraction:
        data = await self._request(
            "POST",
            f"/vault/memos/{memo_id}/interact",
            json={},
            timeout=get_settings().chat_timeout,
        )
        return _validate(MemoVaultInteraction, _object(data))


__all__ = ["AnnotationClient", "BaseClient", "ThreadClient", "VaultClient"]
