"""Pydantic models for threads, annotations, vault records and navigation."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ThreadType(str, Enum):
    """Purpose of a thread; closed set."""

    INTERPRETATION = "interpretation"
    PROCEED = "proceed"
    SENTENCE = "sentence"
    VERBALIZATION = "verbalization"


class Persona(BaseModel):
    """Persona definition as served by ``GET /personas``."""

    model_config = ConfigDict(extra="ignore")

    name: str
    description: str = ""
    color: str = ""
    prompt: str = ""
    category: str = ""
    subcategory: str = ""


class Message(BaseModel):
    """Single chat message. Immutable once created."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    role: Literal["user", "assistant"]
    content: str = ""
    timestamp: str = ""
    persona_id: Optional[str] = None
    persona_name: Optional[str] = None


class Thread(BaseModel):
    """Ordered message list tied to one (persona, purpose) pair."""

    model_config = ConfigDict(extra="ignore")

    id: str
    persona_id: str = ""
    thread_type: ThreadType
    content: str = ""
    messages: List[Message] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ThreadSentenceData(BaseModel):
    """Authoritative memo/highlight snapshot for one thread."""

    model_config = ConfigDict(extra="ignore")

    memos: Dict[str, str] = Field(default_factory=dict)
    highlights: List[str] = Field(default_factory=list)


class Annotation(BaseModel):
    """Memo text and/or highlight flag attached to one sentence address."""

    sentence_id: str
    memo_text: Optional[str] = None
    highlighted: bool = False


# Annotation service payloads
class SentenceMemoRequest(BaseModel):
    """Create or update a memo (``POST /memos``)."""

    sentence_id: str
    thread_id: Optional[str] = None
    thread_type: Optional[ThreadType] = None
    content: str
    sentence_content: Optional[str] = None
    source_message_id: Optional[str] = None
    related_sentence_ids: Optional[List[str]] = None
    related_sentence_contents: Optional[List[str]] = None


class SentenceHighlightRequest(BaseModel):
    """Create a highlight (``POST /highlights``)."""

    sentence_id: str
    thread_id: str = ""
    thread_type: str = ""


class OperationResult(BaseModel):
    """Generic ``{success, message}`` acknowledgement."""

    model_config = ConfigDict(extra="allow")

    success: bool = True
    message: str = ""


# Vault payloads
class SentenceVaultRequest(BaseModel):
    """Batch save of N sentences; every list is aligned to ``sentences``."""

    sentences: List[str]
    source_message_id: str
    source_conversation_id: Optional[str] = None
    source_thread_id: Optional[str] = None
    source_thread_type: Optional[ThreadType] = None
    source_sentence_ids: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    highlight_states: List[bool] = Field(default_factory=list)
    highlight_colors: List[Optional[str]] = Field(default_factory=list)
    memo_contents: List[Optional[str]] = Field(default_factory=list)


class SentenceVaultItem(BaseModel):
    """Sentence stored in the vault."""

    model_config = ConfigDict(extra="ignore")

    id: str
    sentence: str
    source_message_id: str = ""
    source_conversation_id: Optional[str] = None
    source_thread_id: Optional[str] = None
    source_thread_type: Optional[str] = None
    source_sentence_id: Optional[str] = None
    created_at: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    is_highlighted: bool = False
    highlight_color: Optional[str] = None
    memo_content: Optional[str] = None
    is_pinned: bool = False


class VaultUpdateRequest(BaseModel):
    """Partial update for a vault sentence."""

    is_highlighted: Optional[bool] = None
    highlight_color: Optional[str] = None
    memo_content: Optional[str] = None
    is_pinned: Optional[bool] = None
    tags: Optional[List[str]] = None


class VaultRestoreResponse(BaseModel):
    """Result of restoring a vault sentence's annotations into its thread."""

    model_config = ConfigDict(extra="ignore")

    success: bool = True
    message: str = ""
    restored_highlight: bool = False
    restored_memo: bool = False
    highlight_color: Optional[str] = None
    memo_content: Optional[str] = None


class MemoVaultRequest(BaseModel):
    """One memo record, anchored at ``source_sentence_id``."""

    memo_content: str
    sentence_content: str
    source_message_id: str
    source_conversation_id: Optional[str] = None
    source_thread_id: Optional[str] = None
    source_thread_type: Optional[ThreadType] = None
    source_sentence_id: str
    tags: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class MemoVaultItem(BaseModel):
    """Memo stored in the vault."""

    model_config = ConfigDict(extra="ignore")

    id: str
    memo_content: str
    sentence_content: str = ""
    source_message_id: str = ""
    source_conversation_id: Optional[str] = None
    source_thread_id: Optional[str] = None
    source_thread_type: Optional[str] = None
    source_sentence_id: str = ""
    created_at: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class MemoVaultInteraction(BaseModel):
    """Response of ``POST /vault/memos/{id}/interact``."""

    model_config = ConfigDict(extra="ignore")

    success: bool = True
    message: str = ""
    interaction_message: str = ""
    source_thread_id: Optional[str] = None
    source_thread_type: Optional[str] = None
    memo_item: Optional[MemoVaultItem] = None


# Navigation
class NavigationState(BaseModel):
    """Top-level selection mirrored into the address bar and history stack."""

    model_config = ConfigDict(frozen=True)

    section_id: Optional[str] = None
    item_id: Optional[str] = None
    active_persona_id: Optional[str] = None
    active_persona_name: Optional[str] = None

    @property
    def key(self) -> tuple[Optional[str], Optional[str], Optional[str]]:
        """The triple whose change creates a new history entry."""
        return (self.section_id, self.item_id, self.active_persona_id)

    @property
    def is_root(self) -> bool:
        return self.key == (None, None, None)


class ThreadLocation(BaseModel):
    """Where a resolved thread lives and which view selects it."""

    persona_id: Optional[str] = None
    thread: Optional[Thread] = None
    thread_type: ThreadType
    section_id: Optional[str] = None
    item_id: str


__all__ = [
    "Annotation",
    "MemoVaultInteraction",
    "MemoVaultItem",
    "MemoVaultRequest",
    "Message",
    "NavigationState",
    "OperationResult",
    "Persona",
    "SentenceHighlightRequest",
    "SentenceMemoRequest",
    "SentenceVaultItem",
    "SentenceVaultRequest",
    "Thread",
    "ThreadLocation",
    "ThreadSentenceData",
    "ThreadType",
    "VaultRestoreResponse",
    "VaultUpdateRequest",
]
