"""Exception hierarchy for sentence vault."""

from __future__ import annotations

from typing import Optional


class SentenceVaultError(RuntimeError):
    """Base class for all sentence vault failures."""


class NotFoundError(SentenceVaultError):
    """A thread, persona or record could not be located."""


class ThreadNotFoundError(NotFoundError):
    """Raised when no resolution path yields the requested thread."""

    def __init__(self, thread_id: str, thread_type: Optional[str] = None) -> None:
        self.thread_id = thread_id
        self.thread_type = thread_type
        hint = f" (type={thread_type})" if thread_type else ""
        super().__init__(f"Thread not found: {thread_id}{hint}")


class PersonaNotFoundError(NotFoundError):
    """Raised when a persona id is not present in the persona map."""

    def __init__(self, persona_id: str) -> None:
        self.persona_id = persona_id
        super().__init__(f"Persona not found: {persona_id}")


class TransientPersistenceError(SentenceVaultError):
    """Network, timeout or server failure on a persistence call."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class ValidationFailure(SentenceVaultError, ValueError):
    """Input rejected before any network call was made."""


class InvalidSentenceIdError(ValidationFailure):
    """A sentence id that does not decode into an address."""

    def __init__(self, sentence_id: str) -> None:
        self.sentence_id = sentence_id
        super().__init__(f"Invalid sentence id: {sentence_id!r}")


__all__ = [
    "InvalidSentenceIdError",
    "NotFoundError",
    "PersonaNotFoundError",
    "SentenceVaultError",
    "ThreadNotFoundError",
    "TransientPersistenceError",
    "ValidationFailure",
]
