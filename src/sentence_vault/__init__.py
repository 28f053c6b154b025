"""
Sentence Vault

Sentence-level annotation and thread navigation for persona chat threads:
- deterministic sentence addresses derived from message text
- optimistic memos and highlights partitioned per thread
- batch bookmarking of sentences into the vault
- thread resolution across legacy and current id formats
- navigation state mirrored into the history stack
"""

__version__ = "0.1.0"

from .clients import AnnotationClient, ThreadClient, VaultClient
from .config import Settings, get_settings
from .errors import (
    InvalidSentenceIdError,
    NotFoundError,
    PersonaNotFoundError,
    SentenceVaultError,
    ThreadNotFoundError,
    TransientPersistenceError,
    ValidationFailure,
)
from .logging_config import configure_logging
from .models import Message, NavigationState, Persona, Thread, ThreadType
from .workspace import Workspace

__all__ = [
    "AnnotationClient",
    "InvalidSentenceIdError",
    "Message",
    "NavigationState",
    "NotFoundError",
    "Persona",
    "PersonaNotFoundError",
    "SentenceVaultError",
    "Settings",
    "Thread",
    "ThreadClient",
    "ThreadNotFoundError",
    "ThreadType",
    "TransientPersistenceError",
    "ValidationFailure",
    "VaultClient",
    "Workspace",
    "configure_logging",
    "get_settings",
]
