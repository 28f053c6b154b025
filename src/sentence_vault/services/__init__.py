"""Stateful services behind the workspace."""
from .actions import ActionDispatcher, ActionKind, ActionOutcome, ThreadContext
from .annotations import AnnotationStore, ThreadAnnotations
from .navigation import MemoryHistory, NavigationCoordinator
from .resolver import ThreadResolver, is_legacy_thread_id
from .thread_actions import ThreadActions

__all__ = [
    "ActionDispatcher",
    "ActionKind",
    "ActionOutcome",
    "AnnotationStore",
    "MemoryHistory",
    "NavigationCoordinator",
    "ThreadActions",
    "ThreadAnnotations",
    "ThreadContext",
    "ThreadResolver",
    "is_legacy_thread_id",
]
