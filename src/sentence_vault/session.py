"""Session-scoped values handed from one view to the next."""

from __future__ import annotations

from typing import Optional


class TransientSlot:
    """A string slot that is cleared by the first read.

    Used to pre-fill the next view's input box across a navigation.
    A second write before the value is taken replaces it.
    """

    def __init__(self) -> None:
        self._value: Optional[str] = None

    def put(self, value: str) -> None:
        self._value = value

    def take(self) -> Optional[str]:
        value, self._value = self._value, None
        return value

    def peek(self) -> Optional[str]:
        return self._value

    def __bool__(self) -> bool:
        return self._value is not None


class SessionStore:
    """Transient values for one user session."""

    def __init__(self) -> None:
        self.selected_sentence_for_input = TransientSlot()
        self._navigate_to_interpretation = False

    def request_interpretation_mode(self) -> None:
        self._navigate_to_interpretation = True

    def consume_interpretation_mode(self) -> bool:
        """Return the one-shot flag and reset it."""
        flag, self._navigate_to_interpretation = self._navigate_to_interpretation, False
        return flag


__all__ = ["SessionStore", "TransientSlot"]
