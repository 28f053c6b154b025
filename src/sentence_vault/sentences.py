"""Sentence splitting and sentence address encoding.

Sentences are never stored. They are derived from message text every time a
thread is rendered, and each one is addressed by the triple
``(message_timestamp, message_index, sentence_index)`` encoded as
``"{timestamp}_{message_index}_{sentence_index}"``. Only the encoded string
travels to the annotation and vault services.
"""

from __future__ import annotations

import re
from typing import Iterable, List, NamedTuple, Optional, Sequence, Tuple, Union

from .errors import InvalidSentenceIdError
from .models import Message, Thread

SEPARATOR = "_"
NO_TIMESTAMP = "no-timestamp"

_SENTENCE_BREAK = re.compile(r"[\n.]+")


class SentenceAddress(NamedTuple):
    message_timestamp: str
    message_index: int
    sentence_index: int


def split_sentences(text: Optional[str]) -> List[str]:
    """Split on runs of newlines or periods, strip, drop empty pieces."""
    if not text:
        return []
    pieces = (piece.strip() for piece in _SENTENCE_BREAK.split(text))
    return [piece for piece in pieces if piece]


def encode(message_timestamp: Optional[str], message_index: int, sentence_index: int) -> str:
    timestamp = message_timestamp or NO_TIMESTAMP
    if SEPARATOR in timestamp:
        raise InvalidSentenceIdError(timestamp)
    if message_index < 0 or sentence_index < 0:
        raise InvalidSentenceIdError(f"{timestamp}{SEPARATOR}{message_index}{SEPARATOR}{sentence_index}")
    return SEPARATOR.join((timestamp, str(message_index), str(sentence_index)))


def decode(sentence_id: str) -> SentenceAddress:
    parts = sentence_id.split(SEPARATOR) if sentence_id else []
    if len(parts) != 3 or not parts[0]:
        raise InvalidSentenceIdError(sentence_id)
    timestamp, message_index, sentence_index = parts
    if not (message_index.isdigit() and sentence_index.isdigit()):
        raise InvalidSentenceIdError(sentence_id)
    return SentenceAddress(timestamp, int(message_index), int(sentence_index))


def address_message(message: Message, message_index: int) -> List[Tuple[str, str]]:
    """Pair every sentence of ``message`` with its address, in render order."""
    return [
        (encode(message.timestamp, message_index, sentence_index), sentence)
        for sentence_index, sentence in enumerate(split_sentences(message.content))
    ]


def address_thread(messages: Sequence[Message]) -> List[Tuple[str, str]]:
    pairs: List[Tuple[str, str]] = []
    for message_index, message in enumerate(messages):
        pairs.extend(address_message(message, message_index))
    return pairs


MessageSource = Union[Thread, Sequence[Message]]


def _messages_of(source: MessageSource) -> Sequence[Message]:
    if isinstance(source, Thread):
        return source.messages
    return source


def resolve_message(source: MessageSource, sentence_id: str) -> Optional[Message]:
    """Locate the message owning ``sentence_id``.

    The message index is tried first. When it is out of range, or the message
    found there carries another timestamp (the thread was refetched and
    regenerated since the id was minted), the message list is scanned for the
    decoded timestamp. A message at an in-range index is the last resort.
    """
    address = decode(sentence_id)
    messages = _messages_of(source)

    by_index: Optional[Message] = None
    if address.message_index < len(messages):
        by_index = messages[address.message_index]
        if (by_index.timestamp or NO_TIMESTAMP) == address.message_timestamp:
            return by_index

    for message in messages:
        if (message.timestamp or NO_TIMESTAMP) == address.message_timestamp:
            return message

    return by_index


def resolve_text(source: MessageSource, sentence_id: str) -> str:
    """Return the sentence text for ``sentence_id`` or ``""`` if unresolvable."""
    message = resolve_message(source, sentence_id)
    if message is None:
        return ""
    sentences = split_sentences(message.content)
    index = decode(sentence_id).sentence_index
    return sentences[index] if index < len(sentences) else ""


def format_quoted(texts: Iterable[str]) -> str:
    """Render sentences the way they are inserted into the input box."""
    return ", ".join(f'"{text}"' for text in texts)


__all__ = [
    "NO_TIMESTAMP",
    "SEPARATOR",
    "SentenceAddress",
    "address_message",
    "address_thread",
    "decode",
    "encode",
    "format_quoted",
    "resolve_message",
    "resolve_text",
    "split_sentences",
]
