"""Tests for the sentence action dispatcher."""

from typing import List

import pytest

from conftest import make_thread
from sentence_vault.models import ThreadType
from sentence_vault.sentences import encode
from sentence_vault.services.actions import ActionDispatcher, ActionKind, ThreadContext

TS0 = "2024-01-01T00:00:00"
TS1 = "2024-01-01T00:00:01"
ALPHA_ONE = encode(TS0, 0, 0)
ALPHA_TWO = encode(TS0, 0, 1)
BETA_ONE = encode(TS1, 1, 0)


class RecordingInput:
    def __init__(self) -> None:
        self.inserted: List[str] = []

    def insert_text(self, text: str) -> None:
        self.inserted.append(text)


class BrokenClipboard:
    def write_text(self, text: str) -> None:
        raise OSError("clipboard unavailable")


class RecordingCopier:
    def __init__(self) -> None:
        self.copied: List[str] = []

    def copy_selection(self, text: str) -> bool:
        self.copied.append(text)
        return True


@pytest.fixture
def context():
    return ThreadContext(thread=make_thread("t1", "freud"), persona_id="freud")


@pytest.fixture
def dispatcher(store, vault_backend, notifier):
    return ActionDispatcher(store, vault_backend, notifier, highlight_color="yellow")


def test_every_action_has_a_handler(dispatcher):
    assert set(dispatcher._handlers) == set(ActionKind)


@pytest.mark.asyncio
async def test_save_to_vault_builds_aligned_arrays(dispatcher, store, vault_backend, context):
    store.thread("t1").highlighted.add(ALPHA_ONE)
    store.thread("t1").memos[ALPHA_ONE] = "note"
    dispatcher.selection.toggle(ALPHA_ONE)
    dispatcher.selection.toggle(ALPHA_TWO)

    outcome = await dispatcher.dispatch(ActionKind.SAVE_TO_VAULT, context)

    assert outcome.success
    [request] = vault_backend.sentence_requests
    assert request.sentences == ["Alpha one", "Alpha two"]
    assert request.source_sentence_ids == [ALPHA_ONE, ALPHA_TWO]
    assert request.highlight_states == [True, False]
    assert request.highlight_colors == ["yellow", None]
    assert request.memo_contents == ["note", None]
    assert request.source_message_id == "sentence_freud"
    assert request.source_thread_id == "t1"
    assert request.tags == ["sentence", "freud"]

    [memo] = vault_backend.memo_requests
    assert memo.source_sentence_id == ALPHA_ONE
    assert memo.memo_content == "note"
    assert memo.sentence_content == '"Alpha one", "Alpha two"'
    assert memo.metadata == {
        "related_sentence_ids": [ALPHA_ONE, ALPHA_TWO],
        "related_sentence_contents": ["Alpha one", "Alpha two"],
        "memo_type": "multi_sentence",
    }

    assert store.highlighted("t1") == frozenset({ALPHA_ONE, ALPHA_TWO})
    assert len(dispatcher.selection) == 0


@pytest.mark.asyncio
async def test_save_without_memos_writes_no_memo_record(dispatcher, vault_backend, context, notifier):
    await dispatcher.dispatch(ActionKind.SAVE_TO_VAULT, context, [BETA_ONE])
    assert vault_backend.sentence_requests[0].memo_contents == [None]
    assert vault_backend.memo_requests == []
    assert notifier.last == "Saved to vault"


@pytest.mark.asyncio
async def test_empty_selection_makes_no_calls(dispatcher, vault_backend, annotation_backend, context, notifier):
    outcome = await dispatcher.dispatch(ActionKind.SAVE_TO_VAULT, context)

    assert outcome.success is False
    assert notifier.last == "Select at least one sentence"
    assert vault_backend.sentence_requests == []
    assert annotation_backend.calls == []


@pytest.mark.asyncio
async def test_unresolvable_ids_are_dropped(dispatcher, vault_backend, context):
    await dispatcher.dispatch(
        ActionKind.SAVE_TO_VAULT,
        context,
        ["garbage", encode("1999-01-01T00:00:00", 9, 0), BETA_ONE],
    )
    request = vault_backend.sentence_requests[0]
    assert request.source_sentence_ids == [BETA_ONE]
    assert request.sentences == ["Beta one"]


@pytest.mark.asyncio
async def test_selection_is_cleared_when_vault_fails(dispatcher, vault_backend, context, notifier):
    vault_backend.fail_on.add("save_sentences")
    dispatcher.selection.toggle(ALPHA_ONE)

    outcome = await dispatcher.dispatch(ActionKind.SAVE_TO_VAULT, context)

    assert outcome.success is False
    assert len(dispatcher.selection) == 0
    assert notifier.last == "Action failed"


@pytest.mark.asyncio
async def test_send_to_input_quotes_sentences(store, vault_backend, notifier, context):
    box = RecordingInput()
    dispatcher = ActionDispatcher(store, vault_backend, notifier, input_box=box, highlight_color="yellow")

    await dispatcher.dispatch(ActionKind.SEND_TO_INPUT, context, [ALPHA_ONE, BETA_ONE])

    assert box.inserted == ['"Alpha one", "Beta one"']


@pytest.mark.asyncio
async def test_copy_falls_back_when_clipboard_fails(store, vault_backend, notifier, context):
    copier = RecordingCopier()
    dispatcher = ActionDispatcher(
        store,
        vault_backend,
        notifier,
        clipboard=BrokenClipboard(),
        fallback_copier=copier,
        highlight_color="yellow",
    )

    outcome = await dispatcher.dispatch(ActionKind.COPY, context, [ALPHA_ONE, ALPHA_TWO])

    assert outcome.success
    assert copier.copied == ["Alpha one Alpha two"]


@pytest.mark.asyncio
async def test_copy_without_any_clipboard_fails(dispatcher, context, notifier):
    outcome = await dispatcher.dispatch(ActionKind.COPY, context, [ALPHA_ONE])
    assert outcome.success is False
    assert notifier.last == "Copy failed"


@pytest.mark.asyncio
async def test_toggle_highlight_unhighlights_when_any_is_highlighted(dispatcher, store, context):
    await store.highlight_many("t1", ThreadType.SENTENCE, [ALPHA_ONE])

    await dispatcher.dispatch(ActionKind.TOGGLE_HIGHLIGHT, context, [ALPHA_ONE, ALPHA_TWO])
    assert store.highlighted("t1") == frozenset()

    await dispatcher.dispatch(ActionKind.TOGGLE_HIGHLIGHT, context, [ALPHA_ONE, ALPHA_TWO])
    assert store.highlighted("t1") == frozenset({ALPHA_ONE, ALPHA_TWO})


@pytest.mark.asyncio
async def test_vault_memo_record_anchors_at_first_memo(dispatcher, store, vault_backend, context):
    store.thread("t1").memos[ALPHA_TWO] = "second"
    store.thread("t1").memos[BETA_ONE] = "third"

    await dispatcher.dispatch(ActionKind.SAVE_TO_VAULT, context, [ALPHA_ONE, ALPHA_TWO, BETA_ONE])

    [memo] = vault_backend.memo_requests
    assert memo.source_sentence_id == ALPHA_TWO
    assert memo.memo_content == "second"
    assert vault_backend.sentence_requests[0].memo_contents == [None, "second", "third"]


@pytest.mark.asyncio
async def test_failed_highlight_toggle_keeps_local_and_persisted_state_equal(
    dispatcher, store, annotation_backend, context, notifier
):
    annotation_backend.fail_on.add("create_highlight")

    outcome = await dispatcher.dispatch(ActionKind.TOGGLE_HIGHLIGHT, context, [ALPHA_ONE])

    assert outcome.success is False
    assert store.highlighted("t1") == frozenset()
    assert annotation_backend.highlights.get("t1", []) == []
    assert notifier.last == "Failed to update highlight"


@pytest.mark.asyncio
async def test_add_memo_anchors_at_first_selected(dispatcher, store, annotation_backend, context):
    dispatcher.selection.toggle(BETA_ONE)
    dispatcher.selection.toggle(ALPHA_ONE)

    outcome = await dispatcher.dispatch(ActionKind.ADD_MEMO, context)

    assert outcome.sentence_ids == [BETA_ONE]
    assert store.memos("t1") == {BETA_ONE: ""}
    assert annotation_backend.last_memo_request.related_sentence_ids == [BETA_ONE, ALPHA_ONE]
