# tests/test_sorting.py
import random

import pytest

from sequencer.core.encoding import sequence_key
from sequencer.core.errors import ErrorKind, RangeError
from sequencer.core.sorting import SortedMessages
from sequencer.core.types import Message


def make_message(msg_id: str, height: int, ts: int, process_id: str = "proc-1") -> Message:
    return Message(
        id=msg_id,
        process_id=process_id,
        sequence_key=sequence_key(height, ts),
        payload=f"payload {msg_id}",
        owner="owner",
        height=height,
        timestamp=ts,
        signature="c2ln",
        bundle_reference=f"ref-{msg_id}",
    )


@pytest.fixture
def messages():
    return [
        make_message("m-a", 10, 1_000),
        make_message("m-b", 10, 2_000),
        make_message("m-c", 11, 1_500),     # later height wins over earlier clock
        make_message("m-d", 12, 3_000),
        make_message("m-e", 12, 3_000),     # tie with m-d, broken by id
        make_message("m-f", 13, 4_000),
    ]


def ids(sorted_messages):
    return [m.id for m in sorted_messages]


def test_orders_by_sequence_key_then_id(messages):
    result = SortedMessages.from_messages(reversed(messages))
    assert ids(result) == ["m-a", "m-b", "m-c", "m-d", "m-e", "m-f"]


def test_order_independent_of_input_order(messages):
    expected = ids(SortedMessages.from_messages(messages))
    rng = random.Random(3)
    for _ in range(20):
        shuffled = messages[:]
        rng.shuffle(shuffled)
        assert ids(SortedMessages.from_messages(shuffled)) == expected


def test_slice_between_present_cursors_is_contiguous(messages):
    full = SortedMessages.from_messages(messages).messages
    for i in range(len(full)):
        for j in range(i, len(full)):
            lo, hi = full[i].sequence_key, full[j].sequence_key
            result = SortedMessages.from_messages(messages, lo, hi).messages
            # every message whose key falls inside [lo, hi], which is a contiguous run of the full order
            start = min(k for k, m in enumerate(full) if m.sequence_key == lo)
            end = max(k for k, m in enumerate(full) if m.sequence_key == hi)
            assert result == full[start:end + 1]


def test_open_ended_bounds(messages):
    cursor = sequence_key(12, 3_000)
    assert ids(SortedMessages.from_messages(messages, from_=cursor)) == ["m-d", "m-e", "m-f"]
    assert ids(SortedMessages.from_messages(messages, to=cursor)) == ["m-a", "m-b", "m-c", "m-d", "m-e"]


def test_absent_cursor_clamps_to_nearest(messages):
    between = sequence_key(10, 5_000)      # after m-b, before m-c
    assert ids(SortedMessages.from_messages(messages, from_=between)) == ["m-c", "m-d", "m-e", "m-f"]
    assert ids(SortedMessages.from_messages(messages, to=between)) == ["m-a", "m-b"]


def test_range_past_the_end_is_empty(messages):
    result = SortedMessages.from_messages(messages, from_=sequence_key(99, 0))
    assert len(result) == 0
    assert result.first_cursor is None and result.last_cursor is None


def test_from_after_to_is_range_error(messages):
    with pytest.raises(RangeError) as exc:
        SortedMessages.from_messages(messages, sequence_key(13, 0), sequence_key(12, 0))
    assert exc.value.kind is ErrorKind.INPUT


def test_from_after_to_is_range_error_even_without_messages():
    with pytest.raises(RangeError):
        SortedMessages.from_messages([], "b", "a")


def test_equal_bounds_select_one_key(messages):
    key = sequence_key(12, 3_000)
    assert ids(SortedMessages.from_messages(messages, key, key)) == ["m-d", "m-e"]


def test_cursors_and_to_list(messages):
    result = SortedMessages.from_messages(messages)
    assert result.first_cursor == sequence_key(10, 1_000)
    assert result.last_cursor == sequence_key(13, 4_000)
    assert [d["id"] for d in result.to_list()] == ids(result)
