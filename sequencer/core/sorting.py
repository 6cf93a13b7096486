# sequencer/core/sorting.py
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Tuple

from sequencer.core.errors import RangeError
from sequencer.core.types import Message


def order_key(msg: Message) -> Tuple[str, str]:
    """Total order over messages: sequence key first, id breaks ties."""
    return (msg.sequence_key, msg.id)


@dataclass(frozen=True)
class SortedMessages:
    """
    Ordered, optionally range-sliced view over the messages of one process.
    Recomputed on every read, never stored.

    Cursors are sequence keys compared by value and both bounds are inclusive.
    A cursor that matches no stored message is not an error: the slice simply
    starts (or stops) at the nearest message inside the bound.
    """
    messages: Tuple[Message, ...]

    @classmethod
    def from_messages(
        cls,
        messages: Iterable[Message],
        from_: Optional[str] = None,
        to: Optional[str] = None,
    ) -> "SortedMessages":
        if from_ is not None and to is not None and from_ > to:
            raise RangeError(f"Range start {from_!r} is after range end {to!r}", meta={"from": from_, "to": to})

        ordered = sorted(messages, key=order_key)
        sliced = [
            m for m in ordered
            if (from_ is None or m.sequence_key >= from_)
            and (to is None or m.sequence_key <= to)
        ]
        return cls(tuple(sliced))

    def __iter__(self) -> Iterator[Message]:
        return iter(self.messages)

    def __len__(self) -> int:
        return len(self.messages)

    @property
    def first_cursor(self) -> Optional[str]:
        return self.messages[0].sequence_key if self.messages else None

    @property
    def last_cursor(self) -> Optional[str]:
        return self.messages[-1].sequence_key if self.messages else None

    def to_list(self) -> List[dict]:
        return [m.to_dict() for m in self.messages]
