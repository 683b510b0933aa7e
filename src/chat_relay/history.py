# history.py -- Append-only in-memory message log
# Optionally capped: oldest messages are evicted, sequence numbers keep counting.

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Message:
    seq: int
    payload: str


class HistoryLog:
    """Ordered record of every relayed message since process start.

    max_messages=0 keeps everything. With a cap, snapshot() returns the most
    recent max_messages entries, still contiguous and in append order.
    """

    def __init__(self, max_messages: int = 0) -> None:
        if max_messages < 0:
            raise ValueError(f"max_messages must be 0 (unbounded) or positive, got {max_messages}")
        self.max_messages = max_messages
        self._messages: deque[Message] = deque(maxlen=max_messages or None)
        self._next_seq = 0

    def __len__(self) -> int:
        return len(self._messages)

    @property
    def total(self) -> int:
        """Number of messages ever appended, including evicted ones."""
        return self._next_seq

    def append(self, payload: str) -> Message:
        message = Message(self._next_seq, payload)
        if self.max_messages and len(self._messages) == self.max_messages:
            log.debug("History full (%d), evicting seq %d", self.max_messages, self._messages[0].seq)
        self._messages.append(message)
        self._next_seq += 1
        return message

    def snapshot(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def payloads(self) -> tuple[str, ...]:
        return tuple(m.payload for m in self._messages)
