# registry.py -- Live participant set for the relay
# Purely in-memory. Only BroadcastRelay mutates it, always under its lock.

from __future__ import annotations

import asyncio
import enum
import itertools
import logging
from collections.abc import Callable, Sequence
from typing import Any

from .errors import DeliveryFailure, DuplicateRegistration

log = logging.getLogger(__name__)

_ids = itertools.count(1)


class ParticipantState(enum.Enum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSED = "closed"


class Participant:
    """One live connection: transport handle plus a bounded outbox.

    Outbox items are batches of payloads. The writer task owned by the relay
    drains them in order.
    """

    def __init__(self, websocket: Any, queue_size: int = 256) -> None:
        if queue_size < 1:
            raise ValueError(f"queue_size must be at least 1, got {queue_size}")
        self.id: int = next(_ids)
        self.websocket = websocket
        self.state = ParticipantState.CONNECTING
        self.outbox: asyncio.Queue[tuple[str, ...]] = asyncio.Queue(maxsize=queue_size)
        self.writer: asyncio.Task | None = None

    def __repr__(self) -> str:
        return f"<Participant {self.id} {self.state.value}>"

    @property
    def closed(self) -> bool:
        return self.state is ParticipantState.CLOSED

    def deliver(self, payloads: Sequence[str]) -> None:
        """Queue a batch without blocking. Raises DeliveryFailure if closed or backed up."""
        if self.closed:
            raise DeliveryFailure(f"participant {self.id} is closed")
        try:
            self.outbox.put_nowait(tuple(payloads))
        except asyncio.QueueFull:
            raise DeliveryFailure(
                f"participant {self.id} outbox full ({self.outbox.maxsize} batches)"
            ) from None

    def close(self) -> None:
        self.state = ParticipantState.CLOSED


class ConnectionRegistry:
    """Set of currently registered participants, keyed by transport handle."""

    def __init__(self) -> None:
        self._participants: dict[Any, Participant] = {}

    def __len__(self) -> int:
        return len(self._participants)

    def __contains__(self, participant: object) -> bool:
        return (
            isinstance(participant, Participant)
            and self._participants.get(participant.websocket) is participant
        )

    def get(self, websocket: Any) -> Participant | None:
        return self._participants.get(websocket)

    def register(self, participant: Participant) -> None:
        if participant.websocket in self._participants:
            raise DuplicateRegistration(
                f"handle already registered as participant {self._participants[participant.websocket].id}"
            )
        self._participants[participant.websocket] = participant

    def deregister(self, participant: Participant) -> bool:
        """Remove a participant. Returns False if it was already gone."""
        if participant not in self:
            return False
        del self._participants[participant.websocket]
        return True

    def snapshot(self) -> list[Participant]:
        return list(self._participants.values())

    def for_each(self, visitor: Callable[[Participant], None]) -> list[Participant]:
        """Apply visitor to a snapshot of participants.

        Participants closed or removed mid-iteration are skipped. A visitor
        raising DeliveryFailure does not stop the walk; the failed
        participants are returned to the caller.
        """
        failed: list[Participant] = []
        for participant in self.snapshot():
            if participant.closed or participant not in self:
                continue
            try:
                visitor(participant)
            except DeliveryFailure as e:
                log.debug("Delivery to %r failed: %s", participant, e)
                failed.append(participant)
        return failed
