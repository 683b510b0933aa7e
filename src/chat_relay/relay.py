# relay.py -- Broadcast relay: join with history replay, append + fan-out, leave
# One asyncio.Lock serializes every mutation of the history log and the registry.
# Nothing inside the lock awaits transport I/O; sends happen in per-participant
# writer tasks so a slow consumer never stalls the others.

from __future__ import annotations

import asyncio
import logging
from typing import Any

from starlette import status
from starlette.websockets import WebSocketDisconnect

from .errors import DuplicateRegistration
from .history import HistoryLog
from .registry import ConnectionRegistry, Participant, ParticipantState

log = logging.getLogger(__name__)

# Transport errors that mean "this participant is gone"
SEND_ERRORS = (asyncio.TimeoutError, WebSocketDisconnect, RuntimeError, OSError)


class BroadcastRelay:
    """Shared ordered message stream for every connected participant.

    All participants observe the history log's append order: join enqueues the
    replay batch and publish enqueues live payloads under the same lock, and
    each participant's writer drains its outbox strictly in order.
    """

    def __init__(
        self,
        history: HistoryLog | None = None,
        *,
        send_timeout: float = 5.0,
        queue_size: int = 256,
    ) -> None:
        self.history = history if history is not None else HistoryLog()
        self.registry = ConnectionRegistry()
        self.send_timeout = send_timeout
        self.queue_size = queue_size
        self._lock = asyncio.Lock()
        self._writers: set[asyncio.Task] = set()

    def stats(self) -> dict[str, int]:
        return {
            "participants": len(self.registry),
            "history_size": len(self.history),
            "history_total": self.history.total,
        }

    async def join(self, websocket: Any) -> Participant:
        """Register an accepted connection and queue the full history for it.

        Joining a handle that is already registered is a no-op that returns
        the existing participant.
        """
        participant = Participant(websocket, queue_size=self.queue_size)
        async with self._lock:
            try:
                self.registry.register(participant)
            except DuplicateRegistration as e:
                log.warning("Ignoring duplicate registration: %s", e)
                existing = self.registry.get(websocket)
                assert existing is not None
                return existing
            replay = self.history.payloads()
            # Fresh outbox, so the replay batch always fits
            participant.deliver(replay)
            task = asyncio.create_task(
                self._pump(participant), name=f"relay-writer-{participant.id}"
            )
            participant.writer = task
            self._writers.add(task)
            task.add_done_callback(self._writers.discard)
            connected = len(self.registry)
        log.info(
            "Participant %d joined (%d connected, replaying %d)",
            participant.id,
            connected,
            len(replay),
        )
        return participant

    async def publish(self, participant: Participant, payload: str) -> bool:
        """Append payload to history and fan it out to everyone, sender included.

        Returns False if the sender is already closed and the payload was dropped.
        """
        async with self._lock:
            if participant.closed:
                log.debug("Ignoring message from closed participant %d", participant.id)
                return False
            message = self.history.append(payload)
            failed = self.registry.for_each(lambda p: p.deliver((payload,)))
            for p in failed:
                self._remove(p)
            recipients = len(self.registry)
        log.debug(
            "Message %d from participant %d relayed to %d", message.seq, participant.id, recipients
        )
        for p in failed:
            log.warning("Dropping participant %d: outbox full", p.id)
            await self._close_transport(p, status.WS_1011_INTERNAL_ERROR)
        return True

    async def leave(self, participant: Participant) -> None:
        """Deregister a participant. Safe to call more than once."""
        async with self._lock:
            removed = self._remove(participant)
            remaining = len(self.registry)
        if removed:
            log.info("Participant %d left (%d connected)", participant.id, remaining)

    async def shutdown(self) -> None:
        """Close every participant and wait for the writer tasks to finish."""
        async with self._lock:
            participants = self.registry.snapshot()
            for p in participants:
                self._remove(p)
        for p in participants:
            await self._close_transport(p, status.WS_1001_GOING_AWAY)
        if self._writers:
            await asyncio.gather(*list(self._writers), return_exceptions=True)
        log.info("Relay stopped (%d participants closed)", len(participants))

    def _remove(self, participant: Participant) -> bool:
        # Caller holds the lock
        removed = self.registry.deregister(participant)
        participant.close()
        writer = participant.writer
        if writer is not None and writer is not asyncio.current_task():
            writer.cancel()
        return removed

    async def _pump(self, participant: Participant) -> None:
        """Writer task: drain the outbox in order, each send bounded by send_timeout."""
        ws = participant.websocket
        try:
            while True:
                batch = await participant.outbox.get()
                for payload in batch:
                    await asyncio.wait_for(ws.send_text(payload), timeout=self.send_timeout)
                if participant.state is ParticipantState.CONNECTING:
                    participant.state = ParticipantState.ACTIVE
                    log.debug("Participant %d active", participant.id)
        except SEND_ERRORS as e:
            log.warning(
                "Dropping participant %d: delivery failed (%s)",
                participant.id,
                str(e) or type(e).__name__,
            )
            await self._drop(participant)
        except Exception:
            log.exception("Dropping participant %d: unexpected send error", participant.id)
            await self._drop(participant)

    async def _drop(self, participant: Participant) -> None:
        async with self._lock:
            self._remove(participant)
        await self._close_transport(participant, status.WS_1011_INTERNAL_ERROR)

    async def _close_transport(self, participant: Participant, code: int) -> None:
        try:
            await asyncio.wait_for(participant.websocket.close(code=code), timeout=self.send_timeout)
        except SEND_ERRORS:
            log.debug("Participant %d transport already closed", participant.id)
