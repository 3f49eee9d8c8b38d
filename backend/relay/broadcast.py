"""
Streaming relay (single producer, many consumer sessions).

Responsibilities:
- Keep an explicit registry: session_id -> RelaySession
- Fan each FeatureFrame out to every attached session
- Deliver at-most-current-state: a session that has not sent its
  previous frame yet gets that frame replaced, never queued behind it
- Detach sessions whose transport fails, without touching the others

Non-responsibilities:
- Capture configuration (audio.capture.CaptureController)
- WebSocket lifecycle (session.gateway / server.routes)

Lifecycle of one session:
1. Route calls attach(session_id, send)
2. publish() drops the encoded frame into the session's one-slot mailbox
3. The session's sender task awaits the mailbox and calls send()
4a. Route calls detach() on close/error (idempotent)
4b. send() raises -> sender detaches its own session
"""

from __future__ import annotations

import asyncio
import time
from asyncio import Task
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from analysis.pipeline import FeatureFrame
from constants import RELAY_MAILBOX_SIZE
from observability.logger import log_event, now_ms
from protocol.messages import encode_streaming
from session.errors import SessionTransportError


SendFn = Callable[[str], Awaitable[None]]


@dataclass
class RelaySession:
    """Live delivery handle for one attached consumer."""

    session_id: str
    send: SendFn
    mailbox: asyncio.Queue[str] = field(
        default_factory=lambda: asyncio.Queue(maxsize=RELAY_MAILBOX_SIZE)
    )
    task: Task[None] | None = None

    delivered: int = 0
    replaced: int = 0
    last_send_monotonic: float = field(default_factory=time.monotonic)

    def offer(self, message: str) -> None:
        """Put `message` in the mailbox, evicting an undelivered one."""
        if self.mailbox.full():
            self.mailbox.get_nowait()
            self.replaced += 1
        self.mailbox.put_nowait(message)


class StreamingRelay:
    """
    Broadcast point between the analysis pipeline and consumer sessions.

    publish() is synchronous: it never awaits consumer I/O, so the
    pipeline can accept the next frame immediately.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, RelaySession] = {}
        self.frames_published: int = 0

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def attach(self, session_id: str, send: SendFn) -> RelaySession:
        """
        Register a session and start its sender task.

        Idempotent: attaching an id that is already live returns the
        existing handle unchanged.

        Must be called from within the running event loop.
        """
        existing = self._sessions.get(session_id)
        if existing is not None:
            return existing

        session = RelaySession(session_id=session_id, send=send)
        self._sessions[session_id] = session
        session.task = asyncio.create_task(self._sender(session))

        log_event({
            "ts_ms": now_ms(),
            "event_type": "RELAY_SESSION_ATTACHED",
            "session_id": session_id,
            "sessions": len(self._sessions),
        })
        return session

    def detach(self, session_id: str, *, reason: str = "closed") -> bool:
        """
        Remove a session and stop its sender.

        Idempotent: safe to call from both the close and the error path.

        Returns:
            True if a live session was removed, False if it was already gone.
        """
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False

        self._stop_sender(session)

        log_event({
            "ts_ms": now_ms(),
            "event_type": "RELAY_SESSION_DETACHED",
            "session_id": session_id,
            "reason": reason,
            "delivered": session.delivered,
            "replaced": session.replaced,
            "sessions": len(self._sessions),
        })
        return True

    def get(self, session_id: str) -> RelaySession | None:
        return self._sessions.get(session_id)

    def session_ids(self) -> tuple[str, ...]:
        return tuple(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    def publish(self, frame: FeatureFrame) -> int:
        """
        Offer a frame to every attached session.

        With no sessions attached the frame is discarded unencoded.

        Returns:
            Number of sessions the frame was offered to.
        """
        self.frames_published += 1
        if not self._sessions:
            return 0

        message = encode_streaming(frame.to_payload())
        sessions = tuple(self._sessions.values())
        for session in sessions:
            session.offer(message)
        return len(sessions)

    async def close(self) -> None:
        """Detach every session and wait for the sender tasks to finish."""
        tasks = [s.task for s in self._sessions.values() if s.task is not None]
        for session_id in tuple(self._sessions):
            self.detach(session_id, reason="relay_closed")
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _stop_sender(session: RelaySession) -> None:
        task = session.task
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        # A sender detaching itself just returns instead of cancelling
        if task is not current:
            task.cancel()

    async def _sender(self, session: RelaySession) -> None:
        """Deliver mailbox contents to one session until detached or broken."""
        while True:
            message = await session.mailbox.get()
            try:
                await session.send(message)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # pylint: disable=broad-exception-caught
                error = SessionTransportError(f"{type(exc).__name__}: {exc}")
                log_event({
                    "ts_ms": now_ms(),
                    "event_type": "SESSION_TRANSPORT_ERROR",
                    "session_id": session.session_id,
                    "error": type(error).__name__,
                    "message": str(error),
                })
                # Only remove the registry entry if it is still this handle
                if self._sessions.get(session.session_id) is session:
                    self.detach(session.session_id, reason="transport_error")
                return

            session.delivered += 1
            session.last_send_monotonic = time.monotonic()
