"""Live streaming sessions and their outbound event channels."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

logger = logging.getLogger("postgres-mcp")


@dataclass
class Session:
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    target: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    queue: asyncio.Queue = field(default_factory=asyncio.Queue, repr=False)
    closed: bool = False
    _keepalive: asyncio.Task | None = field(default=None, repr=False)

    def push(self, event: str, data) -> bool:
        """Queue an event for the caller. Returns False once the session is closed."""
        if self.closed:
            return False
        self.queue.put_nowait((event, data))
        return True

    async def next_event(self):
        return await self.queue.get()

    def start_keepalive(self, interval: float):
        if self._keepalive is None:
            self._keepalive = asyncio.create_task(self._ping_forever(interval))

    async def _ping_forever(self, interval):
        while not self.closed:
            await asyncio.sleep(interval)
            self.push("ping", int(time.time() * 1000))

    def close(self):
        self.closed = True
        if self._keepalive is not None:
            self._keepalive.cancel()
            self._keepalive = None


class SessionRegistry:
    """Sessions by id. Safe to use from concurrent request handlers."""

    def __init__(self):
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def register(self, session: Session):
        with self._lock:
            if session.session_id in self._sessions:
                raise ValueError(f"Session already registered: {session.session_id}")
            self._sessions[session.session_id] = session
        logger.info("Session %s opened", session.session_id)

    def lookup(self, session_id) -> Session | None:
        if not session_id:
            return None
        with self._lock:
            return self._sessions.get(session_id)

    def unregister(self, session_id) -> Session | None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            session.close()
            logger.info("Session %s closed", session_id)
        return session

    def close_all(self):
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.close()

    def __len__(self):
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id):
        return self.lookup(session_id) is not None
