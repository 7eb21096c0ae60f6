"""Per-chat generation session store."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime

from sticker_bot.domain.generation import GenerationSession, GenerationState

_TERMINAL_STATES = frozenset({GenerationState.COMPLETED, GenerationState.ERROR})


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class GenerationSessionStore:
    """Keyed session map guarded by a single lock."""

    clock: Callable[[], datetime] = field(default=_utc_now)
    _sessions: dict[int, GenerationSession] = field(default_factory=dict)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    async def begin(self, chat_id: int, user_id: int) -> GenerationSession | None:
        """Start processing for a chat, or return None if one is running."""
        async with self._lock:
            existing = self._sessions.get(chat_id)
            if existing and existing.state is GenerationState.PROCESSING:
                return None
            session = GenerationSession(
                chat_id=chat_id,
                user_id=user_id,
                state=GenerationState.PROCESSING,
                started_at=self.clock(),
            )
            self._sessions[chat_id] = session
            return session

    async def finish(self, chat_id: int, state: GenerationState) -> GenerationSession:
        """Move a processing session to a terminal state."""
        if state not in _TERMINAL_STATES:
            raise ValueError(f"Not a terminal state: {state}")
        async with self._lock:
            session = self._sessions.get(chat_id)
            if session is None or session.state is not GenerationState.PROCESSING:
                raise ValueError(f"No processing session for chat {chat_id}")
            finished = replace(session, state=state)
            self._sessions[chat_id] = finished
            return finished

    async def release(self, chat_id: int) -> None:
        """Reset a chat to idle."""
        async with self._lock:
            self._sessions.pop(chat_id, None)

    async def state(self, chat_id: int) -> GenerationState:
        """Return the current state of a chat."""
        async with self._lock:
            session = self._sessions.get(chat_id)
            return session.state if session else GenerationState.IDLE
