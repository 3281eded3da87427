"""Interfaces for the shared session store and its change feed."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Protocol
from uuid import UUID

from planning_poker.domain.sessions import SessionRecord, SessionUpdate


class SessionChannel:
    """Message channel carrying full session snapshots to one consumer."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[SessionRecord | None] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, session: SessionRecord) -> None:
        """Queue a snapshot; dropped once the channel is closed."""
        if self._closed:
            return
        self._queue.put_nowait(session)

    def close(self) -> None:
        """Stop iteration after the queued snapshots are consumed."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)

    def __aiter__(self) -> "SessionChannel":
        return self

    async def __anext__(self) -> SessionRecord:
        item = await self._queue.get()
        if item is None:
            raise StopAsyncIteration
        return item


async def _noop_release() -> None:
    return None


@dataclass
class SessionSubscription:
    """A live change feed for one session plus its release hook."""

    channel: SessionChannel
    release: Callable[[], Awaitable[None]] = field(default=_noop_release)

    async def close(self) -> None:
        """Close the channel and release the backend subscription."""
        self.channel.close()
        await self.release()


class SessionStore(Protocol):
    """Persistence interface for shared session records."""

    async def create_session(self, title: str, creator_id: str) -> SessionRecord:
        """Create a session and return it."""

    async def get_session(self, session_id: UUID) -> SessionRecord | None:
        """Return a session by id, if present."""

    async def update_session(
        self,
        session_id: UUID,
        update: SessionUpdate,
        expected_revision: int | None = None,
    ) -> SessionRecord:
        """Write the update, failing on a revision mismatch."""

    async def subscribe_to_session_changes(
        self, session_id: UUID
    ) -> SessionSubscription:
        """Open a change feed for a session."""

    async def migrate_participant(
        self, session_id: UUID, old_id: str, new_id: str, alias: str
    ) -> bool:
        """Move a participant slot; returns False if no row matched."""

    async def migrate_facilitator(
        self, session_id: UUID, old_id: str, new_id: str
    ) -> bool:
        """Move facilitator rights; returns False if no row matched."""


class AliasHintStore(Protocol):
    """Client-local persistence of the alias used in a session."""

    def get(self, session_id: str) -> str | None:
        """Return the remembered alias for a session."""

    def set(self, session_id: str, alias: str) -> None:
        """Remember the alias used in a session."""


@dataclass
class InMemoryAliasHintStore(AliasHintStore):
    """Alias hints that live as long as the owning client context."""

    _entries: dict[str, str] = field(default_factory=dict)

    def get(self, session_id: str) -> str | None:
        return self._entries.get(_alias_key(session_id))

    def set(self, session_id: str, alias: str) -> None:
        self._entries[_alias_key(session_id)] = alias


def _alias_key(session_id: str) -> str:
    return f"session-alias-{session_id.strip().lower()}"
