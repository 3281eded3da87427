"""Supabase-backed shared session store."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient

from planning_poker.domain.errors import (
    SessionNotFoundError,
    TransientStoreError,
    WriteConflictError,
)
from planning_poker.domain.sessions import (
    SessionRecord,
    SessionUpdate,
    parse_participants,
)
from planning_poker.services.store import (
    SessionChannel,
    SessionStore,
    SessionSubscription,
)

_logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, title, created_by, votes_revealed, current_ticket, participants, "
    "created_at, revision"
)
_CONFLICT_CODES = {"PGRST116"}


@dataclass
class SupabaseSessionStore(SessionStore):
    """Supabase implementation of the session store.

    Writes carry an ``eq("revision", ...)`` filter; a database trigger bumps
    the revision on every update, so a write based on a stale read matches
    no rows and is reported as a conflict.
    """

    client: AsyncClient
    table_name: str = "sessions"
    _channels: list[Any] = field(default_factory=list, init=False)

    async def create_session(self, title: str, creator_id: str) -> SessionRecord:
        """Insert a session row and return it."""
        try:
            response = (
                await self.client.table(self.table_name)
                .insert(
                    {
                        "title": title,
                        "created_by": creator_id,
                        "participants": {},
                        "votes_revealed": False,
                        "current_ticket": "",
                    }
                )
                .execute()
            )
        except (APIError, httpx.HTTPError) as exc:
            raise _translate_error(exc) from exc
        if not response.data:
            raise RuntimeError("Failed to create session")
        return _row_to_session(response.data[0])

    async def get_session(self, session_id: UUID) -> SessionRecord | None:
        """Return a session by id, if present."""
        try:
            response = (
                await self.client.table(self.table_name)
                .select(_COLUMNS)
                .eq("id", str(session_id))
                .limit(1)
                .execute()
            )
        except (APIError, httpx.HTTPError) as exc:
            raise TransientStoreError(str(exc)) from exc
        if not response.data:
            return None
        return _row_to_session(response.data[0])

    async def update_session(
        self,
        session_id: UUID,
        update: SessionUpdate,
        expected_revision: int | None = None,
    ) -> SessionRecord:
        """Write the update, conditional on the expected revision."""
        query = (
            self.client.table(self.table_name)
            .update(update.to_payload())
            .eq("id", str(session_id))
        )
        if expected_revision is not None:
            query = query.eq("revision", expected_revision)
        try:
            response = await query.execute()
        except (APIError, httpx.HTTPError) as exc:
            raise _translate_error(exc) from exc
        if not response.data:
            if expected_revision is not None:
                raise WriteConflictError(
                    f"Session {session_id} changed since revision {expected_revision}"
                )
            raise SessionNotFoundError(str(session_id))
        return _row_to_session(response.data[0])

    async def subscribe_to_session_changes(
        self, session_id: UUID
    ) -> SessionSubscription:
        """Open a Realtime channel for UPDATEs of one session row."""
        channel = SessionChannel()

        def on_change(payload: dict[str, Any]) -> None:
            row = _record_from_payload(payload)
            if row is None:
                _logger.warning("Ignoring change payload without a record")
                return
            channel.publish(_row_to_session(row))

        realtime_channel = self.client.channel(f"session-{session_id}")
        realtime_channel.on_postgres_changes(
            "UPDATE",
            callback=on_change,
            table=self.table_name,
            schema="public",
            filter=f"id=eq.{session_id}",
        )
        try:
            await realtime_channel.subscribe()
        except Exception as exc:
            raise TransientStoreError(
                f"Failed to subscribe to session {session_id}"
            ) from exc
        self._channels.append(realtime_channel)

        async def release() -> None:
            if realtime_channel in self._channels:
                self._channels.remove(realtime_channel)
                await self.client.remove_channel(realtime_channel)

        return SessionSubscription(channel=channel, release=release)

    async def migrate_participant(
        self, session_id: UUID, old_id: str, new_id: str, alias: str
    ) -> bool:
        """Move a participant slot with the ``migrate_participant`` procedure."""
        # argument names must match the SQL function signature
        return await self._rpc(
            "migrate_participant",
            {
                "session_id_arg": str(session_id),
                "old_user_id_arg": old_id,
                "new_user_id_arg": new_id,
                "new_alias_arg": alias,
            },
        )

    async def migrate_facilitator(
        self, session_id: UUID, old_id: str, new_id: str
    ) -> bool:
        """Move facilitator rights with the ``migrate_facilitator`` procedure."""
        return await self._rpc(
            "migrate_facilitator",
            {
                "session_id_arg": str(session_id),
                "old_user_id_arg": old_id,
                "new_user_id_arg": new_id,
            },
        )

    async def close(self) -> None:
        """Remove every Realtime channel still held by this store."""
        channels, self._channels = self._channels, []
        for realtime_channel in channels:
            await self.client.remove_channel(realtime_channel)

    async def _rpc(self, name: str, params: dict[str, object]) -> bool:
        try:
            response = await self.client.rpc(name, params).execute()
        except (APIError, httpx.HTTPError) as exc:
            raise _translate_error(exc) from exc
        return _rows_changed(response.data)


def _translate_error(exc: Exception) -> Exception:
    """Classify a backend failure as a conflict or a transient error."""
    if isinstance(exc, APIError):
        message = exc.message or ""
        if exc.code in _CONFLICT_CODES or "concurrent update" in message.lower():
            return WriteConflictError(message or str(exc))
        return TransientStoreError(message or str(exc))
    return TransientStoreError(str(exc))


def _rows_changed(data: object) -> bool:
    """Read the affected-row count returned by a migration procedure."""
    if isinstance(data, list):
        data = data[0] if data else 0
    return isinstance(data, int) and data > 0


def _record_from_payload(payload: dict[str, Any]) -> dict[str, Any] | None:
    """Extract the new row from a Realtime postgres_changes payload."""
    data = payload.get("data")
    if isinstance(data, dict) and isinstance(data.get("record"), dict):
        return data["record"]
    for key in ("record", "new"):
        if isinstance(payload.get(key), dict):
            return payload[key]
    return None


def _parse_timestamp(value: object) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def _row_to_session(row: dict[str, Any]) -> SessionRecord:
    return SessionRecord(
        id=UUID(str(row["id"])),
        title=str(row.get("title") or ""),
        created_by=str(row["created_by"]),
        votes_revealed=bool(row.get("votes_revealed", False)),
        current_ticket=str(row.get("current_ticket") or ""),
        participants=parse_participants(row.get("participants")),
        created_at=_parse_timestamp(row.get("created_at")),
        revision=int(row.get("revision") or 0),
    )
