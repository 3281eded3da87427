"""Per-client state machine for one planning session."""

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from uuid import UUID

from planning_poker.domain.errors import (
    InvalidSessionIdError,
    NotFacilitatorError,
    NotParticipantError,
)
from planning_poker.domain.sessions import (
    VOTING_CARDS,
    Participant,
    RoundPhase,
    SessionRecord,
    SessionUpdate,
    ViewPhase,
    parse_session_id,
    round_phase,
)
from planning_poker.services.identity import IdentityResolver
from planning_poker.services.mutator import ConflictResolvingMutator
from planning_poker.services.store import AliasHintStore, SessionStore
from planning_poker.services.subscriber import ChangeSubscriber

_logger = logging.getLogger(__name__)

UpdateListener = Callable[["SessionView"], Awaitable[None]]


@dataclass
class SessionView:
    """State owned by one participant's view of a session.

    The view walks ``unresolved -> loading -> not_found | awaiting_alias ->
    active``. Mutations go through the conflict-resolving mutator and the
    local snapshot only changes on a confirmed write or a change
    notification.
    """

    raw_session_id: str
    participant_id: str
    store: SessionStore
    mutator: ConflictResolvingMutator
    identity_resolver: IdentityResolver
    alias_hints: AliasHintStore
    phase: ViewPhase = ViewPhase.UNRESOLVED
    session: SessionRecord | None = None
    alias: str = ""
    current_vote: str | None = None
    ticket_draft: str = ""
    _session_id: UUID | None = field(default=None, init=False)
    _migration_attempted: bool = field(default=False, init=False)

    @property
    def session_id(self) -> UUID | None:
        return self._session_id

    @property
    def is_facilitator(self) -> bool:
        return (
            self.session is not None
            and self.session.created_by == self.participant_id
        )

    @property
    def round_phase(self) -> RoundPhase | None:
        if self.session is None:
            return None
        return round_phase(self.session)

    async def enter(self) -> ViewPhase:
        """Resolve the session without a live subscription."""
        if await self._prepare() is not None:
            await self.refresh()
        return self.phase

    @asynccontextmanager
    async def entered(
        self, on_update: UpdateListener | None = None
    ) -> AsyncIterator["SessionView"]:
        """Enter the session and keep it live until the block exits."""
        session_id = await self._prepare()
        if session_id is None:
            yield self
            return

        async def handle(session: SessionRecord) -> None:
            if self.apply_snapshot(session) and on_update is not None:
                await on_update(self)

        subscriber = ChangeSubscriber(self.store, session_id, handle)
        await subscriber.start()
        try:
            await self.refresh()
            yield self
        finally:
            await subscriber.stop()

    async def refresh(self) -> None:
        """Re-read the session and adopt it."""
        if self._session_id is None:
            return
        try:
            latest = await self.store.get_session(self._session_id)
        except Exception:
            _logger.exception("Failed to refresh session %s", self._session_id)
            return
        if latest is None:
            self._mark_not_found()
            return
        self.apply_snapshot(latest)

    def apply_snapshot(self, session: SessionRecord) -> bool:
        """Replace local state with a snapshot; returns False if it was stale."""
        if self.phase is ViewPhase.NOT_FOUND or session.id != self._session_id:
            return False
        current = self.session
        if current is not None and (
            session.revision < current.revision or session == current
        ):
            return False

        self.session = session
        participant = session.participants.get(self.participant_id)
        if participant is not None:
            self.alias = participant.alias
            self.current_vote = participant.vote
            self.phase = ViewPhase.ACTIVE
        else:
            # keep an alias the user is still typing
            if not self.alias:
                self.alias = self.alias_hints.get(self.raw_session_id) or ""
            self.current_vote = None
            self.phase = ViewPhase.AWAITING_ALIAS
        if self.is_facilitator:
            self.ticket_draft = session.current_ticket
        return True

    async def join(self, alias: str) -> bool:
        """Claim a participant slot under ``alias``."""
        cleaned = alias.strip()
        if not cleaned or self.phase not in {
            ViewPhase.AWAITING_ALIAS,
            ViewPhase.ACTIVE,
        }:
            return False

        def change(fresh: SessionRecord) -> SessionUpdate:
            participants = dict(fresh.participants)
            participants[self.participant_id] = Participant(alias=cleaned, vote=None)
            return SessionUpdate(participants=participants)

        if not await self._commit(change, action="join"):
            return False
        self.alias_hints.set(self.raw_session_id, cleaned)
        return True

    async def vote(self, card: str) -> bool:
        """Cast ``card``, or withdraw the vote when it is already cast."""
        if card not in VOTING_CARDS:
            raise ValueError(f"Unknown voting card: {card!r}")
        if self.phase is not ViewPhase.ACTIVE:
            return False
        new_vote = None if self.current_vote == card else card

        def change(fresh: SessionRecord) -> SessionUpdate:
            existing = fresh.participants.get(self.participant_id)
            if existing is None:
                # the slot may have been migrated to another identity
                raise NotParticipantError(self.participant_id)
            participants = dict(fresh.participants)
            participants[self.participant_id] = Participant(
                alias=existing.alias, vote=new_vote
            )
            return SessionUpdate(participants=participants)

        return await self._commit(change, action="vote")

    async def set_ticket(self, ticket: str | None = None) -> bool:
        """Set the current ticket; defaults to the local draft."""
        if not self._can_facilitate("set_ticket"):
            return False
        value = (self.ticket_draft if ticket is None else ticket).strip()

        def change(fresh: SessionRecord) -> SessionUpdate:
            self._require_facilitator(fresh)
            return SessionUpdate(current_ticket=value)

        return await self._commit(change, action="set_ticket")

    async def reveal(self) -> bool:
        """Expose all votes."""
        if not self._can_facilitate("reveal"):
            return False

        def change(fresh: SessionRecord) -> SessionUpdate | None:
            self._require_facilitator(fresh)
            if fresh.votes_revealed:
                return None
            return SessionUpdate(votes_revealed=True)

        return await self._commit(change, action="reveal")

    async def reset(self) -> bool:
        """Clear all votes and the ticket, and hide votes again."""
        if not self._can_facilitate("reset"):
            return False

        def change(fresh: SessionRecord) -> SessionUpdate:
            self._require_facilitator(fresh)
            participants = {
                participant_id: Participant(alias=participant.alias, vote=None)
                for participant_id, participant in fresh.participants.items()
            }
            return SessionUpdate(
                participants=participants, votes_revealed=False, current_ticket=""
            )

        return await self._commit(change, action="reset")

    async def _prepare(self) -> UUID | None:
        try:
            self._session_id = parse_session_id(self.raw_session_id)
        except InvalidSessionIdError:
            self._mark_not_found()
            return None

        self.phase = ViewPhase.LOADING
        try:
            initial = await self.store.get_session(self._session_id)
        except Exception:
            _logger.exception("Failed to load session %s", self._session_id)
            initial = None
        if initial is None:
            self._mark_not_found()
            return None

        if not self._migration_attempted:
            self._migration_attempted = True
            await self.identity_resolver.resolve(
                initial,
                self.participant_id,
                self.alias_hints.get(self.raw_session_id),
            )
        self.apply_snapshot(initial)
        return self._session_id

    async def _commit(
        self, change: Callable[[SessionRecord], SessionUpdate | None], *, action: str
    ) -> bool:
        if self._session_id is None:
            return False
        confirmed = await self.mutator.apply(self._session_id, change, action=action)
        if confirmed is None:
            await self.refresh()
            return False
        self.apply_snapshot(confirmed)
        return True

    def _can_facilitate(self, action: str) -> bool:
        if self.session is None or self.phase is ViewPhase.NOT_FOUND:
            return False
        if not self.is_facilitator:
            _logger.info(
                "Ignoring %s from non-facilitator %s in session %s",
                action,
                self.participant_id,
                self._session_id,
            )
            return False
        return True

    def _require_facilitator(self, fresh: SessionRecord) -> None:
        if fresh.created_by != self.participant_id:
            raise NotFacilitatorError(self.participant_id)

    def _mark_not_found(self) -> None:
        self.phase = ViewPhase.NOT_FOUND
        self.session = None
