"""Session creation and view construction."""

import logging
from dataclasses import dataclass

from planning_poker.domain.errors import SessionNotFoundError
from planning_poker.domain.sessions import (
    DEFAULT_SESSION_TITLE,
    SessionRecord,
    normalize_title,
    parse_session_id,
)
from planning_poker.services.identity import IdentityResolver
from planning_poker.services.mutator import ConflictResolvingMutator
from planning_poker.services.session_view import SessionView
from planning_poker.services.store import AliasHintStore, SessionStore

_logger = logging.getLogger(__name__)


@dataclass
class SessionService:
    """Application service for planning sessions."""

    store: SessionStore
    mutator: ConflictResolvingMutator
    identity_resolver: IdentityResolver
    default_title: str = DEFAULT_SESSION_TITLE

    async def create_session(
        self, title: str | None, creator_id: str
    ) -> SessionRecord:
        """Create a session owned by ``creator_id``."""
        session = await self.store.create_session(
            normalize_title(title, self.default_title), creator_id
        )
        _logger.info("Created session %s for %s", session.id, creator_id)
        return session

    async def get_session(self, raw_session_id: str) -> SessionRecord:
        """Return a session snapshot or raise SessionNotFoundError."""
        session_id = parse_session_id(raw_session_id)
        session = await self.store.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(raw_session_id)
        return session

    def open_view(
        self,
        raw_session_id: str,
        participant_id: str,
        alias_hints: AliasHintStore,
    ) -> SessionView:
        """Build a fresh view for one participant entering a session."""
        return SessionView(
            raw_session_id=raw_session_id,
            participant_id=participant_id,
            store=self.store,
            mutator=self.mutator,
            identity_resolver=self.identity_resolver,
            alias_hints=alias_hints,
        )
