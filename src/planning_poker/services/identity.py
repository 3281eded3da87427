"""Identity continuity for participants who re-authenticate."""

import logging
from dataclasses import dataclass
from typing import Protocol

from planning_poker.domain.sessions import SessionRecord
from planning_poker.services.store import SessionStore

_logger = logging.getLogger(__name__)


class IdentityProvider(Protocol):
    """Resolves an access token to the caller's identity."""

    async def resolve(self, token: str | None) -> str:
        """Return the identity for a token or raise AuthenticationError."""


def find_participant_by_alias(session: SessionRecord, alias: str) -> str | None:
    """Return the first participant identity using the alias."""
    for participant_id, participant in session.participants.items():
        if participant.alias == alias:
            return participant_id
    return None


@dataclass
class IdentityResolver:
    """Moves a remembered participant slot onto the current identity."""

    store: SessionStore

    async def resolve(
        self, session: SessionRecord, participant_id: str, alias_hint: str | None
    ) -> bool:
        """Migrate the slot matching ``alias_hint`` to ``participant_id``.

        Returns True when a migration was written. Failures are logged and
        reported as False so the caller can fall back to a fresh join.
        """
        if not alias_hint or participant_id in session.participants:
            return False
        old_id = find_participant_by_alias(session, alias_hint)
        if old_id is None or old_id == participant_id:
            return False

        try:
            migrated = await self.store.migrate_participant(
                session.id, old_id, participant_id, alias_hint
            )
        except Exception:
            _logger.exception(
                "Participant migration failed for session %s", session.id
            )
            return False
        if not migrated:
            _logger.info(
                "No participant slot %s to migrate in session %s",
                old_id,
                session.id,
            )
            return False
        _logger.info(
            "Migrated participant %s to %s in session %s",
            old_id,
            participant_id,
            session.id,
        )

        if session.created_by == old_id:
            try:
                moved = await self.store.migrate_facilitator(
                    session.id, old_id, participant_id
                )
            except Exception:
                _logger.exception(
                    "Facilitator migration failed for session %s", session.id
                )
            else:
                if not moved:
                    _logger.info(
                        "Facilitator of session %s already changed", session.id
                    )
        return True
