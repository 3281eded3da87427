"""Optimistic read-modify-write against the shared session store."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from uuid import UUID

from planning_poker.domain.errors import SessionNotFoundError
from planning_poker.domain.sessions import SessionRecord, SessionUpdate
from planning_poker.services.retry import RetryPolicy
from planning_poker.services.store import SessionStore

_logger = logging.getLogger(__name__)

ChangeFn = Callable[[SessionRecord], SessionUpdate | None]


@dataclass
class ConflictResolvingMutator:
    """Applies session changes on top of a freshly fetched snapshot.

    Every attempt re-reads the session, computes the update from that
    snapshot and writes it conditionally on the snapshot's revision. A
    concurrent writer makes the store reject the write, which sends the
    mutator back to the read step. The confirmed record is returned only
    after a successful write; callers must not touch local state otherwise.
    """

    store: SessionStore
    policy: RetryPolicy = field(default_factory=RetryPolicy)

    async def apply(
        self, session_id: UUID, change: ChangeFn, *, action: str
    ) -> SessionRecord | None:
        """Run ``change`` until it is written, or give up and return None.

        ``change`` may return None to signal there is nothing to write; the
        fresh snapshot is then returned as is.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                fresh = await self.store.get_session(session_id)
                if fresh is None:
                    raise SessionNotFoundError(str(session_id))
                update = change(fresh)
                if update is None or update.is_empty():
                    return fresh
                return await self.store.update_session(
                    session_id, update, expected_revision=fresh.revision
                )
            except Exception as exc:
                if not self.policy.should_retry(attempt, exc):
                    _logger.warning(
                        "Session %s %s abandoned after %s/%s attempts: %r",
                        action,
                        session_id,
                        attempt,
                        self.policy.max_attempts,
                        exc,
                    )
                    return None
                _logger.info(
                    "Session %s %s failed (attempt %s/%s), retrying: %r",
                    action,
                    session_id,
                    attempt,
                    self.policy.max_attempts,
                    exc,
                )
                await self.policy.backoff(attempt)
