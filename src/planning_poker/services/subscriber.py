"""Live change subscription for one session view."""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from uuid import UUID

from planning_poker.domain.sessions import SessionRecord
from planning_poker.services.store import (
    SessionChannel,
    SessionStore,
    SessionSubscription,
)

_logger = logging.getLogger(__name__)


@dataclass
class ChangeSubscriber:
    """Consumes a session's change feed and hands each snapshot on."""

    store: SessionStore
    session_id: UUID
    on_snapshot: Callable[[SessionRecord], Awaitable[None]]
    _subscription: SessionSubscription | None = field(default=None, init=False)
    _task: "asyncio.Task[None] | None" = field(default=None, init=False)
    _started: bool = field(default=False, init=False)

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> bool:
        """Subscribe and start consuming; returns False if subscribing failed."""
        if self._started:
            raise RuntimeError("Change subscriber already started")
        self._started = True
        try:
            self._subscription = await self.store.subscribe_to_session_changes(
                self.session_id
            )
        except Exception:
            _logger.exception("Failed to subscribe to session %s", self.session_id)
            return False
        self._task = asyncio.create_task(self._consume(self._subscription.channel))
        return True

    async def stop(self) -> None:
        """Cancel the consumer and release the subscription."""
        task, self._task = self._task, None
        subscription, self._subscription = self._subscription, None
        try:
            if task is not None:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        finally:
            if subscription is not None:
                await subscription.close()

    async def _consume(self, channel: SessionChannel) -> None:
        async for session in channel:
            try:
                await self.on_snapshot(session)
            except Exception:
                _logger.exception(
                    "Failed to apply snapshot for session %s", self.session_id
                )
