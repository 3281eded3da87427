"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import AsyncClient

from planning_poker.adapters.supabase_identity_provider import (
    SupabaseIdentityProvider,
)
from planning_poker.adapters.supabase_session_store import SupabaseSessionStore
from planning_poker.config import Settings
from planning_poker.services.identity import IdentityProvider, IdentityResolver
from planning_poker.services.mutator import ConflictResolvingMutator
from planning_poker.services.retry import RetryPolicy
from planning_poker.services.sessions import SessionService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    identity_provider: IdentityProvider
    session_service: SessionService
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = AsyncClient(
        resolved_settings.supabase_url, resolved_settings.supabase_key
    )
    session_store = SupabaseSessionStore(
        supabase_client, table_name=resolved_settings.sessions_table
    )
    retry_policy = RetryPolicy(
        max_attempts=resolved_settings.write_max_attempts,
        base_delay_seconds=resolved_settings.write_retry_base_delay_seconds,
    )
    session_service = SessionService(
        store=session_store,
        mutator=ConflictResolvingMutator(session_store, retry_policy),
        identity_resolver=IdentityResolver(session_store),
        default_title=resolved_settings.default_session_title,
    )

    async def close_resources() -> None:
        await session_store.close()

    return AppContainer(
        settings=resolved_settings,
        identity_provider=SupabaseIdentityProvider(supabase_client),
        session_service=session_service,
        close_resources=close_resources,
    )
