"""Supabase Auth identity resolution."""

from dataclasses import dataclass

from supabase import AsyncClient

from planning_poker.domain.errors import AuthenticationError
from planning_poker.services.identity import IdentityProvider


@dataclass
class SupabaseIdentityProvider(IdentityProvider):
    """Resolves Supabase access tokens (including anonymous users) to ids."""

    client: AsyncClient

    async def resolve(self, token: str | None) -> str:
        """Return the Supabase user id behind ``token``."""
        if not token:
            raise AuthenticationError("Missing access token")
        try:
            response = await self.client.auth.get_user(token)
        except Exception as exc:
            raise AuthenticationError("Access token rejected") from exc
        user = getattr(response, "user", None)
        if user is None:
            raise AuthenticationError("No user for access token")
        return str(user.id)
