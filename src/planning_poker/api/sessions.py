"""Session endpoints: HTTP for create/read, WebSocket for live views."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import (
    APIRouter,
    Depends,
    Header,
    HTTPException,
    Request,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from pydantic import ValidationError

from planning_poker.api.models import (
    ActionResultOut,
    ClientAction,
    CreateSessionRequest,
    SessionOut,
    session_out,
    view_state_out,
)
from planning_poker.domain.errors import (
    AuthenticationError,
    SessionNotFoundError,
    TransientStoreError,
)
from planning_poker.domain.sessions import ViewPhase
from planning_poker.services.session_view import SessionView
from planning_poker.services.store import InMemoryAliasHintStore

if TYPE_CHECKING:
    from planning_poker.containers import AppContainer

router = APIRouter(prefix="/sessions", tags=["sessions"])
_logger = logging.getLogger(__name__)


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def require_participant(
    request: Request,
    authorization: str | None = Header(default=None),
) -> str:
    """Resolve the caller's identity from a bearer token."""
    container: AppContainer = request.app.state.container
    try:
        return await container.identity_provider.resolve(_bearer_token(authorization))
    except AuthenticationError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED) from exc


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_session(
    body: CreateSessionRequest,
    request: Request,
    participant_id: str = Depends(require_participant),
) -> SessionOut:
    """Create a session facilitated by the caller."""
    container: AppContainer = request.app.state.container
    try:
        session = await container.session_service.create_session(
            body.title, participant_id
        )
    except TransientStoreError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE) from exc
    return session_out(session, participant_id)


@router.get("/{session_id}")
async def get_session(
    session_id: str,
    request: Request,
    participant_id: str = Depends(require_participant),
) -> SessionOut:
    """Return a session snapshot; other votes are hidden until revealed."""
    container: AppContainer = request.app.state.container
    try:
        session = await container.session_service.get_session(session_id)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND) from exc
    except TransientStoreError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE) from exc
    return session_out(session, participant_id)


@router.websocket("/{session_id}/ws")
async def session_socket(
    websocket: WebSocket,
    session_id: str,
    token: str | None = None,
    alias: str | None = None,
) -> None:
    """Live session view for one participant.

    ``alias`` is the alias the client remembered for this session; it is
    used to reclaim a slot after re-authentication.
    """
    container: AppContainer = websocket.app.state.container
    await websocket.accept()
    try:
        participant_id = await container.identity_provider.resolve(token)
    except AuthenticationError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    alias_hints = InMemoryAliasHintStore()
    if alias and alias.strip():
        alias_hints.set(session_id, alias.strip())
    view = container.session_service.open_view(session_id, participant_id, alias_hints)

    async def push(current: SessionView) -> None:
        await websocket.send_json(view_state_out(current).model_dump(mode="json"))

    async with view.entered(on_update=push):
        await push(view)
        if view.phase is ViewPhase.NOT_FOUND:
            await websocket.close(code=status.WS_1000_NORMAL_CLOSURE)
            return
        try:
            while True:
                result = await _handle_message(view, await _receive(websocket))
                await websocket.send_json(result.model_dump(mode="json"))
                await push(view)
        except WebSocketDisconnect:
            _logger.info("Participant %s left session %s", participant_id, session_id)


async def _receive(websocket: WebSocket) -> object:
    try:
        return await websocket.receive_json()
    except ValueError:
        return None


async def _handle_message(view: SessionView, raw: object) -> ActionResultOut:
    try:
        message = ClientAction.model_validate(raw)
    except ValidationError:
        return ActionResultOut(ok=False, error="invalid_message")

    try:
        if message.action == "join":
            ok = await view.join(message.alias or "")
        elif message.action == "vote":
            ok = await view.vote(message.card or "")
        elif message.action == "set_ticket":
            ok = await view.set_ticket(message.ticket)
        elif message.action == "reveal":
            ok = await view.reveal()
        else:
            ok = await view.reset()
    except ValueError:
        return ActionResultOut(action=message.action, ok=False, error="invalid_card")
    return ActionResultOut(action=message.action, ok=ok)
