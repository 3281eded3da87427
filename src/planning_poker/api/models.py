"""Pydantic models for the planning poker API."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel

from planning_poker.domain.sessions import (
    VOTING_CARDS,
    SessionRecord,
    all_voted,
    average_vote,
    format_average,
    parse_ticket,
    vote_counts,
)
from planning_poker.services.session_view import SessionView


class CreateSessionRequest(BaseModel):
    """Request body for creating a session."""

    title: str | None = None


class ClientAction(BaseModel):
    """Action sent by a participant over the session socket."""

    action: Literal["join", "vote", "set_ticket", "reveal", "reset"]
    alias: str | None = None
    card: str | None = None
    ticket: str | None = None


class TicketOut(BaseModel):
    """Rendered ticket label."""

    is_url: bool
    ticket_name: str
    url: str | None = None


class ParticipantOut(BaseModel):
    """Participant as seen by one viewer."""

    id: str
    alias: str
    has_voted: bool
    vote: str | None = None


class SessionOut(BaseModel):
    """Session snapshot with derived values."""

    id: UUID
    title: str
    created_by: str
    votes_revealed: bool
    current_ticket: str
    ticket: TicketOut
    participants: list[ParticipantOut]
    all_voted: bool
    vote_counts: dict[str, int]
    average: str | None = None
    created_at: datetime | None = None
    revision: int


class ViewStateOut(BaseModel):
    """State pushed to a connected participant."""

    type: Literal["state"] = "state"
    phase: str
    participant_id: str
    is_facilitator: bool
    alias: str
    current_vote: str | None = None
    ticket_draft: str
    round_phase: str | None = None
    cards: list[str]
    session: SessionOut | None = None


class ActionResultOut(BaseModel):
    """Outcome of one participant action."""

    type: Literal["result"] = "result"
    action: str | None = None
    ok: bool
    error: str | None = None


def session_out(session: SessionRecord, viewer_id: str) -> SessionOut:
    """Project a session for a viewer; other votes stay hidden until revealed."""
    revealed = session.votes_revealed
    ticket = parse_ticket(session.current_ticket)
    return SessionOut(
        id=session.id,
        title=session.title,
        created_by=session.created_by,
        votes_revealed=revealed,
        current_ticket=session.current_ticket,
        ticket=TicketOut(
            is_url=ticket.is_url, ticket_name=ticket.ticket_name, url=ticket.url
        ),
        participants=[
            ParticipantOut(
                id=participant_id,
                alias=participant.alias,
                has_voted=participant.vote is not None,
                vote=(
                    participant.vote
                    if revealed or participant_id == viewer_id
                    else None
                ),
            )
            for participant_id, participant in session.participants.items()
        ],
        all_voted=all_voted(session),
        vote_counts=vote_counts(session) if revealed else {},
        average=format_average(average_vote(session)) if revealed else None,
        created_at=session.created_at,
        revision=session.revision,
    )


def view_state_out(view: SessionView) -> ViewStateOut:
    """Project a session view into the pushed state message."""
    round_phase = view.round_phase
    return ViewStateOut(
        phase=view.phase.value,
        participant_id=view.participant_id,
        is_facilitator=view.is_facilitator,
        alias=view.alias,
        current_vote=view.current_vote,
        ticket_draft=view.ticket_draft,
        round_phase=round_phase.value if round_phase is not None else None,
        cards=list(VOTING_CARDS),
        session=(
            session_out(view.session, view.participant_id)
            if view.session is not None
            else None
        ),
    )
