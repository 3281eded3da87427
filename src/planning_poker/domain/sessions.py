"""Domain models for planning poker sessions."""

import math
import re
from collections import Counter
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from uuid import UUID

from planning_poker.domain.errors import InvalidSessionIdError

DEFAULT_SESSION_TITLE = "New Planning Session"
VOTING_CARDS: tuple[str, ...] = ("0", "1", "2", "3", "5", "8", "13", "21", "?", "☕")

_UUID_PATTERN = re.compile(
    r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
)
_URL_PATTERN = re.compile(r"^https?://.+", re.IGNORECASE)
_TICKET_KEY_PATTERN = re.compile(r"([A-Z]+-\d+)")


class ViewPhase(str, Enum):
    """Lifecycle of one client's view of a session."""

    UNRESOLVED = "unresolved"
    LOADING = "loading"
    NOT_FOUND = "not_found"
    AWAITING_ALIAS = "awaiting_alias"
    ACTIVE = "active"


class RoundPhase(str, Enum):
    """Voting round phase derived from the session record."""

    VOTING = "voting"
    REVEALED = "revealed"


@dataclass(frozen=True)
class Participant:
    """Per-identity slot holding an alias and the current vote."""

    alias: str
    vote: str | None = None


@dataclass(frozen=True)
class SessionRecord:
    """Represents a persisted planning session."""

    id: UUID
    title: str
    created_by: str
    votes_revealed: bool
    current_ticket: str
    participants: dict[str, Participant]
    created_at: datetime | None = None
    revision: int = 0


@dataclass(frozen=True)
class SessionUpdate:
    """Partial set of session fields to write."""

    participants: dict[str, Participant] | None = None
    votes_revealed: bool | None = None
    current_ticket: str | None = None

    def is_empty(self) -> bool:
        """Return True when no field is set."""
        return (
            self.participants is None
            and self.votes_revealed is None
            and self.current_ticket is None
        )

    def to_payload(self) -> dict[str, object]:
        """Return the column payload for the fields that are set."""
        payload: dict[str, object] = {}
        if self.participants is not None:
            payload["participants"] = participants_payload(self.participants)
        if self.votes_revealed is not None:
            payload["votes_revealed"] = self.votes_revealed
        if self.current_ticket is not None:
            payload["current_ticket"] = self.current_ticket
        return payload

    def apply_to(self, session: SessionRecord) -> SessionRecord:
        """Project this update onto a session record."""
        return replace(
            session,
            participants=(
                dict(self.participants)
                if self.participants is not None
                else session.participants
            ),
            votes_revealed=(
                self.votes_revealed
                if self.votes_revealed is not None
                else session.votes_revealed
            ),
            current_ticket=(
                self.current_ticket
                if self.current_ticket is not None
                else session.current_ticket
            ),
        )


@dataclass(frozen=True)
class TicketDisplay:
    """How a ticket label should be rendered."""

    is_url: bool
    ticket_name: str
    url: str | None = None


def participants_payload(participants: dict[str, Participant]) -> dict[str, object]:
    """Serialize a participant map to its JSON column shape."""
    return {
        participant_id: {"alias": participant.alias, "vote": participant.vote}
        for participant_id, participant in participants.items()
    }


def parse_participants(raw: object) -> dict[str, Participant]:
    """Parse the JSON participants column into records."""
    if not isinstance(raw, dict):
        return {}
    participants: dict[str, Participant] = {}
    for participant_id, entry in raw.items():
        if not isinstance(entry, dict):
            continue
        vote = entry.get("vote")
        participants[str(participant_id)] = Participant(
            alias=str(entry.get("alias") or ""),
            vote=str(vote) if vote is not None else None,
        )
    return participants


def is_valid_session_id(raw: str | None) -> bool:
    """Return True for a canonical 8-4-4-4-12 hex UUID string."""
    return bool(raw) and _UUID_PATTERN.fullmatch(raw) is not None


def parse_session_id(raw: str | None) -> UUID:
    """Parse a session id, rejecting anything but a canonical UUID."""
    if raw is None or not is_valid_session_id(raw):
        raise InvalidSessionIdError(raw)
    return UUID(raw)


def normalize_title(
    title: str | None, default: str = DEFAULT_SESSION_TITLE
) -> str:
    """Return the stripped title or the placeholder when empty."""
    cleaned = (title or "").strip()
    return cleaned or default


def round_phase(session: SessionRecord) -> RoundPhase:
    """Return the voting round phase of a session."""
    return RoundPhase.REVEALED if session.votes_revealed else RoundPhase.VOTING


def voting_members(session: SessionRecord) -> dict[str, Participant]:
    """Participants other than the facilitator."""
    return {
        participant_id: participant
        for participant_id, participant in session.participants.items()
        if participant_id != session.created_by
    }


def all_voted(session: SessionRecord) -> bool:
    """Return True when every voting member has cast a vote."""
    members = voting_members(session)
    return bool(members) and all(p.vote is not None for p in members.values())


def vote_counts(session: SessionRecord) -> dict[str, int]:
    """Group participants by vote value."""
    counts = Counter(
        participant.vote
        for participant in session.participants.values()
        if participant.vote is not None
    )
    return dict(counts)


def average_vote(session: SessionRecord) -> float:
    """Average of integer votes; NaN when there are none."""
    numeric: list[int] = []
    for participant in session.participants.values():
        if participant.vote is None:
            continue
        try:
            numeric.append(int(participant.vote))
        except ValueError:
            continue
    if not numeric:
        return math.nan
    return sum(numeric) / len(numeric)


def format_average(value: float) -> str | None:
    """Format an average with two decimals."""
    if math.isnan(value):
        return None
    return f"{value:.2f}"


def parse_ticket(text: str) -> TicketDisplay:
    """Split a ticket label into a display name and an optional link."""
    if not _URL_PATTERN.match(text):
        return TicketDisplay(is_url=False, ticket_name=text)
    match = _TICKET_KEY_PATTERN.search(text)
    ticket_name = match.group(1) if match else text
    return TicketDisplay(is_url=True, ticket_name=ticket_name, url=text)
