"""Error types shared across the session sync layers."""


class SessionNotFoundError(Exception):
    """The session does not exist in the store."""


class InvalidSessionIdError(SessionNotFoundError):
    """The session id is not a canonical UUID; handled like a missing session."""


class WriteConflictError(Exception):
    """The session row changed between read and write."""


class TransientStoreError(Exception):
    """A store read or write failed for a reason other than a conflict."""


class AuthenticationError(Exception):
    """The caller's identity could not be established."""


class NotFacilitatorError(Exception):
    """The caller no longer holds facilitator rights for the session."""


class NotParticipantError(Exception):
    """The caller has no participant slot in the session."""
