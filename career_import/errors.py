"""
Error taxonomy for the import pipeline.

ParseFailure, SessionNotFound and InvalidSessionState are fatal to the call
that raises them. InvalidDecision and RecordCommitFailure are per-item: they
are collected into results alongside whatever succeeded.
"""


class CareerImportError(Exception):
    """Base class for import pipeline errors."""


class ParseFailure(CareerImportError):
    """Raw input could not be turned into candidate records."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class SessionNotFound(CareerImportError):
    def __init__(self, session_id: str):
        super().__init__(f"Import session not found: {session_id}")
        self.session_id = session_id


class InvalidSessionState(CareerImportError):
    """Operation targets a session that is no longer staging."""

    def __init__(self, session_id: str, status: str, operation: str):
        super().__init__(
            f"Cannot {operation} import session {session_id} with status '{status}'"
        )
        self.session_id = session_id
        self.status = status
        self.operation = operation


class InvalidDecision(CareerImportError):
    def __init__(self, candidate_id: str, reason: str):
        super().__init__(reason)
        self.candidate_id = candidate_id
        self.reason = reason


class RecordCommitFailure(CareerImportError):
    """A single candidate's create or merge failed against the entity store."""

    def __init__(self, candidate_id: str, reason: str):
        super().__init__(reason)
        self.candidate_id = candidate_id
        self.reason = reason


class EntityStoreError(CareerImportError):
    """The persistent entity store rejected a write."""
