"""
Import lifecycle.

    uploaded -> staged -> (decided)* -> committed
        \\          \\
         +----------+--> discarded

``uploaded`` only exists inside ``upload()``: the parser has produced
candidates but no session has been stored yet. A parse failure leaves no
session behind. Quick import is not a state, it is ``upload`` followed
directly by ``commit`` with the default decisions.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from config.logging import logger, session_logger
from career_import.committer import ImportCommitter
from career_import.parsers import Parser
from career_import.records import (
    CommitResult,
    DecisionUpdate,
    DecisionUpdateResult,
    ImportSession,
    SessionStatus,
)
from career_import.staging import StagingStore


class ImportState(Enum):
    UPLOADED = "uploaded"
    STAGED = "staged"
    COMMITTED = "committed"
    DISCARDED = "discarded"


def state_of(session: ImportSession) -> ImportState:
    return {
        SessionStatus.STAGING: ImportState.STAGED,
        SessionStatus.COMMITTED: ImportState.COMMITTED,
        SessionStatus.DISCARDED: ImportState.DISCARDED,
    }[session.status]


@dataclass
class UploadOutcome:
    session: ImportSession
    quick_import: bool = False

    @property
    def empty(self) -> bool:
        """Parse succeeded but produced no candidates."""
        return not self.session.candidates

    @property
    def commit_required(self) -> bool:
        """The caller asked for quick import and should commit next."""
        return self.quick_import and not self.empty


class ImportOrchestrator:
    """
    Drives an import from raw export to committed entities.

    Usage:
        orchestrator = ImportOrchestrator(JsonExportParser(), staging, committer)
        outcome = orchestrator.upload("ws-1", raw_bytes, "export.json")
        orchestrator.decide(outcome.session.id, [DecisionUpdate(...)])
        result = orchestrator.commit(outcome.session.id)
    """

    def __init__(
        self,
        parser: Parser,
        staging: StagingStore,
        committer: ImportCommitter,
    ):
        self.parser = parser
        self.staging = staging
        self.committer = committer

    def upload(
        self,
        workspace_id: str,
        raw: bytes,
        source_name: Optional[str] = None,
        quick_import: bool = False,
    ) -> UploadOutcome:
        """
        Parse and stage an export. Never commits, even for quick import;
        commit stays an explicit call.

        Raises:
            ParseFailure: the export could not be parsed; nothing is staged
        """
        candidates = self.parser.parse(raw, source_name)
        logger.info(
            f"Parsed {len(candidates)} records from {source_name or 'upload'} "
            f"for workspace {workspace_id}"
        )

        session = self.staging.create_session(workspace_id, candidates, source_name)
        outcome = UploadOutcome(session=session, quick_import=quick_import)
        if outcome.empty:
            session_logger(session.id).info("Export contained no records")
        return outcome

    def get_session(self, session_id: str) -> ImportSession:
        return self.staging.get_session(session_id)

    def decide(
        self,
        session_id: str,
        updates: Iterable[DecisionUpdate],
    ) -> DecisionUpdateResult:
        return self.staging.update_decisions(session_id, updates)

    def commit(self, session_id: str) -> CommitResult:
        return self.committer.commit(session_id)

    def discard(self, session_id: str) -> ImportSession:
        return self.staging.discard_session(session_id)

    def quick_import(
        self,
        workspace_id: str,
        raw: bytes,
        source_name: Optional[str] = None,
    ) -> CommitResult:
        """Stage and immediately commit using the default decisions."""
        outcome = self.upload(workspace_id, raw, source_name, quick_import=True)
        return self.commit(outcome.session.id)
