"""
Applies a staged session's decisions to the entity store.
"""

from typing import Optional

from config.logging import session_logger
from career_import.entity_store import EntityStore
from career_import.errors import CareerImportError, RecordCommitFailure
from career_import.records import (
    CandidateRecord,
    CommitResult,
    CommittedRecord,
    Decision,
    ImportSession,
    RecordError,
)
from career_import.staging import StagingStore


class ImportCommitter:
    """
    Commits a staging session: create, merge (fill empty fields only) or
    skip each candidate, in session order.

    Commit is best-effort per record. A failing create or merge is reported
    in ``CommitResult.errors`` and counted in no bucket; the remaining
    records are still applied. The session's status is claimed before any
    effect, so a second commit fails with InvalidSessionState and applies
    nothing.
    """

    def __init__(self, staging: StagingStore, entity_store: EntityStore):
        self.staging = staging
        self.entity_store = entity_store

    def commit(self, session_id: str) -> CommitResult:
        session = self.staging.claim_for_commit(session_id)
        log = session_logger(session_id)
        log.info(f"Committing {len(session.candidates)} records")

        result = CommitResult(session_id=session_id)

        # Sequential: merges into the same entity must apply in session order
        for candidate in session.candidates:
            if candidate.decision == Decision.SKIP:
                result.skipped_count += 1
                continue

            try:
                entity_id = self._apply(session, candidate)
            except RecordCommitFailure as e:
                log.warning(f"Commit failed for candidate {candidate.id}: {e.reason}")
                result.errors.append(RecordError(candidate_id=candidate.id, error=e.reason))
                continue

            if candidate.decision == Decision.MERGE:
                result.merged_count += 1
            else:
                result.committed_count += 1
            result.records.append(CommittedRecord(
                candidate_id=candidate.id,
                entity_type=candidate.entity_type,
                entity_id=entity_id,
                decision=candidate.decision,
            ))

        self.staging.record_commit_result(session_id, result)
        log.info(
            f"Committed: created={result.committed_count} "
            f"merged={result.merged_count} skipped={result.skipped_count} "
            f"failed={result.failed_count}"
        )
        return result

    def _apply(self, session: ImportSession, candidate: CandidateRecord) -> str:
        """Persist one candidate. Returns the resulting entity id."""
        try:
            if candidate.decision == Decision.MERGE:
                if not candidate.matched_entity_id:
                    raise RecordCommitFailure(candidate.id, "Merge decision has no target entity")
                score: Optional[float] = (
                    candidate.suggested_match.score if candidate.suggested_match else None
                )
                self.entity_store.fill_empty(
                    session.workspace_id,
                    candidate.matched_entity_id,
                    candidate.attributes,
                    session_id=session.id,
                    candidate_id=candidate.id,
                    match_score=score,
                    source_ref=candidate.source_ref,
                )
                return candidate.matched_entity_id

            return self.entity_store.create(session.workspace_id, candidate.attributes)
        except RecordCommitFailure:
            raise
        except CareerImportError as e:
            raise RecordCommitFailure(candidate.id, str(e)) from e
