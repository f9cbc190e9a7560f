"""
Staging sessions.

An import session lives in a key/value store between upload and commit.
The store is injected: an in-memory dict for tests and single-process use,
or the import_sessions table when several workers share sessions. Every
mutation is a read-modify-compare-and-swap on the serialized session, so
concurrent decision updates never lose writes and exactly one of two
concurrent commits wins.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from typing import Callable, Iterable, Optional, Protocol, TypeVar

from pydantic import ValidationError
from sqlalchemy import delete, or_, update
from sqlalchemy.orm import sessionmaker

from config.logging import logger, session_logger
from config.settings import settings
from career_import.entity_store import EntityStore
from career_import.errors import (
    CareerImportError,
    InvalidDecision,
    InvalidSessionState,
    SessionNotFound,
)
from career_import.matching import DuplicateMatcher, default_decision
from career_import.models import EntityType, ImportSessionRow, generate_uuid, utc_now
from career_import.records import (
    CandidateRecord,
    CommitResult,
    Decision,
    DecisionUpdate,
    DecisionUpdateResult,
    ExistingRecord,
    ImportSession,
    RecordError,
    SessionStatus,
    build_fields,
)

T = TypeVar("T")


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def put(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def expire(self, key: str, ttl: int) -> bool:
        ...

    def replace(self, key: str, expected: str, value: str) -> bool:
        """Set ``value`` only if the current value equals ``expected``."""
        ...


class MemoryKeyValueStore:
    """Thread-safe in-process key/value store with per-key TTL."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: dict[str, tuple[str, Optional[float]]] = {}
        self._lock = threading.RLock()
        self._clock = clock

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def put(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        with self._lock:
            expires_at = self._clock() + ttl if ttl is not None else None
            self._entries[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def expire(self, key: str, ttl: int) -> bool:
        with self._lock:
            value = self.get(key)
            if value is None:
                return False
            self._entries[key] = (value, self._clock() + ttl)
            return True

    def replace(self, key: str, expected: str, value: str) -> bool:
        with self._lock:
            if self.get(key) != expected:
                return False
            _, expires_at = self._entries[key]
            self._entries[key] = (value, expires_at)
            return True

    def purge_expired(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [
                k for k, (_, expires_at) in self._entries.items()
                if expires_at is not None and now >= expires_at
            ]
            for key in expired:
                del self._entries[key]
            return len(expired)


class SqlKeyValueStore:
    """Key/value store on the import_sessions table, one DB session per call."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def get(self, key: str) -> Optional[str]:
        with self.session_factory() as db:
            row = db.get(ImportSessionRow, key)
            if row is None:
                return None
            if row.expires_at is not None and row.expires_at <= utc_now():
                db.delete(row)
                db.commit()
                return None
            return row.payload

    def put(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        expires_at = utc_now() + timedelta(seconds=ttl) if ttl is not None else None
        with self.session_factory() as db:
            row = db.get(ImportSessionRow, key)
            if row is None:
                db.add(ImportSessionRow(key=key, payload=value, expires_at=expires_at))
            else:
                row.payload = value
                row.expires_at = expires_at
            db.commit()

    def delete(self, key: str) -> None:
        with self.session_factory() as db:
            db.execute(delete(ImportSessionRow).where(ImportSessionRow.key == key))
            db.commit()

    def expire(self, key: str, ttl: int) -> bool:
        with self.session_factory() as db:
            result = db.execute(
                update(ImportSessionRow)
                .where(ImportSessionRow.key == key)
                .values(expires_at=utc_now() + timedelta(seconds=ttl))
            )
            db.commit()
            return result.rowcount == 1

    def replace(self, key: str, expected: str, value: str) -> bool:
        with self.session_factory() as db:
            result = db.execute(
                update(ImportSessionRow)
                .where(
                    ImportSessionRow.key == key,
                    ImportSessionRow.payload == expected,
                    or_(
                        ImportSessionRow.expires_at.is_(None),
                        ImportSessionRow.expires_at > utc_now(),
                    ),
                )
                .values(payload=value)
            )
            db.commit()
            return result.rowcount == 1

    def purge_expired(self) -> int:
        with self.session_factory() as db:
            result = db.execute(
                delete(ImportSessionRow).where(
                    ImportSessionRow.expires_at <= utc_now()
                )
            )
            db.commit()
            return result.rowcount


class StagingStore:
    """
    Holds import sessions between upload and commit.

    Usage:
        staging = StagingStore(MemoryKeyValueStore(), SqlEntityStore(db))
        session = staging.create_session("ws-1", candidates)
        staging.update_decisions(session.id, [DecisionUpdate(...)])
    """

    KEY_PREFIX = "import-session:"
    MAX_CAS_ATTEMPTS = 10

    def __init__(
        self,
        kv: KeyValueStore,
        entity_store: EntityStore,
        matcher: Optional[DuplicateMatcher] = None,
        ttl_seconds: Optional[int] = None,
        max_workers: Optional[int] = None,
    ):
        self.kv = kv
        self.entity_store = entity_store
        self.matcher = matcher or DuplicateMatcher()
        self.ttl_seconds = settings.SESSION_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self.max_workers = settings.MATCH_WORKERS if max_workers is None else max_workers

    def create_session(
        self,
        workspace_id: str,
        candidates: Iterable[CandidateRecord],
        source_name: Optional[str] = None,
    ) -> ImportSession:
        """
        Stage candidates, computing a suggested match and default decision
        for each against the workspace's existing records.
        """
        candidates = self._unique_ids(list(candidates))

        existing: dict[EntityType, list[ExistingRecord]] = {}
        for entity_type in {c.entity_type for c in candidates}:
            existing[entity_type] = self.entity_store.list_records(workspace_id, entity_type)

        def stage(candidate: CandidateRecord) -> CandidateRecord:
            match = self.matcher.find_duplicate(
                candidate.attributes, existing[candidate.entity_type]
            )
            decision = default_decision(match)
            return candidate.model_copy(update={
                "suggested_match": match,
                "decision": decision,
                "matched_entity_id": match.matched_id if decision == Decision.MERGE else None,
            })

        # Scoring reads only the existing-record snapshot above
        if self.max_workers > 1 and len(candidates) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                staged = list(pool.map(stage, candidates))
        else:
            staged = [stage(c) for c in candidates]

        session = ImportSession(
            workspace_id=workspace_id,
            candidates=staged,
            source_name=source_name,
        )
        self.kv.put(self._key(session.id), session.model_dump_json(), self.ttl_seconds)

        stats = session.stats()
        session_logger(session.id).info(
            f"Staged {stats['total_records']} records for workspace {workspace_id}, "
            f"{stats['duplicates_found']} suggested duplicates"
        )
        return session

    def get_session(self, session_id: str) -> ImportSession:
        payload = self.kv.get(self._key(session_id))
        if payload is None:
            raise SessionNotFound(session_id)
        return ImportSession.model_validate_json(payload)

    def update_decisions(
        self,
        session_id: str,
        updates: Iterable[DecisionUpdate],
    ) -> DecisionUpdateResult:
        """
        Apply decision overrides. Malformed updates are rejected one by one;
        the rest of the batch is still applied.
        """
        updates = list(updates)

        def apply(session: ImportSession) -> DecisionUpdateResult:
            self._require_staging(session, "update decisions for")
            result = DecisionUpdateResult()
            for item in updates:
                try:
                    self._apply_update(session, item)
                    result.updated_count += 1
                except InvalidDecision as e:
                    result.errors.append(RecordError(candidate_id=e.candidate_id, error=e.reason))
            return result

        _, result = self._mutate(session_id, apply)
        log = session_logger(session_id)
        for error in result.errors:
            log.warning(f"Rejected decision for {error.candidate_id}: {error.error}")
        return result

    def discard_session(self, session_id: str) -> ImportSession:
        def apply(session: ImportSession) -> None:
            self._require_staging(session, "discard")
            session.status = SessionStatus.DISCARDED

        session, _ = self._mutate(session_id, apply)
        session_logger(session_id).info("Discarded")
        return session

    def claim_for_commit(self, session_id: str) -> ImportSession:
        """
        Move a staging session to committed. Only one caller can win the
        transition; everyone else gets InvalidSessionState.
        """
        def apply(session: ImportSession) -> None:
            self._require_staging(session, "commit")
            session.status = SessionStatus.COMMITTED

        session, _ = self._mutate(session_id, apply)
        return session

    def record_commit_result(self, session_id: str, result: CommitResult) -> ImportSession:
        def apply(session: ImportSession) -> None:
            session.commit_result = result

        session, _ = self._mutate(session_id, apply)
        return session

    def purge_expired(self) -> int:
        purge = getattr(self.kv, "purge_expired", None)
        count = purge() if purge else 0
        if count:
            logger.info(f"Purged {count} expired import sessions")
        return count

    def _apply_update(self, session: ImportSession, item: DecisionUpdate) -> None:
        record = session.candidate(item.candidate_id)
        if record is None:
            raise InvalidDecision(item.candidate_id, "Candidate not found in session")

        if item.decision == Decision.MERGE:
            if not item.matched_entity_id:
                raise InvalidDecision(item.candidate_id, "Merge decision requires matched_entity_id")
            target = self.entity_store.get(session.workspace_id, item.matched_entity_id)
            if target is None or target.entity_type != record.entity_type:
                raise InvalidDecision(
                    item.candidate_id,
                    f"Merge target {item.matched_entity_id} is not an existing {record.entity_type.value}",
                )

        attributes = record.attributes
        if item.field_overrides:
            try:
                attributes = build_fields(
                    record.entity_type,
                    {**record.attributes.populated(), **item.field_overrides},
                )
            except ValidationError as e:
                raise InvalidDecision(item.candidate_id, f"Invalid field overrides: {e}") from e

        record.attributes = attributes
        record.decision = item.decision
        record.matched_entity_id = item.matched_entity_id if item.decision == Decision.MERGE else None

    def _mutate(
        self,
        session_id: str,
        fn: Callable[[ImportSession], T],
    ) -> tuple[ImportSession, T]:
        key = self._key(session_id)
        for _ in range(self.MAX_CAS_ATTEMPTS):
            payload = self.kv.get(key)
            if payload is None:
                raise SessionNotFound(session_id)
            session = ImportSession.model_validate_json(payload)
            result = fn(session)
            if self.kv.replace(key, payload, session.model_dump_json()):
                return session, result
            session_logger(session_id).debug("Concurrent update, retrying")
        raise CareerImportError(f"Could not update import session {session_id}: too much contention")

    @staticmethod
    def _require_staging(session: ImportSession, operation: str) -> None:
        if session.status != SessionStatus.STAGING:
            raise InvalidSessionState(session.id, session.status.value, operation)

    @staticmethod
    def _unique_ids(candidates: list[CandidateRecord]) -> list[CandidateRecord]:
        seen = set()
        result = []
        for candidate in candidates:
            if candidate.id in seen:
                candidate = candidate.model_copy(update={"id": generate_uuid()})
            seen.add(candidate.id)
            result.append(candidate)
        return result

    def _key(self, session_id: str) -> str:
        return f"{self.KEY_PREFIX}{session_id}"
