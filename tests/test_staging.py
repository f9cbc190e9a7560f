#!/usr/bin/env python3
"""
Tests for staging sessions and the session key/value stores.
"""

import threading
from datetime import timedelta

import pytest

from conftest import add_entity
from career_import.entity_store import SqlEntityStore
from career_import.errors import InvalidSessionState, SessionNotFound
from career_import.matching import DuplicateMatcher, MatcherConfig
from career_import.models import ImportSessionRow, utc_now
from career_import.records import (
    CandidateRecord,
    Confidence,
    Decision,
    DecisionUpdate,
    JobFields,
    SessionStatus,
    SkillFields,
)
from career_import.staging import MemoryKeyValueStore, SqlKeyValueStore, StagingStore

WORKSPACE = "ws-test"


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_staging(db, kv=None, ttl_seconds=3600, **kwargs):
    return StagingStore(
        kv or MemoryKeyValueStore(),
        SqlEntityStore(db),
        matcher=DuplicateMatcher(MatcherConfig()),
        ttl_seconds=ttl_seconds,
        **kwargs,
    )


@pytest.fixture
def seeded(db):
    """Existing Google job and PostgreSQL skill in the test workspace."""
    job_id = add_entity(db, WORKSPACE, JobFields(
        company="Google", title="Software Engineer",
        start_date="2020-01-01", end_date="2022-12-31",
    ))
    skill_id = add_entity(db, WORKSPACE, SkillFields(name="PostgreSQL"))
    return {"job": job_id, "skill": skill_id}


def candidates():
    return [
        CandidateRecord(attributes=JobFields(
            company="Google Inc.", title="Software Engineer",
            start_date="2020-01-15", end_date="2022-12-31",
        )),
        CandidateRecord(attributes=SkillFields(name="Postgres")),
        CandidateRecord(attributes=JobFields(company="Amazon", title="Data Scientist")),
    ]


# === SESSION CREATION ===

def test_create_session_suggests_matches(db, seeded):
    """New sessions carry suggested matches and default decisions."""
    staging = make_staging(db)
    session = staging.create_session(WORKSPACE, candidates(), source_name="export.json")

    assert session.status == SessionStatus.STAGING
    assert session.source_name == "export.json"
    google, postgres, amazon = session.candidates

    assert google.suggested_match.confidence == Confidence.EXACT
    assert google.decision == Decision.MERGE
    assert google.matched_entity_id == seeded["job"]

    assert postgres.suggested_match.confidence == Confidence.LIKELY
    assert postgres.decision == Decision.MERGE
    assert postgres.matched_entity_id == seeded["skill"]

    assert amazon.suggested_match.confidence == Confidence.NONE
    assert amazon.decision == Decision.CREATE
    assert amazon.matched_entity_id is None

    stats = session.stats()
    assert stats["total_records"] == 3
    assert stats["by_type"] == {"job": 2, "skill": 1}
    assert stats["duplicates_found"] == 2

    stored = staging.get_session(session.id)
    assert stored == session


def test_create_session_ignores_other_workspaces(db, seeded):
    staging = make_staging(db)
    session = staging.create_session("ws-other", candidates())
    assert all(c.decision == Decision.CREATE for c in session.candidates)
    assert session.stats()["duplicates_found"] == 0


def test_create_session_assigns_unique_ids(db):
    staging = make_staging(db)
    first = CandidateRecord(id="dup", attributes=SkillFields(name="Python"))
    second = CandidateRecord(id="dup", attributes=SkillFields(name="Go"))
    session = staging.create_session(WORKSPACE, [first, second])
    ids = [c.id for c in session.candidates]
    assert len(set(ids)) == 2
    assert ids[0] == "dup"


def test_create_session_in_parallel_keeps_order(db, seeded):
    staging = make_staging(db, max_workers=4)
    session = staging.create_session(WORKSPACE, candidates())
    assert [c.attributes for c in session.candidates] == [c.attributes for c in candidates()]
    assert session.candidates[0].matched_entity_id == seeded["job"]


def test_empty_session(db):
    staging = make_staging(db)
    session = staging.create_session(WORKSPACE, [])
    assert session.candidates == []
    assert session.stats()["total_records"] == 0
    assert staging.get_session(session.id).status == SessionStatus.STAGING


def test_unknown_session(db):
    staging = make_staging(db)
    with pytest.raises(SessionNotFound):
        staging.get_session("does-not-exist")
    with pytest.raises(SessionNotFound):
        staging.update_decisions("does-not-exist", [])
    with pytest.raises(SessionNotFound):
        staging.discard_session("does-not-exist")


# === DECISIONS ===

def test_update_decisions_partial_success(db, seeded):
    """Bad updates are reported per item; good ones are still applied."""
    staging = make_staging(db)
    session = staging.create_session(WORKSPACE, candidates())
    google, postgres, amazon = session.candidates

    result = staging.update_decisions(session.id, [
        DecisionUpdate(candidate_id=google.id, decision=Decision.SKIP),
        DecisionUpdate(candidate_id="missing", decision=Decision.CREATE),
        DecisionUpdate(candidate_id=amazon.id, decision=Decision.MERGE),
        DecisionUpdate(
            candidate_id=postgres.id, decision=Decision.MERGE, matched_entity_id=seeded["job"],
        ),
    ])

    assert result.updated_count == 1
    assert not result.ok
    assert [e.candidate_id for e in result.errors] == ["missing", amazon.id, postgres.id]

    stored = staging.get_session(session.id)
    assert stored.candidate(google.id).decision == Decision.SKIP
    assert stored.candidate(google.id).matched_entity_id is None
    # Rejected updates leave the previous decision in place
    assert stored.candidate(amazon.id).decision == Decision.CREATE
    assert stored.candidate(postgres.id).matched_entity_id == seeded["skill"]


def test_merge_decision_with_explicit_target(db, seeded):
    staging = make_staging(db)
    session = staging.create_session(WORKSPACE, candidates())
    amazon = session.candidates[2]

    result = staging.update_decisions(session.id, [
        DecisionUpdate(
            candidate_id=amazon.id, decision=Decision.MERGE, matched_entity_id=seeded["job"],
        ),
    ])

    assert result.ok
    stored = staging.get_session(session.id).candidate(amazon.id)
    assert stored.decision == Decision.MERGE
    assert stored.matched_entity_id == seeded["job"]


def test_field_overrides(db):
    staging = make_staging(db)
    session = staging.create_session(WORKSPACE, [
        CandidateRecord(attributes=JobFields(company="Gogle", title="Engineer")),
    ])
    candidate = session.candidates[0]

    result = staging.update_decisions(session.id, [
        DecisionUpdate(
            candidate_id=candidate.id,
            decision=Decision.CREATE,
            field_overrides={"company": "Google", "start_date": "2021-05-01"},
        ),
        DecisionUpdate(
            candidate_id=candidate.id,
            decision=Decision.CREATE,
            field_overrides={"salary": "lots"},
        ),
    ])

    assert result.updated_count == 1
    assert len(result.errors) == 1
    attributes = staging.get_session(session.id).candidate(candidate.id).attributes
    assert attributes.company == "Google"
    assert attributes.title == "Engineer"
    assert attributes.start_date.isoformat() == "2021-05-01"


def test_discard_then_update_is_rejected(db):
    staging = make_staging(db)
    session = staging.create_session(WORKSPACE, candidates())

    discarded = staging.discard_session(session.id)
    assert discarded.status == SessionStatus.DISCARDED

    with pytest.raises(InvalidSessionState):
        staging.update_decisions(session.id, [
            DecisionUpdate(candidate_id=session.candidates[0].id, decision=Decision.SKIP),
        ])
    with pytest.raises(InvalidSessionState):
        staging.discard_session(session.id)
    with pytest.raises(InvalidSessionState):
        staging.claim_for_commit(session.id)


def test_concurrent_decision_updates_are_not_lost(db):
    """Parallel updates to different candidates all land."""
    staging = make_staging(db)
    session = staging.create_session(WORKSPACE, [
        CandidateRecord(attributes=SkillFields(name=f"Skill {i}")) for i in range(5)
    ])
    barrier = threading.Barrier(5)
    errors = []

    def worker(candidate_id):
        barrier.wait()
        try:
            staging.update_decisions(session.id, [
                DecisionUpdate(candidate_id=candidate_id, decision=Decision.SKIP),
            ])
        except Exception as e:  # surfaced below
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(c.id,)) for c in session.candidates]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    stored = staging.get_session(session.id)
    assert all(c.decision == Decision.SKIP for c in stored.candidates)


def test_claim_for_commit_has_one_winner(db):
    staging = make_staging(db)
    session = staging.create_session(WORKSPACE, candidates())

    claimed = staging.claim_for_commit(session.id)
    assert claimed.status == SessionStatus.COMMITTED
    with pytest.raises(InvalidSessionState):
        staging.claim_for_commit(session.id)


# === EXPIRY ===

def test_memory_session_expires(db):
    clock = FakeClock()
    kv = MemoryKeyValueStore(clock=clock)
    staging = make_staging(db, kv=kv, ttl_seconds=60)
    session = staging.create_session(WORKSPACE, candidates())

    clock.now += 59
    assert staging.get_session(session.id).id == session.id

    clock.now += 1
    with pytest.raises(SessionNotFound):
        staging.get_session(session.id)


def test_memory_purge_expired():
    clock = FakeClock()
    kv = MemoryKeyValueStore(clock=clock)
    kv.put("a", "1", ttl=10)
    kv.put("b", "2", ttl=100)
    kv.put("c", "3")

    clock.now += 50
    assert kv.purge_expired() == 1
    assert kv.get("a") is None
    assert kv.get("b") == "2"
    assert kv.get("c") == "3"


def test_memory_replace_and_expire():
    clock = FakeClock()
    kv = MemoryKeyValueStore(clock=clock)
    kv.put("k", "v1", ttl=10)

    assert not kv.replace("k", "stale", "v2")
    assert kv.replace("k", "v1", "v2")
    assert kv.get("k") == "v2"

    assert kv.expire("k", 100)
    clock.now += 50
    assert kv.get("k") == "v2"
    assert not kv.expire("missing", 10)

    kv.delete("k")
    assert kv.get("k") is None
    assert not kv.replace("k", "v2", "v3")


def test_sql_store_roundtrip_and_cas(session_factory):
    kv = SqlKeyValueStore(session_factory)
    kv.put("k", "v1", ttl=60)
    assert kv.get("k") == "v1"

    assert not kv.replace("k", "stale", "v2")
    assert kv.replace("k", "v1", "v2")
    assert kv.get("k") == "v2"

    kv.put("k", "v3")
    assert kv.get("k") == "v3"

    kv.delete("k")
    assert kv.get("k") is None
    assert not kv.expire("k", 60)


def test_sql_store_expiry(session_factory):
    kv = SqlKeyValueStore(session_factory)
    kv.put("live", "1", ttl=3600)
    kv.put("dead", "2", ttl=3600)

    with session_factory() as db:
        db.get(ImportSessionRow, "dead").expires_at = utc_now() - timedelta(seconds=1)
        db.commit()

    assert not kv.replace("dead", "2", "3")
    assert kv.purge_expired() == 1
    assert kv.get("dead") is None
    assert kv.get("live") == "1"


def test_staging_on_sql_store(db, session_factory, seeded):
    staging = make_staging(db, kv=SqlKeyValueStore(session_factory))
    session = staging.create_session(WORKSPACE, candidates())
    google = session.candidates[0]

    result = staging.update_decisions(session.id, [
        DecisionUpdate(candidate_id=google.id, decision=Decision.CREATE),
    ])
    assert result.ok
    assert staging.get_session(session.id).candidate(google.id).decision == Decision.CREATE


def test_explicit_zero_settings_are_kept(db):
    staging = make_staging(db, ttl_seconds=0, max_workers=0)
    assert staging.ttl_seconds == 0
    assert staging.max_workers == 0

    session = staging.create_session(WORKSPACE, candidates())
    # Zero TTL expires the session immediately
    with pytest.raises(SessionNotFound):
        staging.get_session(session.id)
