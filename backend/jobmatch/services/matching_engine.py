"""
Matching Engine

Compares one embedding against every stored counterpart of the opposite kind and persists
pairs whose cosine similarity meets the canonical threshold.

The scan is a full O(N) pass per triggering event. That is fine for a few thousand owners;
beyond that the scan should be sharded or replaced by an ANN index.
"""

import logging
from collections.abc import Iterable, Sequence

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import MATCH_MIN_SCORE
from ..models.match_record import MatchRecord
from ..schemas.matching import Counterpart, MatchResult, StoredMatch, opposite
from ..utils.error_handlers import DimensionMismatch, PersistenceError
from .embeddings import list_counterparts
from .persistence import dialect_insert
from .semantic_similarity import clamp_similarity, cosine_similarity, meets_threshold, to_match_score

logger = logging.getLogger(__name__)


def pair_ids(subject_kind: str, subject_owner_id: str, counterpart_owner_id: str) -> tuple[str, str]:
    """(resume_owner_id, job_owner_id) for a subject/counterpart pairing."""
    if subject_kind == "resume":
        return str(subject_owner_id), str(counterpart_owner_id)
    return str(counterpart_owner_id), str(subject_owner_id)


def _owner_column(owner_kind: str):
    return MatchRecord.resume_owner_id if owner_kind == "resume" else MatchRecord.job_owner_id


def upsert_match(
    db: Session,
    *,
    resume_owner_id: str,
    job_owner_id: str,
    match_score: int,
    similarity_score: float,
) -> None:
    """
    Insert or refresh scores for one pair in a single statement.
    `notified` is only set on insert; an existing row keeps its notification state.
    """
    dialect, stmt = dialect_insert(db, MatchRecord)
    stmt = stmt.values(
        resume_owner_id=resume_owner_id,
        job_owner_id=job_owner_id,
        match_score=match_score,
        similarity_score=similarity_score,
        notified=False,
    )
    if dialect == "mysql":
        stmt = stmt.on_duplicate_key_update(
            match_score=stmt.inserted.match_score,
            similarity_score=stmt.inserted.similarity_score,
            updated_at=func.now(),
        )
    else:
        table = MatchRecord.__table__
        stmt = stmt.on_conflict_do_update(
            index_elements=["resume_owner_id", "job_owner_id"],
            set_={
                "match_score": stmt.excluded.match_score,
                "similarity_score": stmt.excluded.similarity_score,
                "updated_at": func.now(),
            },
            where=(table.c.match_score != stmt.excluded.match_score)
            | (table.c.similarity_score != stmt.excluded.similarity_score),
        )
    try:
        db.execute(stmt)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Failed to store match resume={resume_owner_id} job={job_owner_id}") from e


def match_one_against_many(
    db: Session,
    *,
    subject_kind: str,
    subject_owner_id: str,
    subject_vector: Sequence[float],
    counterparts: Iterable[Counterpart],
) -> list[MatchResult]:
    """
    Score the subject against each counterpart, upsert every pair at or above the
    threshold and return those pairs. A counterpart that fails to compare or persist is
    logged and skipped.
    """
    matches: list[MatchResult] = []
    scanned = 0
    for cp in counterparts:
        scanned += 1
        try:
            sim = cosine_similarity(subject_vector, cp.vector)
        except DimensionMismatch as e:
            logger.warning(
                "Skipping %s:%s vs %s: %s",
                subject_kind,
                subject_owner_id,
                cp.owner_id,
                e.message,
            )
            continue

        if not meets_threshold(sim):
            continue

        similarity = clamp_similarity(sim)
        score = to_match_score(similarity)
        resume_id, job_id = pair_ids(subject_kind, subject_owner_id, cp.owner_id)
        try:
            upsert_match(
                db,
                resume_owner_id=resume_id,
                job_owner_id=job_id,
                match_score=score,
                similarity_score=similarity,
            )
        except PersistenceError as e:
            logger.warning("%s (%s)", e.message, e.__cause__)
            continue

        matches.append(MatchResult(owner_id=str(cp.owner_id), match_score=score, similarity_score=similarity))

    logger.info(
        "Matched %s:%s against %s %s(s): %s above threshold",
        subject_kind,
        subject_owner_id,
        scanned,
        opposite(subject_kind),
        len(matches),
    )
    return matches


def rescan_owner(
    db: Session,
    *,
    subject_kind: str,
    subject_owner_id: str,
    subject_vector: Sequence[float],
) -> list[MatchResult]:
    """Full rescan against every stored embedding of the opposite kind."""
    counterparts = list_counterparts(db, entity_type=opposite(subject_kind))
    if not counterparts:
        logger.info("No %s embeddings found", opposite(subject_kind))
        return []
    return match_one_against_many(
        db,
        subject_kind=subject_kind,
        subject_owner_id=subject_owner_id,
        subject_vector=subject_vector,
        counterparts=counterparts,
    )


def get_matches_for_owner(
    db: Session,
    *,
    owner_id: str,
    owner_kind: str = "resume",
    min_score: int = MATCH_MIN_SCORE,
) -> list[StoredMatch]:
    try:
        rows = (
            db.query(MatchRecord)
            .filter(
                _owner_column(owner_kind) == str(owner_id),
                MatchRecord.match_score >= int(min_score),
            )
            .order_by(MatchRecord.match_score.desc())
            .all()
        )
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to load matches for {owner_kind}:{owner_id}") from e
    return [StoredMatch.from_row(r) for r in rows]


def get_match_details(db: Session, *, resume_owner_id: str, job_owner_id: str) -> StoredMatch | None:
    try:
        row = (
            db.query(MatchRecord)
            .filter(
                MatchRecord.resume_owner_id == str(resume_owner_id),
                MatchRecord.job_owner_id == str(job_owner_id),
            )
            .first()
        )
    except SQLAlchemyError as e:
        raise PersistenceError("Failed to load match details") from e
    return StoredMatch.from_row(row) if row else None


def get_unnotified_matches(db: Session, *, owner_id: str, owner_kind: str = "job") -> list[StoredMatch]:
    try:
        rows = (
            db.query(MatchRecord)
            .filter(
                _owner_column(owner_kind) == str(owner_id),
                MatchRecord.notified == False,  # noqa: E712
            )
            .order_by(MatchRecord.match_score.desc())
            .all()
        )
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to load unnotified matches for {owner_kind}:{owner_id}") from e
    return [StoredMatch.from_row(r) for r in rows]


def delete_matches_for_owner(db: Session, *, owner_kind: str, owner_id: str) -> int:
    """Cascade helper for callers deleting a resume or job."""
    try:
        count = db.query(MatchRecord).filter(_owner_column(owner_kind) == str(owner_id)).delete()
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Failed to delete matches for {owner_kind}:{owner_id}") from e
    logger.info("Deleted %s match(es) for %s:%s", count, owner_kind, owner_id)
    return count
