import json
import logging
from collections.abc import Iterable
from typing import Any, Protocol

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.embedding import EmbeddingRecord
from ..schemas.matching import BatchReport, Counterpart, EmbeddingRefresh
from ..utils.error_handlers import AppError, EmptyContent, PersistenceError
from .persistence import dialect_insert
from .semantic_similarity import normalize_text, text_hash


logger = logging.getLogger(__name__)


class Embedder(Protocol):
    model: str

    def embed(self, text: str) -> tuple[list[float], Any]: ...


def build_job_text(
    *,
    title: str | None,
    description: str | None,
    requirements: Iterable[str] | None = None,
    responsibilities: Iterable[str] | None = None,
) -> str:
    parts = [
        title or "",
        description or "",
        " ".join(requirements or []),
        " ".join(responsibilities or []),
    ]
    return " ".join(p for p in parts if p and p.strip())


def vector_from_row(row: EmbeddingRecord) -> list[float]:
    try:
        data: Any = json.loads(row.vector_json or "[]")
        if isinstance(data, list):
            return [float(x) for x in data]
    except (ValueError, TypeError):
        logger.warning("Corrupt vector_json for %s:%s", row.entity_type, row.owner_id)
    return []


def get_cached_embedding(db: Session, *, entity_type: str, owner_id: str) -> EmbeddingRecord | None:
    try:
        return (
            db.query(EmbeddingRecord)
            .filter(
                EmbeddingRecord.entity_type == entity_type,
                EmbeddingRecord.owner_id == str(owner_id),
            )
            .first()
        )
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to read embedding for {entity_type}:{owner_id}") from e


def _upsert_embedding(
    db: Session,
    *,
    entity_type: str,
    owner_id: str,
    model: str,
    vector: list[float],
    h: str,
) -> None:
    """
    Write vector and hash together in one statement. A no-op when the stored row already
    holds the same hash and vector; a row with the right hash but an unreadable vector is rewritten.
    """
    dialect, stmt = dialect_insert(db, EmbeddingRecord)
    stmt = stmt.values(
        entity_type=entity_type,
        owner_id=str(owner_id),
        model=model,
        dim=len(vector),
        text_hash=h,
        vector_json=json.dumps(vector),
    )
    if dialect == "mysql":
        stmt = stmt.on_duplicate_key_update(
            model=stmt.inserted.model,
            dim=stmt.inserted.dim,
            text_hash=stmt.inserted.text_hash,
            vector_json=stmt.inserted.vector_json,
            updated_at=func.now(),
        )
    else:
        table = EmbeddingRecord.__table__
        stmt = stmt.on_conflict_do_update(
            index_elements=["entity_type", "owner_id"],
            set_={
                "model": stmt.excluded.model,
                "dim": stmt.excluded.dim,
                "text_hash": stmt.excluded.text_hash,
                "vector_json": stmt.excluded.vector_json,
                "updated_at": func.now(),
            },
            where=(table.c.text_hash != stmt.excluded.text_hash)
            | (table.c.vector_json != stmt.excluded.vector_json),
        )
    try:
        db.execute(stmt)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Failed to store embedding for {entity_type}:{owner_id}") from e


def get_or_refresh_embedding(
    db: Session,
    gateway: Embedder,
    *,
    entity_type: str,
    owner_id: str,
    text: str,
) -> EmbeddingRefresh:
    """
    Return the owner's vector, calling the provider only when the text hash changed.

    `changed=True` tells the caller a rescan is warranted. Concurrent refreshes of the same
    owner race on the upsert; the last write wins.
    """
    norm = normalize_text(text)
    if not norm:
        raise EmptyContent(details={"entity_type": entity_type, "owner_id": str(owner_id)})

    h = text_hash(text=norm, model=gateway.model)
    row = get_cached_embedding(db, entity_type=entity_type, owner_id=owner_id)
    if row and row.text_hash == h:
        cached = vector_from_row(row)
        if cached:
            logger.debug("Embedding unchanged for %s:%s", entity_type, owner_id)
            return EmbeddingRefresh(
                owner_id=str(owner_id),
                entity_type=entity_type,
                vector=cached,
                text_hash=h,
                changed=False,
            )

    logger.info("Generating embedding for %s:%s", entity_type, owner_id)
    vector, _meta = gateway.embed(norm)
    _upsert_embedding(db, entity_type=entity_type, owner_id=owner_id, model=gateway.model, vector=vector, h=h)
    return EmbeddingRefresh(
        owner_id=str(owner_id),
        entity_type=entity_type,
        vector=vector,
        text_hash=h,
        changed=True,
    )


def list_counterparts(db: Session, *, entity_type: str) -> list[Counterpart]:
    """All stored vectors of one kind, in the shape the matcher consumes."""
    try:
        rows = db.query(EmbeddingRecord).filter(EmbeddingRecord.entity_type == entity_type).all()
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to list {entity_type} embeddings") from e
    out: list[Counterpart] = []
    for row in rows:
        vec = vector_from_row(row)
        if vec:
            out.append(Counterpart(owner_id=row.owner_id, vector=vec))
    return out


def delete_embedding(db: Session, *, entity_type: str, owner_id: str) -> int:
    try:
        count = (
            db.query(EmbeddingRecord)
            .filter(
                EmbeddingRecord.entity_type == entity_type,
                EmbeddingRecord.owner_id == str(owner_id),
            )
            .delete()
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Failed to delete embedding for {entity_type}:{owner_id}") from e
    logger.info("Deleted %s embedding(s) for %s:%s", count, entity_type, owner_id)
    return count


def refresh_many(
    db: Session,
    gateway: Embedder,
    *,
    entity_type: str,
    items: Iterable[tuple[str, str]],
) -> BatchReport:
    """
    Re-embed many owners; one owner's failure is logged and recorded, never fatal.
    """
    report = BatchReport()
    for owner_id, text in items:
        try:
            res = get_or_refresh_embedding(db, gateway, entity_type=entity_type, owner_id=owner_id, text=text)
        except AppError as e:
            logger.warning("Re-embed failed for %s:%s (%s): %s", entity_type, owner_id, e.code, e.message)
            report.failed[str(owner_id)] = e.code
            continue
        except Exception:
            logger.exception("Unexpected re-embed failure for %s:%s", entity_type, owner_id)
            report.failed[str(owner_id)] = "server_error"
            continue
        if res.changed:
            report.refreshed.append(str(owner_id))
        else:
            report.unchanged.append(str(owner_id))

    logger.info(
        "Re-embed %s: %s refreshed, %s unchanged, %s failed",
        entity_type,
        len(report.refreshed),
        len(report.unchanged),
        len(report.failed),
    )
    return report
