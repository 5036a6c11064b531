"""
Entry points for the matching core.

Every public method returns `Success(value=...)` or `Failure(error=...)`; expected failures
(empty text, provider errors, database trouble) never escape as exceptions so callers can
pick their own retry policy from `error.retryable`.
"""

import logging
from collections.abc import Callable, Iterable, Sequence
from typing import Any, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import MATCH_MIN_SCORE, NOTIFY_CHANNEL, NOTIFY_CLAIM_TTL_S, EmbeddingProviderConfig
from ..database import SessionLocal
from ..schemas.matching import Counterpart, MatchResult, PipelineRun
from ..schemas.outcomes import Failure, Outcome, Success
from ..utils.error_handlers import AppError, NotificationError, PersistenceError
from . import embeddings, matching_engine, notifications
from .embedding_client import EmbeddingGateway
from .embeddings import Embedder, build_job_text
from .notifications import NotificationSink
from .resume_parsing import parse_resume_text


logger = logging.getLogger(__name__)

T = TypeVar("T")


class MatchingPipeline:
    def __init__(
        self,
        *,
        gateway: Embedder,
        sink: NotificationSink | None = None,
        session_factory: Callable[[], Session] = SessionLocal,
        channel: str = NOTIFY_CHANNEL,
        claim_ttl_s: int = NOTIFY_CLAIM_TTL_S,
    ):
        self.gateway = gateway
        self.sink = sink
        self.session_factory = session_factory
        self.channel = channel
        self.claim_ttl_s = claim_ttl_s

    @classmethod
    def from_env(cls, *, sink: NotificationSink | None = None) -> "MatchingPipeline":
        return cls(gateway=EmbeddingGateway(EmbeddingProviderConfig.from_env()), sink=sink)

    def _run(self, op: str, fn: Callable[[Session], T]) -> Outcome:
        try:
            with self.session_factory() as db:
                return Success(value=fn(db))
        except AppError as e:
            logger.warning("%s failed (%s): %s", op, e.code, e.message)
            return Failure.from_exception(e)
        except SQLAlchemyError as e:
            logger.warning("%s failed on the database: %s", op, e)
            return Failure.from_exception(PersistenceError(f"{op} failed: {type(e).__name__}"))
        except Exception as e:
            return Failure.from_exception(e)

    # ---- single operations ----

    def get_or_refresh_embedding(self, *, entity_type: str, owner_id: str, text: str) -> Outcome:
        return self._run(
            "get_or_refresh_embedding",
            lambda db: embeddings.get_or_refresh_embedding(
                db, self.gateway, entity_type=entity_type, owner_id=owner_id, text=text
            ),
        )

    def get_cached_embedding(self, *, entity_type: str, owner_id: str) -> Outcome:
        def op(db: Session) -> list[float] | None:
            row = embeddings.get_cached_embedding(db, entity_type=entity_type, owner_id=owner_id)
            return embeddings.vector_from_row(row) if row else None

        return self._run("get_cached_embedding", op)

    def match_one_against_many(
        self,
        *,
        subject_kind: str,
        subject_owner_id: str,
        subject_vector: Sequence[float],
        counterparts: Iterable[Counterpart] | None = None,
    ) -> Outcome:
        """Without explicit counterparts, scans every stored embedding of the opposite kind."""

        def op(db: Session) -> list[MatchResult]:
            if counterparts is None:
                return matching_engine.rescan_owner(
                    db, subject_kind=subject_kind, subject_owner_id=subject_owner_id, subject_vector=subject_vector
                )
            return matching_engine.match_one_against_many(
                db,
                subject_kind=subject_kind,
                subject_owner_id=subject_owner_id,
                subject_vector=subject_vector,
                counterparts=counterparts,
            )

        return self._run("match_one_against_many", op)

    def get_matches_for_owner(self, *, owner_id: str, owner_kind: str = "resume", min_score: int = MATCH_MIN_SCORE) -> Outcome:
        return self._run(
            "get_matches_for_owner",
            lambda db: matching_engine.get_matches_for_owner(
                db, owner_id=owner_id, owner_kind=owner_kind, min_score=min_score
            ),
        )

    def get_match_details(self, *, resume_owner_id: str, job_owner_id: str) -> Outcome:
        return self._run(
            "get_match_details",
            lambda db: matching_engine.get_match_details(
                db, resume_owner_id=resume_owner_id, job_owner_id=job_owner_id
            ),
        )

    def get_unnotified_matches(self, *, owner_id: str, owner_kind: str = "job") -> Outcome:
        return self._run(
            "get_unnotified_matches",
            lambda db: matching_engine.get_unnotified_matches(db, owner_id=owner_id, owner_kind=owner_kind),
        )

    def trigger_notifications(
        self,
        *,
        triggering_owner_id: str,
        triggering_kind: str,
        matches: Iterable[MatchResult],
        subject_title: str | None = None,
    ) -> Outcome:
        if self.sink is None:
            return Failure.from_exception(NotificationError("No notification sink configured"))
        sink = self.sink
        return self._run(
            "trigger_notifications",
            lambda db: notifications.trigger_notifications(
                db,
                sink,
                triggering_owner_id=triggering_owner_id,
                triggering_kind=triggering_kind,
                matches=list(matches),
                subject_title=subject_title,
                channel=self.channel,
                claim_ttl_s=self.claim_ttl_s,
            ),
        )

    def parse_resume_text(self, text: str) -> Outcome:
        try:
            return Success(value=parse_resume_text(text=text))
        except Exception as e:
            return Failure.from_exception(e)

    def refresh_many(self, *, entity_type: str, items: Iterable[tuple[str, str]]) -> Outcome:
        return self._run(
            "refresh_many",
            lambda db: embeddings.refresh_many(db, self.gateway, entity_type=entity_type, items=items),
        )

    def remove_owner(self, *, owner_kind: str, owner_id: str) -> Outcome:
        """Drop an owner's embedding and every match referencing it."""

        def op(db: Session) -> dict[str, Any]:
            removed_embeddings = embeddings.delete_embedding(db, entity_type=owner_kind, owner_id=owner_id)
            removed_matches = matching_engine.delete_matches_for_owner(db, owner_kind=owner_kind, owner_id=owner_id)
            return {"embeddings": removed_embeddings, "matches": removed_matches}

        return self._run("remove_owner", op)

    # ---- end-to-end flows ----

    def _refresh_and_rescan(self, db: Session, *, entity_type: str, owner_id: str, text: str) -> PipelineRun:
        refresh = embeddings.get_or_refresh_embedding(
            db, self.gateway, entity_type=entity_type, owner_id=owner_id, text=text
        )
        if not refresh.changed:
            return PipelineRun(owner_id=str(owner_id), entity_type=entity_type, changed=False)
        matches = matching_engine.rescan_owner(
            db, subject_kind=entity_type, subject_owner_id=owner_id, subject_vector=refresh.vector
        )
        return PipelineRun(owner_id=str(owner_id), entity_type=entity_type, changed=True, matches=matches)

    def _notify(self, db: Session, run: PipelineRun, *, subject_title: str | None) -> None:
        if not run.matches or self.sink is None:
            return
        run.notifications = notifications.trigger_notifications(
            db,
            self.sink,
            triggering_owner_id=run.owner_id,
            triggering_kind=run.entity_type,
            matches=run.matches,
            subject_title=subject_title,
            channel=self.channel,
            claim_ttl_s=self.claim_ttl_s,
        )

    def process_job(
        self,
        *,
        job_id: str,
        title: str | None,
        description: str | None,
        requirements: Iterable[str] | None = None,
        responsibilities: Iterable[str] | None = None,
        notify: bool = True,
    ) -> Outcome:
        """Embed a published job, rescan resumes when its text changed and notify new matches."""
        text = build_job_text(
            title=title,
            description=description,
            requirements=requirements,
            responsibilities=responsibilities,
        )

        def op(db: Session) -> PipelineRun:
            run = self._refresh_and_rescan(db, entity_type="job", owner_id=job_id, text=text)
            if notify:
                self._notify(db, run, subject_title=title)
            return run

        return self._run("process_job", op)

    def process_resume(self, *, owner_id: str, text: str, notify: bool = False) -> Outcome:
        """Parse and embed a resume, then rescan jobs when its text changed."""
        profile = parse_resume_text(text=text)

        def op(db: Session) -> PipelineRun:
            run = self._refresh_and_rescan(db, entity_type="resume", owner_id=owner_id, text=text)
            run.profile = profile
            if notify:
                self._notify(db, run, subject_title=None)
            return run

        return self._run("process_resume", op)
