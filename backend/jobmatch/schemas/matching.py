from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from .resume_profile import ParsedResumeProfile


EntityType = Literal["job", "resume"]


def opposite(entity_type: str) -> str:
    return "resume" if entity_type == "job" else "job"


@dataclass(frozen=True)
class Counterpart:
    owner_id: str
    vector: list[float]


class EmbeddingRefresh(BaseModel):
    owner_id: str
    entity_type: EntityType
    vector: list[float]
    text_hash: str
    changed: bool


class MatchResult(BaseModel):
    owner_id: str
    match_score: int = 0
    similarity_score: float = 0.0

    @field_validator("match_score")
    @classmethod
    def _clamp_score(cls, v: int) -> int:
        v2 = int(v)
        if v2 < 0:
            return 0
        if v2 > 100:
            return 100
        return v2


class StoredMatch(BaseModel):
    resume_owner_id: str
    job_owner_id: str
    match_score: int
    similarity_score: float
    notified: bool = False
    notified_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Any) -> "StoredMatch":
        return cls(
            resume_owner_id=row.resume_owner_id,
            job_owner_id=row.job_owner_id,
            match_score=int(row.match_score),
            similarity_score=float(row.similarity_score),
            notified=bool(row.notified),
            notified_at=row.notified_at,
        )


class BatchReport(BaseModel):
    refreshed: list[str] = Field(default_factory=list)
    unchanged: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)  # owner_id -> error code


class NotificationPayload(BaseModel):
    recipient_id: str
    subject_id: str
    type: str = "new_job_match"
    channel: str = "email"
    message: str
    data: dict[str, Any] = Field(default_factory=dict)


class NotificationReport(BaseModel):
    dispatched: list[str] = Field(default_factory=list)  # recipient ids
    skipped: list[str] = Field(default_factory=list)  # already notified or claimed elsewhere
    failed: dict[str, str] = Field(default_factory=dict)  # recipient id -> reason


class PipelineRun(BaseModel):
    owner_id: str
    entity_type: EntityType
    changed: bool
    matches: list[MatchResult] = Field(default_factory=list)
    notifications: NotificationReport | None = None
    profile: ParsedResumeProfile | None = None
