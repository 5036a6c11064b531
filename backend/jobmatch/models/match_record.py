from sqlalchemy import Boolean, Column, DateTime, Float, Index, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from ..database import Base


class MatchRecord(Base):
    """
    A resume/job pairing whose embedding similarity met the persistence threshold.

    Rows are never removed by the matcher itself; deleting a resume or job is expected to
    cascade through `delete_matches_for_owner`.
    """
    __tablename__ = "job_matches"

    id = Column(Integer, primary_key=True, index=True)
    resume_owner_id = Column(String(64), nullable=False)
    job_owner_id = Column(String(64), nullable=False)
    match_score = Column(Integer, nullable=False)  # 0-100
    similarity_score = Column(Float, nullable=False)  # 0-1 cosine similarity

    notified = Column(Boolean, nullable=False, default=False, server_default="0")
    notified_at = Column(DateTime(timezone=True), nullable=True)
    # Dispatch claim held while a notification hand-off is in flight.
    claim_token = Column(String(36), nullable=True)
    claimed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("resume_owner_id", "job_owner_id", name="uq_job_matches_resume_job"),
        Index("ix_job_matches_resume_score", "resume_owner_id", "match_score"),
        Index("ix_job_matches_job_score", "job_owner_id", "match_score"),
    )

    def __repr__(self) -> str:
        return (
            f"<MatchRecord(resume={self.resume_owner_id}, job={self.job_owner_id}, "
            f"score={self.match_score}, notified={self.notified})>"
        )
