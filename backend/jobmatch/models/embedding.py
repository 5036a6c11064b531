from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint, Index
from sqlalchemy.sql import func

from ..database import Base


class EmbeddingRecord(Base):
    __tablename__ = "embeddings"

    id = Column(Integer, primary_key=True, index=True)
    entity_type = Column(String(20), nullable=False)  # job | resume
    owner_id = Column(String(64), nullable=False)
    model = Column(String(120), nullable=False)
    dim = Column(Integer, nullable=False, default=0)
    text_hash = Column(String(64), nullable=False)
    vector_json = Column(Text, nullable=False)  # JSON array of floats
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # One vector per owner; vector and hash are always rewritten together.
    __table_args__ = (
        UniqueConstraint("entity_type", "owner_id", name="uq_embeddings_entity_owner"),
        Index("ix_embeddings_entity_type", "entity_type"),
    )

    def __repr__(self) -> str:
        return f"<EmbeddingRecord({self.entity_type}:{self.owner_id}, dim={self.dim}, hash={self.text_hash[:12]}...)>"
