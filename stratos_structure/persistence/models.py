"""
Structure Revisions — SQLAlchemy models for the persisted snapshot history.

Every committed mutation writes the full StructureSnapshot as a new revision.
The table is append-only and hash-chained: each revision stores the SHA-256
hash of (previous_hash || canonical_json(revision fields)), so an edited or
removed revision is detectable by replaying the chain.
"""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all persistence models."""
    pass


class SnapshotRevisionDB(Base):
    """
    One committed state of the corporate and organizational trees.

    This table is APPEND-ONLY. Restoring an older state is done by saving it
    again as a new revision.
    """

    __tablename__ = "structure_revisions"

    id = Column(Uuid, primary_key=True, default=uuid4)

    sequence_number = Column(
        Integer, nullable=False, unique=True, index=True,
        comment="Monotonically increasing sequence number",
    )

    previous_hash = Column(
        String(64), nullable=False,
        comment="SHA-256 hash of the previous revision",
    )
    revision_hash = Column(
        String(64), nullable=False, unique=True,
        comment="SHA-256 hash of this revision",
    )

    timestamp = Column(
        DateTime(timezone=True), nullable=False, default=func.now(),
        comment="When this revision was recorded",
    )

    operation = Column(
        String(50), nullable=False, index=True,
        comment="Mutation that produced this revision",
    )

    entity_count = Column(Integer, nullable=False, default=0)
    unit_count = Column(Integer, nullable=False, default=0)

    content = Column(
        JSON, nullable=False,
        comment="Serialized StructureSnapshot",
    )

    __table_args__ = (
        Index("ix_revision_operation_timestamp", "operation", "timestamp"),
    )

    def __repr__(self) -> str:
        return (
            f"<SnapshotRevision seq={self.sequence_number} "
            f"op={self.operation} hash={self.revision_hash[:12]}...>"
        )
