"""
Snapshot Repository — append-only, hash-chained storage of structure state.

This is the persistence collaborator of the Tree Store:
- Load the latest snapshot at startup
- Append a new revision after every committed mutation
- Verify the integrity of the full revision chain

The engine never depends on this module; the service layer subscribes the
repository to the Mutation Engine's commit hook.
"""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from pydantic import ValidationError
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from stratos_structure.persistence.models import Base, SnapshotRevisionDB
from stratos_structure.structure.schema import StructureSnapshot

logger = logging.getLogger(__name__)


GENESIS_HASH = "0" * 64  # The "previous hash" for the first revision in the chain
GENESIS_OPERATION = "genesis"


class SnapshotIntegrityError(Exception):
    """Raised when stored revisions cannot be trusted or decoded."""
    pass


def _normalize_timestamp(timestamp: datetime) -> datetime:
    # SQLite drops tzinfo on the way back; hash the naive UTC wall time.
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(timezone.utc).replace(tzinfo=None)
    return timestamp


class SnapshotRepository:
    """
    Persisted history of StructureSnapshots.

    Usage:
        repository = SnapshotRepository(settings.database_url)
        repository.initialize()  # Create tables, seed genesis revision

        snapshot = repository.load_latest()
        repository.save(snapshot, operation="reparent")
    """

    def __init__(self, database_url: str) -> None:
        """
        Args:
            database_url: SQLAlchemy connection string (sync driver).
        """
        self.engine = create_engine(database_url, echo=False)
        self.SessionLocal = sessionmaker(bind=self.engine)

    def initialize(self) -> None:
        """Create the schema and seed the genesis revision if missing."""
        Base.metadata.create_all(self.engine)

        with self.SessionLocal() as session:
            existing = session.execute(
                select(SnapshotRevisionDB).where(SnapshotRevisionDB.sequence_number == 0)
            ).scalar_one_or_none()

            if existing is None:
                genesis = self._create_genesis_revision()
                session.add(genesis)
                session.commit()
                logger.info(
                    "Genesis revision created: hash=%s", genesis.revision_hash[:16]
                )

    def _create_genesis_revision(self) -> SnapshotRevisionDB:
        revision_id = uuid4()
        timestamp = datetime.now(timezone.utc)
        content = {"message": "Structure revision history initialized"}
        revision_hash = self._compute_hash(
            revision_id=revision_id,
            sequence_number=0,
            previous_hash=GENESIS_HASH,
            timestamp=timestamp,
            operation=GENESIS_OPERATION,
            content=content,
        )
        return SnapshotRevisionDB(
            id=revision_id,
            sequence_number=0,
            previous_hash=GENESIS_HASH,
            revision_hash=revision_hash,
            timestamp=timestamp,
            operation=GENESIS_OPERATION,
            entity_count=0,
            unit_count=0,
            content=content,
        )

    def save(self, snapshot: StructureSnapshot, operation: str = "save") -> SnapshotRevisionDB:
        """
        Append ``snapshot`` as a new revision.

        Raises:
            SnapshotIntegrityError: If the genesis revision is missing.
        """
        content = snapshot.model_dump(mode="json")

        with self.SessionLocal() as session:
            last = session.execute(
                select(SnapshotRevisionDB)
                .order_by(SnapshotRevisionDB.sequence_number.desc())
                .limit(1)
            ).scalar_one_or_none()

            if last is None:
                raise SnapshotIntegrityError(
                    "Cannot save: no genesis revision found. Call initialize() first."
                )

            sequence_number = last.sequence_number + 1
            previous_hash = last.revision_hash
            revision_id = uuid4()
            timestamp = datetime.now(timezone.utc)

            revision_hash = self._compute_hash(
                revision_id=revision_id,
                sequence_number=sequence_number,
                previous_hash=previous_hash,
                timestamp=timestamp,
                operation=operation,
                content=content,
            )

            revision = SnapshotRevisionDB(
                id=revision_id,
                sequence_number=sequence_number,
                previous_hash=previous_hash,
                revision_hash=revision_hash,
                timestamp=timestamp,
                operation=operation,
                entity_count=len(snapshot.corporate_entities),
                unit_count=len(snapshot.org_units),
                content=content,
            )

            session.add(revision)
            session.commit()
            session.refresh(revision)

            logger.info(
                "Structure revision saved: seq=%d op=%s hash=%s",
                sequence_number, operation, revision_hash[:16],
            )
            return revision

    def on_commit(self, snapshot: StructureSnapshot, operation: str) -> None:
        """Mutation Engine listener."""
        self.save(snapshot, operation=operation)

    def load_latest(self) -> StructureSnapshot | None:
        """
        The most recently saved snapshot, or None when only genesis exists.

        Raises:
            SnapshotIntegrityError: If the stored content no longer decodes.
        """
        with self.SessionLocal() as session:
            latest = session.execute(
                select(SnapshotRevisionDB)
                .where(SnapshotRevisionDB.sequence_number > 0)
                .order_by(SnapshotRevisionDB.sequence_number.desc())
                .limit(1)
            ).scalar_one_or_none()

        if latest is None:
            return None
        try:
            return StructureSnapshot.model_validate(latest.content)
        except ValidationError as exc:
            raise SnapshotIntegrityError(
                f"Revision {latest.sequence_number} does not decode as a snapshot: {exc}"
            ) from exc

    def verify_chain(self) -> tuple[bool, int, str]:
        """
        Replay the revision chain from genesis, recomputing every hash.

        Returns:
            Tuple of (is_valid, revisions_verified, message).
        """
        with self.SessionLocal() as session:
            revisions = session.execute(
                select(SnapshotRevisionDB).order_by(SnapshotRevisionDB.sequence_number.asc())
            ).scalars().all()

            if not revisions:
                return False, 0, "No revisions found"

            first = revisions[0]
            if first.sequence_number != 0:
                return False, 0, f"First revision has sequence {first.sequence_number}, expected 0"

            if first.previous_hash != GENESIS_HASH:
                return False, 0, "Genesis revision has incorrect previous_hash"

            for i, revision in enumerate(revisions):
                expected_hash = self._compute_hash(
                    revision_id=revision.id,
                    sequence_number=revision.sequence_number,
                    previous_hash=revision.previous_hash,
                    timestamp=revision.timestamp,
                    operation=revision.operation,
                    content=revision.content,
                )

                if revision.revision_hash != expected_hash:
                    return (
                        False, i,
                        f"Hash mismatch at sequence {revision.sequence_number}: "
                        f"stored={revision.revision_hash[:16]}... "
                        f"computed={expected_hash[:16]}..."
                    )

                if i > 0 and revision.previous_hash != revisions[i - 1].revision_hash:
                    return (
                        False, i,
                        f"Chain break at sequence {revision.sequence_number}: "
                        f"previous_hash does not match prior revision's hash"
                    )

            return (
                True, len(revisions),
                f"Chain verified: {len(revisions)} revisions, integrity intact"
            )

    def get_revision(self, sequence_number: int) -> SnapshotRevisionDB | None:
        with self.SessionLocal() as session:
            return session.execute(
                select(SnapshotRevisionDB).where(
                    SnapshotRevisionDB.sequence_number == sequence_number
                )
            ).scalar_one_or_none()

    def get_latest_revisions(self, limit: int = 50) -> list[SnapshotRevisionDB]:
        """Most recent revisions first."""
        with self.SessionLocal() as session:
            return list(
                session.execute(
                    select(SnapshotRevisionDB)
                    .order_by(SnapshotRevisionDB.sequence_number.desc())
                    .limit(limit)
                ).scalars().all()
            )

    def get_revision_count(self) -> int:
        """Total revisions, genesis included."""
        with self.SessionLocal() as session:
            result = session.execute(
                select(func.count()).select_from(SnapshotRevisionDB)
            )
            return result.scalar() or 0

    # ── Internal ────────────────────────────────────────────────

    @staticmethod
    def _compute_hash(
        revision_id: UUID,
        sequence_number: int,
        previous_hash: str,
        timestamp: datetime,
        operation: str,
        content: dict[str, Any],
    ) -> str:
        """Hash = SHA-256(previous_hash || canonical_json(revision_fields))"""
        hashable = {
            "id": str(revision_id),
            "sequence_number": sequence_number,
            "previous_hash": previous_hash,
            "timestamp": _normalize_timestamp(timestamp).isoformat(),
            "operation": operation,
            "content": content,
        }
        canonical = json.dumps(hashable, sort_keys=True, default=str)
        return hashlib.sha256(
            (previous_hash + canonical).encode("utf-8")
        ).hexdigest()
