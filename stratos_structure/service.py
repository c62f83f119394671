"""
Structure Service — wires the store, engine, resolvers and persistence.

The HTTP app and tests talk to one StructureService. Resolvers and the query
facade are built per call over the current committed snapshot.
"""

from __future__ import annotations

import logging

from stratos_structure.config import StructureSettings, settings as default_settings
from stratos_structure.governance.authority import AuthorityResolver
from stratos_structure.governance.inheritance import resolve_bsc_owner, units_sharing_bsc
from stratos_structure.persistence.service import SnapshotRepository
from stratos_structure.structure.errors import StructureError
from stratos_structure.structure.migration import generate_example_structure
from stratos_structure.structure.mutations import MutationEngine
from stratos_structure.structure.queries import StructureQueries
from stratos_structure.structure.schema import OrgUnit, StructureSnapshot
from stratos_structure.structure.tree import TreeStore
from stratos_structure.structure.validation import validate_snapshot

logger = logging.getLogger(__name__)


class StructureService:
    """
    One deployment's structure state and the operations over it.

    Usage:
        service = build_service()
        service.engine.reparent("company-canada", "holding-eu")
        owner = service.bsc_owner("org-react")
        role = service.authority().effective_role("user-42", org_unit_id="org-eng")
    """

    def __init__(
        self,
        store: TreeStore,
        engine: MutationEngine,
        repository: SnapshotRepository | None = None,
    ) -> None:
        self.store = store
        self.engine = engine
        self.repository = repository
        if repository is not None:
            engine.subscribe(repository.on_commit)

    def queries(self) -> StructureQueries:
        return StructureQueries(self.store.view())

    def authority(self) -> AuthorityResolver:
        return AuthorityResolver(self.store.view())

    def bsc_owner(self, org_unit_id: str) -> OrgUnit | None:
        return resolve_bsc_owner(self.store.view(), org_unit_id)

    def units_sharing_bsc(self, owner_id: str) -> list[OrgUnit]:
        return units_sharing_bsc(self.store.view(), owner_id)

    def load(self, snapshot: StructureSnapshot, persist: bool = False) -> None:
        """
        Replace the current state after validating it.

        Raises:
            StructureError: If the snapshot fails validation.
        """
        report = validate_snapshot(snapshot)
        for warning in report.warnings:
            logger.warning("Loaded snapshot: %s", warning)
        if not report.valid:
            raise StructureError("; ".join(report.errors))
        self.store.load(snapshot)
        if persist and self.repository is not None:
            self.repository.save(snapshot, operation="load")


def build_service(
    config: StructureSettings | None = None,
    persist: bool = True,
) -> StructureService:
    """
    Build a StructureService from settings.

    With ``persist`` the latest stored snapshot is loaded and every commit is
    saved as a new revision. An empty database is seeded with the example
    structure when ``seed_example_structure`` is set.
    """
    config = config or default_settings
    store = TreeStore()
    engine = MutationEngine(
        store,
        default_orphan_policy=config.default_orphan_policy,
        protect_last_root=config.protect_last_root,
    )

    repository = None
    if persist:
        repository = SnapshotRepository(config.database_url)
        repository.initialize()

    service = StructureService(store, engine, repository)

    snapshot = repository.load_latest() if repository is not None else None
    if snapshot is not None:
        service.load(snapshot)
    elif config.seed_example_structure:
        logger.info("Seeding example structure")
        service.load(generate_example_structure(), persist=True)

    return service
