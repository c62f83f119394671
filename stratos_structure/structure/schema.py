"""
Structure Schema — Pydantic models for the corporate and organizational trees.

These models are the canonical data structures exchanged between the engine
and its collaborators: the two hierarchies, the per-deployment hierarchy
configuration, users and their role assignments, and the snapshot that bundles
them for persistence.

Two trees are modelled:
    Corporate tree     — corporation → holding → company (legal ownership)
    Organizational tree — directorate → division → department → section,
                          scoped to exactly one operating company
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_id(prefix: str) -> str:
    """Generate a node/record identifier such as ``entity-3f9a1c0b72de``."""
    return f"{prefix}-{uuid4().hex[:12]}"


def default_code(name: str) -> str:
    """Derive a short code from a name: first ten characters, upper-cased, no whitespace."""
    return "".join(name[:10].upper().split())


# ════════════════════════════════════════════════════════════════
# Enumerations
# ════════════════════════════════════════════════════════════════


class NodeKind(str, enum.Enum):
    """Which of the two hierarchies a node lives in."""

    CORPORATE_ENTITY = "corporate_entity"
    ORG_UNIT = "org_unit"


class CorporateEntityType(str, enum.Enum):
    """Legal entity types in the corporate tree."""

    CORPORATION = "corporation"
    HOLDING = "holding"
    COMPANY = "company"


class BSCScope(str, enum.Enum):
    """How a corporate entity's balanced scorecard is calculated."""

    CONSOLIDATED = "consolidated"  # Rolls up metrics from all children
    STANDALONE = "standalone"  # Tracks only its own metrics
    NONE = "none"


class OrgLevel(str, enum.Enum):
    """Fixed four-level organizational taxonomy within a company."""

    DIRECTORATE = "directorate"
    DIVISION = "division"
    DEPARTMENT = "department"
    SECTION = "section"


class Role(str, enum.Enum):
    """Access roles, totally ordered by ROLE_WEIGHT."""

    ADMIN = "admin"
    EDITOR = "editor"
    VIEWER = "viewer"


class OrphanPolicy(str, enum.Enum):
    """What happens to the children of a deleted node."""

    REPARENT_CHILDREN_TO_GRANDPARENT = "reparent_children_to_grandparent"
    REJECT_IF_HAS_CHILDREN = "reject_if_has_children"
    CASCADE = "cascade"


class DropPosition(str, enum.Enum):
    """Drop positions produced by tree editors."""

    BEFORE = "before"
    AFTER = "after"
    CHILD = "child"


# ════════════════════════════════════════════════════════════════
# Adjacency Tables
# ════════════════════════════════════════════════════════════════

# Corporations are root-only; every other type names its legal parent types.
LEGAL_PARENT_TYPES: dict[CorporateEntityType, frozenset[CorporateEntityType]] = {
    CorporateEntityType.CORPORATION: frozenset(),
    CorporateEntityType.HOLDING: frozenset(
        {CorporateEntityType.CORPORATION, CorporateEntityType.HOLDING}
    ),
    CorporateEntityType.COMPANY: frozenset(
        {CorporateEntityType.HOLDING, CorporateEntityType.CORPORATION}
    ),
}

ORG_LEVEL_ORDER: dict[OrgLevel, int] = {
    OrgLevel.DIRECTORATE: 1,
    OrgLevel.DIVISION: 2,
    OrgLevel.DEPARTMENT: 3,
    OrgLevel.SECTION: 4,
}

# Levels that are operational only
LEVELS_WITHOUT_BSC: frozenset[OrgLevel] = frozenset({OrgLevel.SECTION})

ROLE_WEIGHT: dict[Role, int] = {
    Role.ADMIN: 3,
    Role.EDITOR: 2,
    Role.VIEWER: 1,
}


def legal_child_types(parent_type: CorporateEntityType) -> frozenset[CorporateEntityType]:
    """Corporate entity types that may sit directly under ``parent_type``."""
    return frozenset(
        child for child, parents in LEGAL_PARENT_TYPES.items() if parent_type in parents
    )


def child_level(level: OrgLevel) -> OrgLevel | None:
    """The level directly below ``level``, or None for sections."""
    order = ORG_LEVEL_ORDER[level]
    return next((lv for lv, o in ORG_LEVEL_ORDER.items() if o == order + 1), None)


def parent_level(level: OrgLevel) -> OrgLevel | None:
    """The level directly above ``level``, or None for directorates."""
    order = ORG_LEVEL_ORDER[level]
    return next((lv for lv, o in ORG_LEVEL_ORDER.items() if o == order - 1), None)


def role_weight(role: Role | None) -> int:
    """Privilege weight for comparison; None weighs nothing."""
    if role is None:
        return 0
    return ROLE_WEIGHT[role]


# ════════════════════════════════════════════════════════════════
# Hierarchy Configuration
# ════════════════════════════════════════════════════════════════


class OrgHierarchyConfig(BaseModel):
    """Per-deployment organizational hierarchy configuration."""

    level_names: dict[OrgLevel, str] = Field(
        default_factory=lambda: {
            OrgLevel.DIRECTORATE: "Directorate",
            OrgLevel.DIVISION: "Division",
            OrgLevel.DEPARTMENT: "Department",
            OrgLevel.SECTION: "Section",
        },
        description="Display label per level",
    )
    levels_with_bsc: list[OrgLevel] = Field(
        default_factory=lambda: [
            OrgLevel.DIRECTORATE,
            OrgLevel.DIVISION,
            OrgLevel.DEPARTMENT,
        ],
        description="Levels permitted to own a balanced scorecard",
    )
    default_bsc_level: OrgLevel = OrgLevel.DIRECTORATE

    @field_validator("levels_with_bsc")
    @classmethod
    def _normalize_bsc_levels(cls, levels: list[OrgLevel]) -> list[OrgLevel]:
        # Directorate always owns a BSC; sections never do.
        allowed = {lv for lv in levels if lv not in LEVELS_WITHOUT_BSC}
        allowed.add(OrgLevel.DIRECTORATE)
        return sorted(allowed, key=ORG_LEVEL_ORDER.__getitem__)

    def level_can_have_bsc(self, level: OrgLevel) -> bool:
        return level in self.levels_with_bsc

    def level_name(self, level: OrgLevel) -> str:
        return self.level_names.get(level, level.value.title())


class CorporateHierarchyConfig(BaseModel):
    """Customizable corporate level names and reporting defaults."""

    level_names: dict[CorporateEntityType, str] = Field(
        default_factory=lambda: {
            CorporateEntityType.CORPORATION: "Corporation",
            CorporateEntityType.HOLDING: "Holding Company",
            CorporateEntityType.COMPANY: "Operating Company",
        },
    )
    enable_ownership_tracking: bool = True
    default_currency: str = "USD"
    consolidated_reporting: bool = True


# ════════════════════════════════════════════════════════════════
# Tree Nodes
# ════════════════════════════════════════════════════════════════


class CorporateEntity(BaseModel):
    """A node in the legal-ownership tree."""

    id: str = Field(default_factory=lambda: generate_id("entity"))
    name: str
    code: str = ""
    entity_type: CorporateEntityType
    parent_entity_id: str | None = Field(
        default=None, description="None only for root corporations"
    )
    ownership_percentage: float = Field(default=100.0, ge=0, le=100)
    description: str = ""
    currency: str = "USD"
    display_order: int = Field(default=0, ge=0)
    has_bsc: bool = True
    bsc_scope: BSCScope = BSCScope.CONSOLIDATED
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _fill_code(self) -> CorporateEntity:
        if not self.code:
            self.code = default_code(self.name)
        return self

    @property
    def parent_id(self) -> str | None:
        return self.parent_entity_id


class OrgUnit(BaseModel):
    """A node in a company's operational tree."""

    id: str = Field(default_factory=lambda: generate_id("org"))
    name: str
    code: str = ""
    level: OrgLevel
    company_id: str = Field(description="Owning corporate entity of type company")
    parent_id: str | None = Field(
        default=None, description="None only for top-level directorates"
    )
    description: str = ""
    head_id: str | None = None
    display_order: int = Field(default=0, ge=0)
    has_bsc: bool = True
    inherit_bsc_from_id: str | None = Field(
        default=None, description="Explicit BSC inheritance override"
    )
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _fill_code(self) -> OrgUnit:
        if not self.code:
            self.code = default_code(self.name)
        return self


# ════════════════════════════════════════════════════════════════
# Users & Role Assignments
# ════════════════════════════════════════════════════════════════


class Permissions(BaseModel):
    """Capability flags granted by a role."""

    model_config = {"frozen": True}

    can_manage_structure: bool = False
    can_edit_bsc: bool = False
    can_manage_portfolio: bool = False
    can_manage_tasks: bool = False
    can_import_export: bool = False
    can_manage_users: bool = False
    can_view_reports: bool = False
    can_configure_settings: bool = False


class RoleInfo(BaseModel):
    """Display information for a role."""

    role: Role
    label: str
    description: str
    color: str


class User(BaseModel):
    """A subject that may hold role assignments."""

    id: str = Field(default_factory=lambda: generate_id("user"))
    email: str
    display_name: str
    avatar_initials: str = ""
    is_system_admin: bool = False
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _fill_initials(self) -> User:
        if not self.avatar_initials:
            parts = self.display_name.split()
            self.avatar_initials = "".join(p[0] for p in parts)[:2].upper()
        return self


class UserEntityAssignment(BaseModel):
    """
    A role granted to a user, scoped to a corporate entity, an org unit,
    or neither (global).
    """

    id: str = Field(default_factory=lambda: generate_id("assign"))
    user_id: str
    role: Role
    corporate_entity_id: str | None = None
    org_unit_id: str | None = None
    inherit_to_children: bool = Field(
        default=True, description="Role cascades to all descendants of the scope"
    )
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _single_scope(self) -> UserEntityAssignment:
        if self.corporate_entity_id is not None and self.org_unit_id is not None:
            raise ValueError(
                "An assignment is scoped to a corporate entity or an org unit, not both"
            )
        return self

    @property
    def is_global(self) -> bool:
        return self.corporate_entity_id is None and self.org_unit_id is None


# ════════════════════════════════════════════════════════════════
# Snapshot
# ════════════════════════════════════════════════════════════════


class StructureSnapshot(BaseModel):
    """
    The full in-memory state exchanged with the persistence collaborator.

    Loaded at startup and written back after each committed mutation.
    """

    corporate_entities: list[CorporateEntity] = Field(default_factory=list)
    org_units: list[OrgUnit] = Field(default_factory=list)
    users: list[User] = Field(default_factory=list)
    assignments: list[UserEntityAssignment] = Field(default_factory=list)
    org_config: OrgHierarchyConfig = Field(default_factory=OrgHierarchyConfig)
    corporate_config: CorporateHierarchyConfig = Field(
        default_factory=CorporateHierarchyConfig
    )


# ════════════════════════════════════════════════════════════════
# Factories
# ════════════════════════════════════════════════════════════════


def create_corporate_entity(
    name: str,
    entity_type: CorporateEntityType,
    **attrs,
) -> CorporateEntity:
    """Create a corporate entity, defaulting the BSC scope by type."""
    if "bsc_scope" not in attrs:
        attrs["bsc_scope"] = (
            BSCScope.STANDALONE
            if entity_type == CorporateEntityType.COMPANY
            else BSCScope.CONSOLIDATED
        )
    return CorporateEntity(name=name, entity_type=entity_type, **attrs)


def create_org_unit(
    name: str,
    level: OrgLevel,
    company_id: str,
    config: OrgHierarchyConfig | None = None,
    **attrs,
) -> OrgUnit:
    """Create an org unit; ``has_bsc`` is forced off where the level may not own a BSC."""
    config = config or OrgHierarchyConfig()
    if not config.level_can_have_bsc(level):
        attrs["has_bsc"] = False
    return OrgUnit(name=name, level=level, company_id=company_id, **attrs)


def create_user(email: str, display_name: str, **attrs) -> User:
    return User(email=email, display_name=display_name, **attrs)


def create_assignment(user_id: str, role: Role, **attrs) -> UserEntityAssignment:
    return UserEntityAssignment(user_id=user_id, role=role, **attrs)


# ════════════════════════════════════════════════════════════════
# Defaults
# ════════════════════════════════════════════════════════════════

DEFAULT_PERMISSIONS: dict[Role, Permissions] = {
    Role.ADMIN: Permissions(
        can_manage_structure=True,
        can_edit_bsc=True,
        can_manage_portfolio=True,
        can_manage_tasks=True,
        can_import_export=True,
        can_manage_users=True,
        can_view_reports=True,
        can_configure_settings=True,
    ),
    Role.EDITOR: Permissions(
        can_edit_bsc=True,
        can_manage_portfolio=True,
        can_manage_tasks=True,
        can_import_export=True,
        can_view_reports=True,
    ),
    Role.VIEWER: Permissions(
        can_view_reports=True,
    ),
}

ROLE_INFO: dict[Role, RoleInfo] = {
    Role.ADMIN: RoleInfo(
        role=Role.ADMIN,
        label="Administrator",
        description="Full access to manage structure, BSC, portfolio, and users",
        color="#ef4444",
    ),
    Role.EDITOR: RoleInfo(
        role=Role.EDITOR,
        label="Editor",
        description="Can edit BSC, portfolio, and tasks but cannot manage structure",
        color="#f59e0b",
    ),
    Role.VIEWER: RoleInfo(
        role=Role.VIEWER,
        label="Viewer",
        description="Read-only access to view reports and dashboards",
        color="#22c55e",
    ),
}

DEFAULT_ROOT_ID = "corp-root"
DEFAULT_COMPANY_ID = "company-default"
DEFAULT_ADMIN_USER_ID = "user-admin"


def default_admin_user() -> User:
    return User(
        id=DEFAULT_ADMIN_USER_ID,
        email="admin@example.com",
        display_name="System Admin",
        is_system_admin=True,
    )


def default_admin_assignment() -> UserEntityAssignment:
    return UserEntityAssignment(
        id="assign-admin-root",
        user_id=DEFAULT_ADMIN_USER_ID,
        corporate_entity_id=DEFAULT_ROOT_ID,
        role=Role.ADMIN,
        inherit_to_children=True,
    )
