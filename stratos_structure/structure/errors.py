"""
Structure Errors — typed rule violations raised inside the engine.

Mutation commands catch these at their boundary and return them inside a
MutationResult, so a violation never leaves the tree half-mutated. Each error
names the violated rule through its ErrorKind.
"""

from __future__ import annotations

import enum


class ErrorKind(str, enum.Enum):
    """The rule a rejected command violated."""

    NOT_FOUND = "not_found"
    INVALID_PARENT_TYPE = "invalid_parent_type"
    INVALID_CHILD_TYPE = "invalid_child_type"
    CYCLE_DETECTED = "cycle_detected"
    INHERITANCE_CYCLE = "inheritance_cycle"
    CANNOT_DELETE_ROOT = "cannot_delete_root"
    ORPHAN_POLICY_VIOLATION = "orphan_policy_violation"
    DUPLICATE_ID = "duplicate_id"
    INVALID_ATTRIBUTE = "invalid_attribute"
    BSC_NOT_PERMITTED = "bsc_not_permitted"
    COMMIT_FAILED = "commit_failed"


class StructureError(Exception):
    """Base class for structural rule violations."""

    kind: ErrorKind = ErrorKind.INVALID_ATTRIBUTE

    def __init__(self, message: str, node_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.node_id = node_id

    def to_dict(self) -> dict[str, str | None]:
        return {"kind": self.kind.value, "message": self.message, "node_id": self.node_id}


class NodeNotFoundError(StructureError):
    kind = ErrorKind.NOT_FOUND


class InvalidParentTypeError(StructureError):
    kind = ErrorKind.INVALID_PARENT_TYPE


class InvalidChildTypeError(StructureError):
    kind = ErrorKind.INVALID_CHILD_TYPE


class CycleDetectedError(StructureError):
    kind = ErrorKind.CYCLE_DETECTED


class InheritanceCycleError(StructureError):
    """Raised when a BSC inheritance chain revisits a unit."""

    kind = ErrorKind.INHERITANCE_CYCLE


class CannotDeleteRootError(StructureError):
    kind = ErrorKind.CANNOT_DELETE_ROOT


class OrphanPolicyViolationError(StructureError):
    kind = ErrorKind.ORPHAN_POLICY_VIOLATION


class DuplicateIdError(StructureError):
    kind = ErrorKind.DUPLICATE_ID


class InvalidAttributeError(StructureError):
    kind = ErrorKind.INVALID_ATTRIBUTE


class BSCNotPermittedError(StructureError):
    kind = ErrorKind.BSC_NOT_PERMITTED


class CommitFailedError(StructureError):
    """A commit listener (e.g. the snapshot repository) refused the new snapshot."""

    kind = ErrorKind.COMMIT_FAILED


class ChainCycleError(Exception):
    """A pointer chain revisited a node; raised by walk_chain."""

    def __init__(self, node_id: str, path: list[str]) -> None:
        super().__init__(f"Chain revisits {node_id} after {' -> '.join(path)}")
        self.node_id = node_id
        self.path = path
