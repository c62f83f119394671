"""
Stratos Structure — HTTP API for the structure engine.

FastAPI application providing:
- Structure commands (add, rename, update, delete, reparent, drag-and-drop move)
- Structure queries (children, ancestors, descendants, siblings, companies)
- BSC ownership resolution
- Role and permission resolution

Roles are computed here, never enforced: callers decide what to do with them.
"""

from __future__ import annotations

import html
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel

from stratos_structure.config import settings
from stratos_structure.governance.authority import permissions_for
from stratos_structure.governance.inheritance import bsc_chain
from stratos_structure.runtime import configure_logging
from stratos_structure.service import StructureService, build_service
from stratos_structure.structure.errors import (
    ErrorKind,
    InheritanceCycleError,
    StructureError,
)
from stratos_structure.structure.mutations import DropTarget, MutationResult
from stratos_structure.structure.schema import (
    ROLE_INFO,
    DropPosition,
    NodeKind,
    OrgLevel,
    OrphanPolicy,
    Role,
    User,
)
from stratos_structure.structure.validation import validate_snapshot

logger = logging.getLogger(__name__)


# ── Pydantic request / response models ────────────────────────


class AddNodeRequest(BaseModel):
    kind: NodeKind
    attrs: dict[str, Any]
    parent_id: str | None = None


class RenameRequest(BaseModel):
    name: str


class UpdateRequest(BaseModel):
    attrs: dict[str, Any]


class ReparentRequest(BaseModel):
    new_parent_id: str | None = None
    insert_index: int | None = None


class MoveRequest(BaseModel):
    target_id: str
    position: DropPosition = DropPosition.CHILD


class GrantRequest(BaseModel):
    user_id: str
    role: Role
    corporate_entity_id: str | None = None
    org_unit_id: str | None = None
    inherit_to_children: bool = True


class DashboardState:
    """Mutable application state injected at startup."""

    def __init__(self) -> None:
        self.service: StructureService | None = None
        self.startup_time: datetime = datetime.now(timezone.utc)


state = DashboardState()


# ── Application lifecycle ──────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup & shutdown lifecycle."""
    configure_logging()
    if state.service is None:
        state.service = build_service(settings)
    logger.info(
        "Structure API ready: %d entities, %d units",
        len(state.service.store.snapshot.corporate_entities),
        len(state.service.store.snapshot.org_units),
    )
    yield
    logger.info("Structure API shut down")


app = FastAPI(
    title="Stratos — Structure Engine",
    description="Corporate and organizational hierarchy engine",
    version="0.1.0",
    lifespan=lifespan,
)


# ── Helpers ────────────────────────────────────────────────────


def _service() -> StructureService:
    if state.service is None:
        raise HTTPException(status_code=503, detail="Structure service not initialized")
    return state.service


def _error_response(error: StructureError) -> HTTPException:
    if error.kind == ErrorKind.NOT_FOUND:
        status = 404
    elif error.kind == ErrorKind.COMMIT_FAILED:
        status = 503
    else:
        status = 409
    return HTTPException(status_code=status, detail=error.to_dict())


def _result(result: MutationResult) -> dict[str, Any]:
    if not result.ok:
        raise _error_response(result.error)
    node = result.node
    return {
        "operation": result.operation,
        "changed_ids": result.changed_ids,
        "node": node.model_dump(mode="json") if isinstance(node, BaseModel) else None,
    }


def _dump(nodes) -> list[dict[str, Any]]:
    return [n.model_dump(mode="json") for n in nodes]


def _require_node(node_id: str):
    node = _service().queries().get(node_id)
    if node is None:
        raise HTTPException(
            status_code=404,
            detail={"kind": ErrorKind.NOT_FOUND.value, "message": f"Node {node_id} not found",
                    "node_id": node_id},
        )
    return node


# ── Routes: Overview ───────────────────────────────────────────


@app.get("/", response_class=HTMLResponse)
async def overview():
    """Plain overview of both hierarchies."""
    queries = _service().queries()
    rows = []
    for company in queries.all_companies():
        units = queries.units_for_company(company.id)
        rows.append(
            f"<tr><td>{html.escape(company.name)}</td><td>{html.escape(company.code)}</td>"
            f"<td>{len(units)}</td></tr>"
        )
    body = "".join(rows) or '<tr><td colspan="3">No companies</td></tr>'
    return HTMLResponse(f"""<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"><title>Structure — Stratos</title></head>
<body>
    <h1>Companies</h1>
    <table>
        <tr><th>Company</th><th>Code</th><th>Org units</th></tr>
        {body}
    </table>
</body>
</html>""")


# ── Routes: Structure ──────────────────────────────────────────


@app.get("/api/structure")
async def api_structure():
    """API: Full current snapshot."""
    service = _service()
    return JSONResponse({
        "revision": service.store.revision,
        "snapshot": service.store.snapshot.model_dump(mode="json"),
    })


@app.get("/api/structure/validation")
async def api_validation():
    report = validate_snapshot(_service().store.snapshot)
    return {"valid": report.valid, "errors": report.errors, "warnings": report.warnings}


# ── Routes: Commands ───────────────────────────────────────────


@app.post("/api/nodes", status_code=201)
async def api_add_node(request: AddNodeRequest):
    result = _service().engine.add_node(request.kind, request.attrs, request.parent_id)
    return _result(result)


@app.get("/api/nodes/{node_id}")
async def api_get_node(node_id: str):
    return _require_node(node_id).model_dump(mode="json")


@app.post("/api/nodes/{node_id}/rename")
async def api_rename_node(node_id: str, request: RenameRequest):
    return _result(_service().engine.rename_node(node_id, request.name))


@app.patch("/api/nodes/{node_id}")
async def api_update_node(node_id: str, request: UpdateRequest):
    return _result(_service().engine.update_attributes(node_id, request.attrs))


@app.delete("/api/nodes/{node_id}")
async def api_delete_node(
    node_id: str,
    orphan_policy: OrphanPolicy | None = None,
    reassign_org_units_to: str | None = None,
):
    result = _service().engine.delete_node(node_id, orphan_policy, reassign_org_units_to)
    return _result(result)


@app.post("/api/nodes/{node_id}/reparent")
async def api_reparent(node_id: str, request: ReparentRequest):
    result = _service().engine.reparent(node_id, request.new_parent_id, request.insert_index)
    return _result(result)


@app.post("/api/nodes/{node_id}/move")
async def api_move(node_id: str, request: MoveRequest):
    """API: Apply a drag-and-drop gesture."""
    result = _service().engine.move(node_id, DropTarget(request.target_id, request.position))
    return _result(result)


# ── Routes: Queries ────────────────────────────────────────────


@app.get("/api/nodes/{node_id}/children")
async def api_children(node_id: str, include_inactive: bool = False):
    _require_node(node_id)
    return _dump(_service().queries().children_of(node_id, include_inactive=include_inactive))


@app.get("/api/nodes/{node_id}/ancestors")
async def api_ancestors(node_id: str):
    _require_node(node_id)
    return _dump(_service().queries().ancestors_of(node_id))


@app.get("/api/nodes/{node_id}/descendants")
async def api_descendants(node_id: str, include_inactive: bool = False):
    _require_node(node_id)
    return _dump(
        _service().queries().descendants_of(node_id, include_inactive=include_inactive)
    )


@app.get("/api/nodes/{node_id}/siblings")
async def api_siblings(node_id: str, include_inactive: bool = False):
    _require_node(node_id)
    return _dump(_service().queries().siblings_of(node_id, include_inactive=include_inactive))


@app.get("/api/companies")
async def api_companies():
    return _dump(_service().queries().all_companies())


@app.get("/api/companies/{company_id}/units")
async def api_company_units(company_id: str):
    _require_node(company_id)
    return _dump(_service().queries().units_for_company(company_id))


@app.get("/api/levels/{level}/units")
async def api_units_at_level(level: OrgLevel, company_id: str | None = None):
    return _dump(_service().queries().units_at_level(level, company_id))


# ── Routes: Resolution ─────────────────────────────────────────


@app.get("/api/bsc-owner/{unit_id}")
async def api_bsc_owner(unit_id: str):
    """API: Which unit's balanced scorecard applies to ``unit_id``."""
    service = _service()
    if service.queries().get(unit_id, NodeKind.ORG_UNIT) is None:
        raise HTTPException(
            status_code=404,
            detail={"kind": ErrorKind.NOT_FOUND.value, "message": f"Unit {unit_id} not found",
                    "node_id": unit_id},
        )
    try:
        owner = service.bsc_owner(unit_id)
        chain = bsc_chain(service.store.view(), unit_id)
    except InheritanceCycleError as exc:
        raise _error_response(exc)
    return {
        "unit_id": unit_id,
        "owner": owner.model_dump(mode="json") if owner is not None else None,
        "chain": [u.id for u in chain],
        "needs_setup": owner is None,
    }


@app.get("/api/users/{user_id}/role")
async def api_user_role(
    user_id: str,
    corporate_entity_id: str | None = None,
    org_unit_id: str | None = None,
):
    """API: Effective role of a user at a scope, and where it came from."""
    resolution = _service().authority().resolve(user_id, corporate_entity_id, org_unit_id)
    return {
        "user_id": user_id,
        "role": resolution.role.value,
        "source": resolution.source.value,
        "assignment_id": resolution.assignment_id,
        "permissions": permissions_for(resolution.role).model_dump(),
    }


@app.get("/api/roles/{role}/permissions")
async def api_role_permissions(role: Role):
    return {
        "role": role.value,
        "info": ROLE_INFO[role].model_dump(mode="json"),
        "permissions": permissions_for(role).model_dump(),
    }


# ── Routes: Users & Assignments ────────────────────────────────


@app.post("/api/users", status_code=201)
async def api_add_user(user: User):
    return _result(_service().engine.add_user(user))


@app.post("/api/assignments", status_code=201)
async def api_grant_role(request: GrantRequest):
    result = _service().engine.grant_role(
        request.user_id,
        request.role,
        corporate_entity_id=request.corporate_entity_id,
        org_unit_id=request.org_unit_id,
        inherit_to_children=request.inherit_to_children,
    )
    return _result(result)


@app.delete("/api/assignments/{assignment_id}")
async def api_revoke_assignment(assignment_id: str):
    return _result(_service().engine.revoke_assignment(assignment_id))


# ── Health ─────────────────────────────────────────────────────


@app.get("/health")
async def health():
    service = state.service
    return {
        "status": "ok" if service is not None else "starting",
        "revision": service.store.revision if service is not None else None,
        "uptime_seconds": int((datetime.now(timezone.utc) - state.startup_time).total_seconds()),
    }


def main() -> None:
    import uvicorn

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
