"""
Structure Audit Tool — revision chain and snapshot integrity verification.

Connects directly to the database, recomputes every revision hash, validates
the latest snapshot and prints both trees.

Usage:
    python -m stratos_structure.persistence.audit
    python -m stratos_structure.persistence.audit --database-url sqlite:///other.db
    python -m stratos_structure.persistence.audit --verbose
"""

from __future__ import annotations

import argparse
import sys
import time

from rich.console import Console
from rich.table import Table
from rich.tree import Tree

from stratos_structure.config import settings
from stratos_structure.persistence.service import SnapshotIntegrityError, SnapshotRepository
from stratos_structure.runtime import configure_logging
from stratos_structure.structure.schema import NodeKind, StructureSnapshot
from stratos_structure.structure.tree import StructureView
from stratos_structure.structure.validation import validate_snapshot

console = Console()


def render_structure(snapshot: StructureSnapshot) -> Tree:
    """Both hierarchies as a rich Tree: entities, with each company's units beneath it."""
    view = StructureView(snapshot)
    config = snapshot.org_config
    root = Tree("[bold]Structure[/bold]")

    def add_units(branch: Tree, parent_id: str | None, company_id: str) -> None:
        for unit in view.children(NodeKind.ORG_UNIT, parent_id, company_id=company_id):
            marker = " [green]BSC[/green]" if unit.has_bsc else ""
            label = f"{unit.name} [dim]({config.level_name(unit.level)}){marker}[/dim]"
            add_units(branch.add(label), unit.id, company_id)

    def add_entities(branch: Tree, parent_id: str | None) -> None:
        for entity in view.children(NodeKind.CORPORATE_ENTITY, parent_id):
            label = (
                f"[cyan]{entity.name}[/cyan] "
                f"[dim]{entity.entity_type.value} · {entity.code}[/dim]"
            )
            child = branch.add(label)
            add_entities(child, entity.id)
            add_units(child, None, entity.id)

    add_entities(root, None)
    return root


def run_audit(database_url: str, verbose: bool = False) -> bool:
    """
    Run a full revision-chain and snapshot audit.

    Returns:
        True if the chain and the latest snapshot are valid, False otherwise.
    """
    console.print("\n[bold blue]═══ Structure Integrity Audit ═══[/bold blue]\n")

    repository = SnapshotRepository(database_url)

    count = repository.get_revision_count()
    console.print(f"  Revisions stored: [bold]{count}[/bold]")

    if count == 0:
        console.print("[yellow]⚠ No revisions stored, nothing to verify[/yellow]")
        return True

    console.print("  Verifying revision chain...", end=" ")
    start_time = time.time()

    is_valid, verified, message = repository.verify_chain()

    elapsed = time.time() - start_time

    if is_valid:
        console.print("[bold green]✓ VALID[/bold green]")
        console.print(f"  Revisions verified: [bold]{verified}[/bold]")
        console.print(f"  Verification time: {elapsed:.3f}s")
    else:
        console.print("[bold red]✗ INVALID[/bold red]")
        console.print(f"  Failure at revision: {verified}")
        console.print(f"  Reason: {message}")

    try:
        snapshot = repository.load_latest()
    except SnapshotIntegrityError as exc:
        console.print(f"[bold red]✗ Latest snapshot unreadable:[/bold red] {exc}")
        return False

    if snapshot is not None:
        report = validate_snapshot(snapshot)
        status = "[bold green]✓ VALID[/bold green]" if report.valid else "[bold red]✗ INVALID[/bold red]"
        console.print(f"  Latest snapshot: {status}")
        for error in report.errors:
            console.print(f"    [red]error[/red]   {error}")
        for warning in report.warnings:
            console.print(f"    [yellow]warning[/yellow] {warning}")
        is_valid = is_valid and report.valid

        console.print()
        console.print(render_structure(snapshot))

    if verbose:
        console.print("\n[bold]Revision Listing:[/bold]")
        table = Table(show_lines=True)
        table.add_column("Seq", style="cyan", width=6)
        table.add_column("Operation", style="green", width=22)
        table.add_column("Entities", width=9)
        table.add_column("Units", width=7)
        table.add_column("Hash (first 16)", style="dim", width=18)
        table.add_column("Timestamp", width=22)

        for revision in reversed(repository.get_latest_revisions(limit=count)):
            table.add_row(
                str(revision.sequence_number),
                revision.operation,
                str(revision.entity_count),
                str(revision.unit_count),
                revision.revision_hash[:16] + "...",
                str(revision.timestamp)[:19],
            )
        console.print(table)

    console.print("\n[bold blue]═══ Audit Complete ═══[/bold blue]\n")
    return is_valid


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Stratos structure revision and snapshot auditor"
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy connection string (defaults to .env settings)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show detailed revision listing",
    )
    args = parser.parse_args()

    configure_logging()
    db_url = args.database_url or settings.database_url
    is_valid = run_audit(db_url, verbose=args.verbose)
    sys.exit(0 if is_valid else 1)


if __name__ == "__main__":
    main()
