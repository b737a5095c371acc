"""projectbrain control / apply — propose and apply document revisions."""

from __future__ import annotations

import asyncio
import json
import mimetypes
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table


def _load_changes(path: Path) -> list:
    """Read changes from a saved analysis or a bare list of changes."""
    from projectbrain.models import ProposedChange

    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        items = [
            change
            for doc in data.get("affectedDocuments", [])
            for change in doc.get("changes", [])
        ]
    else:
        items = data
    return [ProposedChange.model_validate(item) for item in items]


def control_cmd(
    file: Annotated[Path, typer.Argument(help="New document to analyze")],
    project: Annotated[str, typer.Option("--project", "-P", help="Project id")],
    out: Annotated[
        Path | None, typer.Option("--out", "-o", help="Write the analysis JSON here")
    ] = None,
):
    """Propose evidence-backed edits to project documents from a new document."""
    from projectbrain.cli.app import is_json
    from projectbrain.models import UploadedFile
    from projectbrain.services import build_services

    resolved = file.resolve()
    if not resolved.is_file():
        typer.echo(f"File not found: {resolved}", err=True)
        raise typer.Exit(code=1)

    upload = UploadedFile(
        name=resolved.name,
        data=resolved.read_bytes(),
        content_type=mimetypes.guess_type(resolved.name)[0],
        url=resolved.as_uri(),
    )

    console = Console(stderr=True)

    def on_progress(event) -> None:
        if not is_json():
            console.print(f"[dim][{event.progress_percent:>3}%] {event.message}[/dim]")

    services = build_services()
    try:
        analysis = asyncio.run(
            services.control.run_control_analysis(upload, project, on_progress=on_progress)
        )
    finally:
        services.close()

    payload = analysis.model_dump(mode="json", by_alias=True)
    if out:
        out.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    if is_json():
        print(json.dumps(payload, indent=2))
        if not analysis.success:
            raise typer.Exit(code=1)
        return

    console = Console()
    if not analysis.success:
        console.print(f"[red]Analysis failed:[/red] {analysis.error}")
        raise typer.Exit(code=1)
    if analysis.no_matches:
        console.print(f"[yellow]{analysis.message}[/yellow]")
        return

    s = analysis.summary
    console.print(
        Panel(
            f"{s.total_changes} change(s) across {s.total_documents} document(s)\n"
            f"{s.high_confidence_changes} high confidence, "
            f"{s.low_confidence_changes} low confidence",
            title=resolved.name,
        )
    )
    for doc in analysis.affected_documents:
        table = Table(
            title=f"{doc.document_title} (avg confidence {doc.overall_confidence:.2f})",
            show_lines=True,
        )
        table.add_column("Id")
        table.add_column("Original")
        table.add_column("Proposed")
        table.add_column("Evidence")
        table.add_column("Score", justify="right")
        for c in doc.changes:
            table.add_row(
                c.id,
                c.original_text,
                c.proposed_text,
                c.evidence.source_quote,
                f"{c.evidence.confidence.overall:.2f} ({c.evidence.tier.value})",
            )
        console.print(table)
    if out:
        console.print(
            f"\nSaved to {out}. Set status to \"approved\" on the changes to keep, then run:\n"
            f"  projectbrain apply {out} -P {project} --user <you>"
        )


def apply_cmd(
    changes_file: Annotated[Path, typer.Argument(help="Analysis or changes JSON file")],
    project: Annotated[str, typer.Option("--project", "-P", help="Project id")],
    user: Annotated[str, typer.Option("--user", help="Approving user id")],
    approve_all: Annotated[
        bool, typer.Option("--approve-all", help="Treat every pending change as approved")
    ] = False,
    notes: Annotated[
        str | None, typer.Option("--notes", "-m", help="Change notes for version history")
    ] = None,
):
    """Apply approved changes and re-index the edited documents."""
    from projectbrain.cli.app import is_json
    from projectbrain.models import ChangeStatus
    from projectbrain.services import build_services

    changes = _load_changes(changes_file)
    if approve_all:
        for change in changes:
            if change.status == ChangeStatus.PENDING:
                change.status = ChangeStatus.APPROVED

    services = build_services()
    try:
        report = asyncio.run(
            services.control.apply_approved_changes(changes, user, project, change_notes=notes)
        )
    finally:
        services.close()

    if is_json():
        print(json.dumps(report.model_dump(mode="json", by_alias=True), indent=2))
        if not report.success:
            raise typer.Exit(code=1)
        return

    console = Console()
    if report.error:
        console.print(f"[red]{report.error}[/red]")
        raise typer.Exit(code=1)

    table = Table(title=f"Applied {report.total_applied} change(s)", show_lines=True)
    table.add_column("Document")
    table.add_column("Status")
    table.add_column("Version")
    table.add_column("Applied", justify="right")
    table.add_column("Failures")
    for r in report.results:
        status = "[green]updated[/green]" if r.success else "[red]failed[/red]"
        failures = "\n".join(f"{f.change_id}: {f.error}" for f in r.failures)
        table.add_row(
            r.document_title or r.document_id,
            status,
            r.new_version or "-",
            str(r.changes_applied),
            failures or r.error or "",
        )
    console.print(table)
    if not report.success:
        raise typer.Exit(code=1)
