"""projectbrain ingest — upload files into a project's memory."""

from __future__ import annotations

import asyncio
import json
import mimetypes
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table


def _collect(paths: list[Path]) -> list[Path]:
    """Expand folders into the supported files they contain."""
    from projectbrain.ingest.normalizers import NORMALIZERS

    files: list[Path] = []
    for path in paths:
        resolved = path.resolve()
        if resolved.is_dir():
            files.extend(
                sorted(
                    p for p in resolved.rglob("*")
                    if p.is_file() and p.suffix.lower() in NORMALIZERS
                )
            )
        elif resolved.is_file():
            files.append(resolved)
        else:
            typer.echo(f"Path not found: {resolved}", err=True)
            raise typer.Exit(code=1)
    return files


def ingest_cmd(
    paths: Annotated[list[Path], typer.Argument(help="Files or folders to ingest")],
    project: Annotated[str, typer.Option("--project", "-P", help="Project id")],
):
    """Ingest files into a project's memory."""
    from projectbrain.cli.app import is_json
    from projectbrain.models import UploadedFile
    from projectbrain.services import build_services

    files = [
        UploadedFile(
            name=p.name,
            data=p.read_bytes(),
            content_type=mimetypes.guess_type(p.name)[0],
            url=p.as_uri(),
        )
        for p in _collect(paths)
    ]
    if not files:
        typer.echo("No supported files found.", err=True)
        raise typer.Exit(code=1)

    services = build_services()
    console = Console(stderr=True)

    def on_progress(processed: int, total: int) -> None:
        if not is_json():
            console.print(f"[dim]{processed}/{total} files processed[/dim]")

    try:
        report = asyncio.run(
            services.ingestion.ingest(files, project, on_progress=on_progress)
        )
    finally:
        services.close()

    if is_json():
        print(json.dumps({"status": "ok", **report.model_dump(mode="json")}, indent=2))
        return

    table = Table(title=f"Ingested {len(report.stored)}/{report.total} file(s)")
    table.add_column("File")
    table.add_column("Status")
    table.add_column("Chunks", justify="right")
    table.add_column("Detail")

    for item in report.stored:
        table.add_row(item.file_name, "[green]stored[/green]", str(item.chunks_stored), "")
    for item in report.skipped:
        table.add_row(item.file_name, "[yellow]duplicate[/yellow]", "-", "")
    for item in report.failed:
        table.add_row(item.file_name, "[red]failed[/red]", "-", item.error or "")

    Console().print(table)
    if report.failed:
        raise typer.Exit(code=1)
