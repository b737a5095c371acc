"""projectbrain search / context / stats / clear — inspect project memory."""

from __future__ import annotations

import asyncio
import json
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table


def search_cmd(
    query: Annotated[str, typer.Argument(help="Search query")],
    project: Annotated[str, typer.Option("--project", "-P", help="Project id")],
    chat: Annotated[
        bool, typer.Option("--chat", help="Search chat history instead of documents")
    ] = False,
    limit: Annotated[int | None, typer.Option("--limit", "-k", help="Max results")] = None,
):
    """Search a project's documents or chat history."""
    from projectbrain.cli.app import is_json
    from projectbrain.services import build_services

    services = build_services()
    mcfg = services.settings.memory
    try:
        if chat:
            hits = asyncio.run(
                services.memory.search_chat(
                    query, project, limit=limit or mcfg.chat_limit, threshold=mcfg.threshold
                )
            )
        else:
            hits = asyncio.run(
                services.memory.search_documents(
                    query, project, limit=limit or mcfg.doc_limit, threshold=mcfg.threshold
                )
            )
    finally:
        services.close()

    if is_json():
        print(
            json.dumps(
                {"status": "ok", "results": [h.model_dump(mode="json") for h in hits]},
                indent=2,
            )
        )
        return

    console = Console()
    if not hits:
        console.print("[yellow]No results.[/yellow]")
        return

    table = Table(title=f"{len(hits)} result(s)", show_lines=True)
    table.add_column("Score", justify="right")
    if chat:
        table.add_column("Role")
        table.add_column("Message")
        for h in hits:
            table.add_row(f"{h.similarity:.2f}", h.role.value, h.content)
    else:
        table.add_column("Document")
        table.add_column("#", justify="right")
        table.add_column("Text")
        for h in hits:
            table.add_row(f"{h.similarity:.2f}", h.document_name, str(h.chunk_index), h.text)
    console.print(table)


def context_cmd(
    query: Annotated[str, typer.Argument(help="Query to build context for")],
    project: Annotated[str, typer.Option("--project", "-P", help="Project id")],
):
    """Show the memory context that would be given to the model."""
    from projectbrain.cli.app import is_json
    from projectbrain.services import build_services

    services = build_services()
    mcfg = services.settings.memory
    try:
        context = asyncio.run(
            services.memory.build_context(
                query,
                project,
                chat_limit=mcfg.context_chat_limit,
                doc_limit=mcfg.context_doc_limit,
                threshold=mcfg.threshold,
            )
        )
    finally:
        services.close()

    if is_json():
        print(json.dumps({"status": "ok", "context": context}, indent=2))
    elif context:
        Console().print(Panel(context.strip(), title="Project memory"))
    else:
        Console().print("[yellow]Nothing relevant in project memory.[/yellow]")


def stats_cmd(
    project: Annotated[str, typer.Option("--project", "-P", help="Project id")],
):
    """Show memory counts for a project."""
    from projectbrain.cli.app import is_json
    from projectbrain.services import build_services

    services = build_services()
    try:
        stats = services.memory.stats(project)
    finally:
        services.close()

    if is_json():
        print(json.dumps({"status": "ok", **stats.model_dump()}, indent=2))
        return

    table = Table(title=f"Project {project}")
    table.add_column("Metric", style="bold")
    table.add_column("Count", justify="right")
    table.add_row("Messages", str(stats.message_count))
    table.add_row("Documents", str(stats.document_count))
    table.add_row("Chunks", str(stats.chunk_count))
    table.add_row("Embedded chunks", str(stats.embedded_chunk_count))
    Console().print(table)


def clear_cmd(
    project: Annotated[str, typer.Option("--project", "-P", help="Project id")],
    yes: Annotated[bool, typer.Option("--yes", help="Confirm deletion")] = False,
):
    """Delete every chunk and message of a project.

    Requires --yes to proceed. Documents and their history are kept.
    """
    from projectbrain.services import build_services

    if not yes:
        typer.echo("Safety check failed.", err=True)
        typer.echo(
            f"To clear project memory, run:\n\n  projectbrain clear -P {project} --yes",
            err=True,
        )
        raise typer.Exit(code=1)

    services = build_services()
    try:
        services.memory.clear_project(project)
    finally:
        services.close()
    typer.echo(f"Project memory cleared for {project}.")
