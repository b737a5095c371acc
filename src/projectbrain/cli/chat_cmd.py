"""projectbrain ask — ask questions against a project's memory."""

from __future__ import annotations

import asyncio
import json
from typing import Annotated

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel


def ask_cmd(
    query: Annotated[str, typer.Argument(help="Question to ask")],
    project: Annotated[str, typer.Option("--project", "-P", help="Project id")],
    session: Annotated[
        str | None, typer.Option("--session", "-s", help="Chat session id")
    ] = None,
    user: Annotated[str | None, typer.Option("--user", help="Asking user id")] = None,
    show_context: Annotated[
        bool, typer.Option("--show-context", help="Print the memory context used")
    ] = False,
):
    """Ask a question against a project's memory."""
    from projectbrain.cli.app import is_json
    from projectbrain.services import build_services

    services = build_services()
    try:
        result = asyncio.run(
            services.chat.ask(query, project, session_id=session, user_id=user)
        )
    finally:
        services.close()

    if is_json():
        print(json.dumps({"status": "ok", **result.model_dump()}, indent=2))
        return

    console = Console()
    if show_context and result.context:
        console.print(Panel(result.context.strip(), title="Project memory", border_style="dim"))
    console.print(Panel(Markdown(result.answer), title="Answer", border_style="green"))
