"""projectbrain CLI — Typer entrypoint with global options."""

from __future__ import annotations

import logging
import os
from typing import Annotated, Optional

import typer

app = typer.Typer(
    name="projectbrain",
    help="Project memory and document control — ingest, search, ask, revise.",
    no_args_is_help=True,
)

# Global state shared across subcommands
_state: dict = {"json": False}


def is_json() -> bool:
    """Check if --json output mode is active."""
    return _state["json"]


@app.callback()
def main(
    json_output: Annotated[
        bool, typer.Option("--json", help="Output as JSON (agent-friendly)")
    ] = False,
    profile: Annotated[
        Optional[str], typer.Option("--profile", help="Override active LLM profile")
    ] = None,
    root: Annotated[
        Optional[str], typer.Option("--root", help="Override project root directory")
    ] = None,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Enable debug logging")
    ] = False,
):
    """Global options applied before any subcommand."""
    _state["json"] = json_output
    if root:
        os.environ["PROJECTBRAIN_ROOT"] = root
    if profile:
        os.environ["PROJECTBRAIN_ACTIVE_PROFILE"] = profile

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(message)s",
    )
    if not verbose:
        logging.getLogger("LiteLLM").setLevel(logging.WARNING)
        logging.getLogger("httpx").setLevel(logging.WARNING)


# Register subcommands -------------------------------------------------------

from projectbrain.cli.chat_cmd import ask_cmd  # noqa: E402
from projectbrain.cli.config_cmd import app as config_app  # noqa: E402
from projectbrain.cli.control_cmd import apply_cmd, control_cmd  # noqa: E402
from projectbrain.cli.doctor import doctor_cmd  # noqa: E402
from projectbrain.cli.ingest_cmd import ingest_cmd  # noqa: E402
from projectbrain.cli.memory_cmd import clear_cmd, context_cmd, search_cmd, stats_cmd  # noqa: E402

app.command(name="ingest", help="Ingest files into a project's memory.")(ingest_cmd)
app.command(name="search", help="Search a project's documents or chat history.")(search_cmd)
app.command(name="context", help="Show the memory context built for a query.")(context_cmd)
app.command(name="ask", help="Ask a question against a project's memory.")(ask_cmd)
app.command(name="control", help="Propose evidence-backed edits from a new document.")(
    control_cmd
)
app.command(name="apply", help="Apply approved changes from a proposal file.")(apply_cmd)
app.command(name="stats", help="Show memory counts for a project.")(stats_cmd)
app.command(name="clear", help="Delete a project's chunks and messages.")(clear_cmd)
app.add_typer(config_app, name="config", help="Show or change configuration.")
app.command(name="doctor", help="Check system health and connectivity.")(doctor_cmd)
