"""projectbrain doctor — check settings, stores and the model providers."""

from __future__ import annotations

import asyncio
import inspect
import json

import typer
from rich.console import Console
from rich.table import Table

_PING_SCHEMA = {
    "type": "object",
    "properties": {"status": {"type": "string"}},
    "required": ["status"],
}


def _settings_check() -> str:
    from projectbrain.config import get_settings

    settings = get_settings()
    t = settings.control.thresholds
    return (
        f"profile={settings.active_profile}, "
        f"thresholds={t.do_not_propose}/{t.flagged_for_review}/"
        f"{t.standard_proposal}/{t.auto_approve_eligible}"
    )


def _stores_check() -> str:
    """Open both stores and report what they hold."""
    from projectbrain.config import get_settings
    from projectbrain.stores.docstore import DocStore
    from projectbrain.stores.vectorstore import VectorStore

    settings = get_settings()
    docstore = DocStore(settings.docstore.path)
    vectorstore = VectorStore(
        settings.qdrant.path, settings.qdrant.collection, dim=settings.llm.embed_dim
    )
    try:
        points = vectorstore.count()
    finally:
        vectorstore.close()
        docstore.close()
    return f"{settings.docstore.path}, {points} vectors in {settings.qdrant.collection}"


def _credentials_check() -> str:
    from projectbrain.config import get_settings
    from projectbrain.llm import embedding_available

    model = get_settings().llm.embed_model
    if not embedding_available(model):
        raise RuntimeError(f"no credentials for {model}; search falls back to text matching")
    return f"credentials found for {model}"


async def _generation_check() -> str:
    """Document control needs JSON objects back from the chat model."""
    from projectbrain.llm import generate

    reply = await generate('Reply with {"status": "ok"}', response_schema=_PING_SCHEMA)
    if not isinstance(reply, dict):
        raise RuntimeError(f"model did not return a JSON object: {str(reply)[:80]!r}")
    return f"JSON reply {reply}"


async def _embedding_check() -> str:
    from projectbrain.config import get_settings
    from projectbrain.llm import embed

    [vector] = await embed(["projectbrain doctor"])
    expected = get_settings().llm.embed_dim
    if len(vector) != expected:
        raise RuntimeError(f"dim={len(vector)}, config expects {expected}")
    return f"dim={len(vector)}"


CHECKS = [
    ("Settings", _settings_check),
    ("Stores", _stores_check),
    ("Credentials", _credentials_check),
    ("Generation", _generation_check),
    ("Embeddings", _embedding_check),
]


async def _run_checks() -> list[dict]:
    results = []
    for name, check in CHECKS:
        try:
            detail = check()
            if inspect.isawaitable(detail):
                detail = await detail
            results.append({"check": name, "ok": True, "detail": detail})
        except Exception as e:
            results.append({"check": name, "ok": False, "detail": str(e)})
    return results


def doctor_cmd():
    """Check system health and connectivity."""
    from projectbrain.cli.app import is_json

    results = asyncio.run(_run_checks())
    failed = [r["check"] for r in results if not r["ok"]]

    if is_json():
        print(json.dumps({"status": "fail" if failed else "ok", "checks": results}, indent=2))
    else:
        table = Table(title="projectbrain doctor")
        table.add_column("Check", style="bold")
        table.add_column("")
        table.add_column("Detail", overflow="fold")
        for r in results:
            table.add_row(r["check"], "[green]ok[/green]" if r["ok"] else "[red]fail[/red]", r["detail"])
        console = Console()
        console.print(table)
        if failed:
            console.print(f"[yellow]{len(failed)} check(s) failed: {', '.join(failed)}[/yellow]")

    if failed:
        raise typer.Exit(code=1)
