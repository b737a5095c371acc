"""projectbrain config — show or change configuration."""

from __future__ import annotations

import json
from typing import Annotated

import typer
import yaml

app = typer.Typer(
    name="config",
    help="Show or change configuration.",
    no_args_is_help=True,
)


@app.command(name="show")
def show_cmd():
    """Print the effective settings."""
    from projectbrain.cli.app import is_json
    from projectbrain.config import get_settings

    data = get_settings().model_dump(mode="json")
    if is_json():
        print(json.dumps(data, indent=2))
    else:
        typer.echo(yaml.safe_dump(data, default_flow_style=False, sort_keys=False))


@app.command(name="set")
def set_cmd(
    key: Annotated[str, typer.Argument(help="Dotted key, e.g. control.thresholds.do_not_propose")],
    value: Annotated[str, typer.Argument(help="New value (parsed as YAML)")],
):
    """Persist one setting to config.yaml."""
    from pydantic import ValidationError

    from projectbrain.config import dotted_to_nested, get_settings, save_user_config

    parsed = yaml.safe_load(value)
    path = save_user_config(dotted_to_nested(key, parsed))
    try:
        get_settings()
    except ValidationError as e:
        typer.echo(f"Saved to {path}, but the configuration is now invalid:\n{e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Set {key} = {parsed!r} in {path}")
