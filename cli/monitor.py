from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_reading


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Inspect a running SPS30 exporter.",
    context_settings={"help_option_names": ["-h", "--help"]},
    add_completion=False,
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Exporter base URL (defaults to SPS30_EXPORTER_URL env or http://localhost:8090).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="HTTP request timeout in seconds.",
    ),
) -> None:
    """Entry point for the monitor CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("reading")
def reading_command(ctx: typer.Context) -> None:
    """Show the latest measurement grouped by concentration type."""
    state = _get_state(ctx)
    render_reading(state.client.get_reading())


@app.command("metrics")
def metrics_command(ctx: typer.Context) -> None:
    """Print the raw metrics exposition."""
    state = _get_state(ctx)
    typer.echo(state.client.get_metrics(), nl=False)
