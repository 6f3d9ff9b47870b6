from __future__ import annotations

from typing import Optional

import typer

from logging_config import configure_logging
from services.errors import ConfigurationError
from services.lifecycle import ExporterRuntime
from settings import DEFAULT_PORT, get_settings

app = typer.Typer(
    help="Export SPS30 particulate matter readings over HTTP.",
    context_settings={"help_option_names": ["-h", "--help"]},
    add_completion=False,
)


@app.command()
def serve(
    device: str = typer.Argument(..., help="Sensor serial device, e.g. /dev/ttyUSB0."),
    port: Optional[int] = typer.Option(
        None,
        "--port",
        "-p",
        envvar="SPS30_PORT",
        min=1,
        max=65535,
        help=f"HTTP server port (defaults to SPS30_PORT env or {DEFAULT_PORT}).",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Logging level (defaults to LOG_LEVEL env or INFO).",
    ),
) -> None:
    """Poll the sensor and serve /json and /metrics until SIGTERM."""
    try:
        configure_logging(log_level.upper() if log_level else None)
        settings = get_settings()
        runtime = ExporterRuntime(
            device=device,
            port=port if port is not None else settings.port,
            settings=settings,
        )
    except ConfigurationError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2) from exc

    raise typer.Exit(code=runtime.run())
