from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

import typer

_MASS_FIELDS = (("PM1.0", "pm1"), ("PM2.5", "pm25"), ("PM4", "pm4"), ("PM10", "pm10"))
_NUMBER_FIELDS = (
    ("PM0.5", "pm05"),
    ("PM1.0", "pm1"),
    ("PM2.5", "pm25"),
    ("PM4", "pm4"),
    ("PM10", "pm10"),
)


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]], unit: str) -> None:
    for key, value in pairs:
        typer.echo(f"  {key}: {value} {unit}")


def render_reading(payload: Optional[Dict[str, Any]]) -> None:
    if payload is None:
        typer.echo("No reading available yet.")
        return

    mass = payload.get("mass") or {}
    echo_heading("Mass concentration")
    echo_key_values(((label, mass.get(key)) for label, key in _MASS_FIELDS), "μg/m3")

    number = payload.get("number") or {}
    typer.echo()
    echo_heading("Number concentration")
    echo_key_values(((label, number.get(key)) for label, key in _NUMBER_FIELDS), "1/cm3")

    typer.echo()
    echo_heading("Typical particle size")
    typer.echo(f"  {payload.get('typicalParticleSize')} μm")
