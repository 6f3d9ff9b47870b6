"""Text exposition of the shared state, one series per line."""

from __future__ import annotations

import math
from typing import List, Union

from state.shared_state import StateSnapshot

MASS_UNIT = "μg/m3"
NUMBER_UNIT = "1/cm3"
PARTICLE_SIZE_UNIT = "μm"

CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _format_value(value: Union[int, float]) -> str:
    if isinstance(value, int):
        return str(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    return repr(value)


def format_series(name: str, value: Union[int, float], **labels: str) -> str:
    if not labels:
        return f"{name} {_format_value(value)}"
    rendered = ",".join(f'{key}="{_escape(label)}"' for key, label in labels.items())
    return f"{name}{{{rendered}}} {_format_value(value)}"


def render_metrics(snapshot: StateSnapshot) -> str:
    lines: List[str] = []
    reading = snapshot.latest
    if reading is not None:
        mass = reading.mass
        for variant, value in (
            ("PM1.0", mass.pm1),
            ("PM2.5", mass.pm25),
            ("PM4", mass.pm4),
            ("PM10", mass.pm10),
        ):
            lines.append(
                format_series("sps30_mass_concentration", value, variant=variant, unit=MASS_UNIT)
            )

        number = reading.number
        for variant, value in (
            ("PM0.5", number.pm05),
            ("PM1.0", number.pm1),
            ("PM2.5", number.pm25),
            ("PM4", number.pm4),
            ("PM10", number.pm10),
        ):
            lines.append(
                format_series("sps30_number_concentration", value, variant=variant, unit=NUMBER_UNIT)
            )

        lines.append(
            format_series(
                "sps30_typical_particle_size",
                reading.typical_particle_size,
                unit=PARTICLE_SIZE_UNIT,
            )
        )

    lines.append(format_series("sps30_error_count", snapshot.error_count))
    lines.append(format_series("sps30_fatal_error_count", snapshot.fatal_error_count))
    return "\n".join(lines) + "\n"
