"""Pydantic schemas for measurements and the HTTP API layer."""

from __future__ import annotations

from typing import Dict, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from models.records import SERIES_LAYOUT, ReaderPhase


class MassConcentration(BaseModel):
    """Mass concentration per particle size class, in µg/m³."""

    model_config = ConfigDict(frozen=True)

    pm1: float = Field(..., description="PM1.0")
    pm25: float = Field(..., description="PM2.5")
    pm4: float = Field(..., description="PM4")
    pm10: float = Field(..., description="PM10")


class NumberConcentration(BaseModel):
    """Number concentration per particle size class, in 1/cm³."""

    model_config = ConfigDict(frozen=True)

    pm05: float = Field(..., description="PM0.5")
    pm1: float = Field(..., description="PM1.0")
    pm25: float = Field(..., description="PM2.5")
    pm4: float = Field(..., description="PM4")
    pm10: float = Field(..., description="PM10")


class Measurement(BaseModel):
    """One complete sensor reading. Replaced as a whole, never patched."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    mass: MassConcentration
    number: NumberConcentration
    typical_particle_size: float = Field(
        ...,
        alias="typicalParticleSize",
        description="Typical particle size, in µm.",
    )

    @classmethod
    def from_series(cls, values: Sequence[float]) -> "Measurement":
        """Build a measurement from the driver's ordered ten-value series."""
        if len(values) != len(SERIES_LAYOUT):
            raise ValueError(
                f"Expected {len(SERIES_LAYOUT)} measured values, got {len(values)}."
            )

        groups: Dict[str, Dict[str, float]] = {"mass": {}, "number": {}}
        top_level: Dict[str, float] = {}
        for (group, name), value in zip(SERIES_LAYOUT, values):
            if group is None:
                top_level[name] = float(value)
            else:
                groups[group][name] = float(value)

        return cls(
            mass=MassConcentration(**groups["mass"]),
            number=NumberConcentration(**groups["number"]),
            **top_level,
        )


class HealthResponse(BaseModel):
    """Liveness payload for the exporter process."""

    status: str = "ok"
    phase: Optional[ReaderPhase] = None
