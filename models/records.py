"""Domain vocabulary shared across services."""

from __future__ import annotations

from enum import Enum
from typing import Optional, Tuple


# Position-to-field layout of the ten-value series returned by the sensor's
# "read measured values" command. ``None`` as group means a top-level field.
SERIES_LAYOUT: Tuple[Tuple[Optional[str], str], ...] = (
    ("mass", "pm1"),
    ("mass", "pm25"),
    ("mass", "pm4"),
    ("mass", "pm10"),
    ("number", "pm05"),
    ("number", "pm1"),
    ("number", "pm25"),
    ("number", "pm4"),
    ("number", "pm10"),
    (None, "typical_particle_size"),
)


class ReaderPhase(str, Enum):
    """Lifecycle states of the sensor reader."""

    uninitialized = "uninitialized"
    initializing = "initializing"
    measuring = "measuring"
    stopping = "stopping"
    terminated = "terminated"
    aborted = "aborted"


class PollOutcome(str, Enum):
    """Classification of a single poll attempt."""

    stored = "stored"
    idle = "idle"
    error = "error"
