from __future__ import annotations

from typing import Optional

from fastapi import FastAPI

from app.api import router
from services.reader import SensorReader
from state.shared_state import SharedState


def create_app(state: SharedState, reader: Optional[SensorReader] = None) -> FastAPI:
    app = FastAPI(
        title="SPS30 Exporter",
        description="Latest particulate matter reading as JSON and as a metrics exposition.",
        version="0.1.0",
    )
    app.state.shared_state = state
    app.state.reader = reader
    app.include_router(router)
    return app
