from __future__ import annotations

from typing import Any

from fastapi import FastAPI

from .models import HostEventRequest, StatusResponse, WorkingDirectoryRequest
from .service import StatusService


def create_app(service: StatusService) -> FastAPI:
    app = FastAPI(title="Git Statusline", version="0.1.0")

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/status", response_model=StatusResponse)
    async def status() -> StatusResponse:
        return service.status

    @app.post("/refresh")
    async def refresh() -> dict[str, bool]:
        return {"started": service.request_status_refresh()}

    @app.post("/fetch")
    async def fetch() -> dict[str, bool]:
        return {"started": service.request_fetch()}

    @app.post("/cwd")
    async def change_directory(body: WorkingDirectoryRequest | None = None) -> StatusResponse:
        service.on_working_directory_changed((body or WorkingDirectoryRequest()).path)
        return service.status

    @app.post("/events")
    async def host_event(body: HostEventRequest | None = None) -> dict[str, str]:
        event = (body or HostEventRequest()).event
        service.on_host_event(event)
        return {"event": event}

    @app.get("/config")
    async def config() -> dict[str, Any]:
        return service.public_config()

    return app
