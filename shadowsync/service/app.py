"""FastAPI application entrypoint for shadowsync service mode."""

from __future__ import annotations

from typing import Any, Callable, List, Optional

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..errors import ConfigurationError, ShadowSyncError
from ..orchestrator import Orchestrator


class ConvertRequest(BaseModel):
    shadow_path: str
    root: Optional[str] = None


class ConvertResponse(BaseModel):
    status: str
    target_path: str
    diff: Optional[str] = None
    missing_dependencies: List[str] = []
    installed_dependencies: List[str] = []
    suggestions: List[str] = []
    errors: List[str] = []


class CleanupRequest(BaseModel):
    root: str


class CleanupResponse(BaseModel):
    removed: List[str]


class HealthResponse(BaseModel):
    status: str


def _default_orchestrator() -> Orchestrator:
    return Orchestrator()


def create_app(
    orchestrator_factory: Callable[[], Orchestrator] = _default_orchestrator,
) -> FastAPI:
    """Create the FastAPI application exposing shadowsync operations."""

    app = FastAPI(title="shadowsync service", version="1.0.0")
    # Shared by every request so conversions of one shadow file stay serialized.
    shared = orchestrator_factory()

    async def get_orchestrator() -> Orchestrator:
        return shared

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.post("/convert", response_model=ConvertResponse)
    async def convert(
        payload: ConvertRequest,
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> ConvertResponse:
        result = await orchestrator.run_convert(payload.shadow_path, root=payload.root)
        response = ConvertResponse(
            status=result.status,
            target_path=str(result.target_path),
            diff=result.outcome.diff if result.outcome else None,
            errors=result.errors,
        )
        for report in result.reports:
            response.missing_dependencies.extend(report.missing)
            response.installed_dependencies.extend(report.installed)
            response.suggestions.extend(report.suggestions)
        return response

    @app.post("/checkpoints/cleanup", response_model=CleanupResponse)
    async def cleanup(
        payload: CleanupRequest,
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> CleanupResponse:
        return CleanupResponse(removed=orchestrator.run_cleanup(payload.root))

    @app.exception_handler(FileNotFoundError)
    async def file_not_found_handler(
        _: Any, exc: FileNotFoundError
    ) -> JSONResponse:  # pragma: no cover - simple mapping
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(
        _: Any, exc: ConfigurationError
    ) -> JSONResponse:  # pragma: no cover - simple mapping
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(ShadowSyncError)
    async def shadowsync_error_handler(
        _: Any, exc: ShadowSyncError
    ) -> JSONResponse:  # pragma: no cover - simple mapping
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    @app.exception_handler(ValueError)
    async def value_error_handler(
        _: Any, exc: ValueError
    ) -> JSONResponse:  # pragma: no cover - simple mapping
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    return app


def run_service(
    host: str = "127.0.0.1", port: int = 8000
) -> None:  # pragma: no cover - integration path
    import uvicorn

    uvicorn.run(create_app(), host=host, port=port)
