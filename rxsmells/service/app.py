"""FastAPI application entrypoint for rxsmells service mode."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .. import __version__
from ..config import ConfigError, config_from_mapping
from ..orchestrator import AnalysisOutcome, Orchestrator
from ..source import SourceFormatError


class AnalyzeRequest(BaseModel):
    document: Any
    config: Optional[Dict[str, Any]] = None


class EvidencePayload(BaseModel):
    file: str
    line: int
    column: int


class DiagnosticPayload(BaseModel):
    detectorId: str
    severity: str
    component: str
    file: str
    line: int
    column: int
    message: str
    evidence: List[EvidencePayload] = []


class AnalyzeResponse(BaseModel):
    status: str
    exit_status: int
    components: int
    diagnostics: List[DiagnosticPayload]


class DetectorPayload(BaseModel):
    id: str
    title: str
    severity: str
    thresholds: Dict[str, float]
    needs_full_bodies: bool


class HealthResponse(BaseModel):
    status: str


def _default_orchestrator() -> Orchestrator:
    return Orchestrator()


def create_app(
    orchestrator_factory: Callable[[], Orchestrator] = _default_orchestrator,
) -> FastAPI:
    """Create the FastAPI application exposing rxsmells analysis."""

    app = FastAPI(title="rxsmells Service", version=__version__)

    async def get_orchestrator() -> Orchestrator:
        return orchestrator_factory()

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.get("/detectors", response_model=List[DetectorPayload])
    async def list_detectors(
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> List[DetectorPayload]:
        return [DetectorPayload(**entry) for entry in orchestrator.registry.describe()]

    @app.post("/analyze", response_model=AnalyzeResponse)
    async def analyze(
        payload: AnalyzeRequest,
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> AnalyzeResponse:
        config = config_from_mapping(payload.config or {})

        def _run_analysis() -> AnalysisOutcome:
            return orchestrator.analyze_document(payload.document, config)

        loop = asyncio.get_running_loop()
        outcome = await loop.run_in_executor(None, _run_analysis)

        diagnostics = [
            DiagnosticPayload(**item.to_dict()) for item in outcome.reporter.diagnostics()
        ]
        return AnalyzeResponse(
            status="ok",
            exit_status=outcome.exit_status,
            components=outcome.components,
            diagnostics=diagnostics,
        )

    @app.exception_handler(ConfigError)
    async def config_error_handler(_: Any, exc: ConfigError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(SourceFormatError)
    async def source_error_handler(_: Any, exc: SourceFormatError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    return app


def run_service(
    host: str = "0.0.0.0", port: int = 8000
) -> None:  # pragma: no cover - integration path
    import uvicorn

    app = create_app()
    uvicorn.run(app, host=host, port=port)
