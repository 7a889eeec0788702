"""FastAPI application entrypoint for dotai service mode."""

from __future__ import annotations

import asyncio
from dataclasses import asdict
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, List, Literal, Optional, TypeVar

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..engine import DotAIEngine, create_engine
from ..errors import DotAIError, GitAuthError, LockTimeoutError, RepositoryNotConfiguredError
from ..models import SyncOptions

T = TypeVar("T")


class SyncRequest(BaseModel):
    tools: Optional[List[str]] = None
    scope: Literal["all", "user", "project"] = "all"
    dry_run: bool = False
    force: bool = False
    branch: Optional[str] = None
    tag: Optional[str] = None
    commit: Optional[str] = None
    project_path: Optional[str] = None

    def to_options(self) -> SyncOptions:
        return SyncOptions(
            tools=self.tools or None,
            scope=self.scope,
            dry_run=self.dry_run,
            force=self.force,
            branch=self.branch,
            tag=self.tag,
            commit=self.commit,
            project_path=Path(self.project_path) if self.project_path else None,
        )


class HealthResponse(BaseModel):
    status: str


def _default_engine() -> DotAIEngine:
    return create_engine()


async def _run_blocking(call: Callable[[], T]) -> T:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, call)


def create_app(
    engine_factory: Callable[[], DotAIEngine] = _default_engine,
) -> FastAPI:
    """Create the FastAPI application exposing the engine operations."""

    app = FastAPI(title="DotAI Service", version="1.0.0")

    async def get_engine() -> AsyncIterator[DotAIEngine]:
        engine = engine_factory()
        try:
            yield engine
        finally:
            engine.close()

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.get("/status")
    async def status(engine: DotAIEngine = Depends(get_engine)) -> Dict[str, Any]:
        report = await _run_blocking(engine.status)
        return asdict(report)

    @app.get("/detect")
    async def detect(engine: DotAIEngine = Depends(get_engine)) -> Dict[str, Any]:
        report = await _run_blocking(engine.detect_tools)
        return asdict(report)

    @app.get("/diff")
    async def diff(
        project_path: Optional[str] = None, engine: DotAIEngine = Depends(get_engine)
    ) -> Dict[str, Any]:
        report = await _run_blocking(lambda: engine.diff(project_path))
        return report.to_dict()

    @app.get("/validate")
    async def validate(
        project_path: Optional[str] = None, engine: DotAIEngine = Depends(get_engine)
    ) -> Dict[str, Any]:
        report = await _run_blocking(lambda: engine.validate(project_path))
        return report.to_dict()

    @app.post("/preview")
    async def preview(
        payload: SyncRequest, engine: DotAIEngine = Depends(get_engine)
    ) -> Dict[str, Any]:
        items = await _run_blocking(lambda: engine.preview(payload.to_options()))
        return {"items": [asdict(item) for item in items]}

    @app.post("/sync")
    async def sync(
        payload: SyncRequest, engine: DotAIEngine = Depends(get_engine)
    ) -> Dict[str, Any]:
        report = await _run_blocking(lambda: engine.sync(payload.to_options()))
        return report.to_dict()

    @app.exception_handler(RepositoryNotConfiguredError)
    async def not_configured_handler(_: Any, exc: RepositoryNotConfiguredError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(GitAuthError)
    async def auth_error_handler(_: Any, exc: GitAuthError) -> JSONResponse:
        return JSONResponse(status_code=401, content={"detail": str(exc)})

    @app.exception_handler(LockTimeoutError)
    async def lock_timeout_handler(_: Any, exc: LockTimeoutError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(DotAIError)
    async def dotai_error_handler(
        _: Any, exc: DotAIError
    ) -> JSONResponse:  # pragma: no cover - simple mapping
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    return app


def run_service(
    host: str = "127.0.0.1", port: int = 8000, config_path: Path | None = None
) -> None:  # pragma: no cover - integration path
    import uvicorn

    app = create_app(lambda: create_engine(config_path))
    uvicorn.run(app, host=host, port=port)
