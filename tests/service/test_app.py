"""Tests for the FastAPI service mode."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

from dotai.errors import GitAuthError, LockTimeoutError, RepositoryNotConfiguredError
from dotai.models import (
    DetectReport,
    DiffChange,
    DiffReport,
    PreviewItem,
    RepoStatus,
    StatusReport,
    SyncOptions,
    SyncReport,
    ToolInstallStatus,
    ToolSyncResult,
    ValidationReport,
)


class _StubEngine:
    def __init__(self) -> None:
        self.sync_calls: List[SyncOptions] = []
        self.error: Optional[Exception] = None
        self.closed = 0

    def _maybe_raise(self) -> None:
        if self.error is not None:
            raise self.error

    def sync(self, options: SyncOptions) -> SyncReport:
        self._maybe_raise()
        self.sync_calls.append(options)
        now = datetime(2024, 1, 1, tzinfo=UTC)
        return SyncReport(
            start_time=now,
            end_time=now,
            total_files=1,
            results=[ToolSyncResult(tool="cursor", status="success", files_deployed=1)],
        )

    def preview(self, options: SyncOptions) -> List[PreviewItem]:
        self._maybe_raise()
        return [PreviewItem(Path("/m/cursor/user/a.mdc"), Path("/h/.cursor/a.mdc"), "create")]

    def status(self) -> StatusReport:
        return StatusReport(
            repo=RepoStatus("abc", None, True, None, Path("/cache")),
            tools=[ToolInstallStatus("cursor", "Cursor", True)],
        )

    def detect_tools(self) -> DetectReport:
        return DetectReport(tools=[ToolInstallStatus("cursor", "Cursor", False, reason="missing")])

    def diff(self, project_path: Optional[str] = None) -> DiffReport:
        self._maybe_raise()
        return DiffReport(changes=[DiffChange("cursor", "/h/.cursor/a.mdc", "added")])

    def validate(self, project_path: Optional[str] = None) -> ValidationReport:
        return ValidationReport()

    def close(self) -> None:
        self.closed += 1


@pytest.fixture
def engine() -> _StubEngine:
    return _StubEngine()


@pytest.fixture
def client(engine: _StubEngine) -> TestClient:
    from dotai.service import create_app

    app = create_app(lambda: engine)  # type: ignore[arg-type, return-value]
    return TestClient(app)


def test_health_endpoint(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_sync_endpoint_forwards_options(client: TestClient, engine: _StubEngine) -> None:
    response = client.post(
        "/sync", json={"tools": ["cursor"], "scope": "user", "dry_run": True, "tag": "v1"}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["total_files"] == 1
    [options] = engine.sync_calls
    assert options.tools == ["cursor"]
    assert options.scope == "user"
    assert options.dry_run is True
    assert options.tag == "v1"
    assert engine.closed == 1


def test_preview_endpoint(client: TestClient) -> None:
    response = client.post("/preview", json={})
    assert response.status_code == 200
    [item] = response.json()["items"]
    assert item["action"] == "create"
    assert item["target_path"] == "/h/.cursor/a.mdc"


def test_read_only_endpoints(client: TestClient) -> None:
    status = client.get("/status").json()
    assert status["repo"]["is_offline"] is True
    assert status["tools"][0]["tool_id"] == "cursor"

    detect = client.get("/detect").json()
    assert detect["tools"][0]["reason"] == "missing"

    diff = client.get("/diff").json()
    assert diff["has_changes"] is True
    assert diff["changes"][0]["status"] == "added"

    assert client.get("/validate").json() == {"valid": True, "results": []}


@pytest.mark.parametrize(
    "error, status_code",
    [
        (RepositoryNotConfiguredError(), 400),
        (GitAuthError("fatal: Authentication failed", repo_url="https://x"), 401),
        (LockTimeoutError("/tmp/.sync.lock", 30.0), 409),
    ],
)
def test_errors_map_to_status_codes(
    client: TestClient, engine: _StubEngine, error: Exception, status_code: int
) -> None:
    engine.error = error

    response = client.post("/sync", json={})

    assert response.status_code == status_code
    assert response.json()["detail"] == str(error)
