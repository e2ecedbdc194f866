from __future__ import annotations

import json
import os
from pathlib import Path

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from depimpact.config import DEFAULT_CONFIG_PATH, AnalyzerConfig
from depimpact.errors import DepImpactError
from depimpact.pipeline import AnalysisResult, analyze_project
from depimpact.schemas import AnalysisOptions, FileChange

WORKSPACE_ROOT = Path(os.getenv("DEPIMPACT_WORKSPACE", ".")).resolve()


class ChangeModel(BaseModel):
    changedFile: str
    changeType: str = Field(pattern="^(add|modify|delete)$")
    modifiedExports: list[str] | None = None


class AnalyzeRequest(BaseModel):
    repo_path: str = "."
    entry: str = "src/main.tsx"
    changes: list[ChangeModel] = Field(default_factory=list)
    config_path: str = str(DEFAULT_CONFIG_PATH)


app = FastAPI(title="depimpact API", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _resolve_repo(path_value: str) -> Path:
    raw = Path(path_value)
    resolved = raw.resolve() if raw.is_absolute() else (WORKSPACE_ROOT / raw).resolve()

    try:
        resolved.relative_to(WORKSPACE_ROOT)
    except ValueError as exc:
        raise HTTPException(
            status_code=400,
            detail=f"repo_path must stay inside workspace root: {WORKSPACE_ROOT}",
        ) from exc

    if not resolved.exists() or not resolved.is_dir():
        raise HTTPException(status_code=400, detail=f"repo_path is not a directory: {resolved}")

    return resolved


def _resolve_inside(repo: Path, name: str, path_value: str) -> Path:
    resolved = (repo / path_value).resolve()
    try:
        resolved.relative_to(WORKSPACE_ROOT)
    except ValueError as exc:
        raise HTTPException(
            status_code=400,
            detail=f"{name} must stay inside workspace root: {WORKSPACE_ROOT}",
        ) from exc
    return resolved


def _run_analysis(repo: Path, entry: str, changes: list[FileChange], config_path: str) -> AnalysisResult:
    entry_path = _resolve_inside(repo, "entry", entry)
    config = AnalyzerConfig.load(_resolve_inside(repo, "config_path", config_path))
    options = AnalysisOptions(entry_file=str(entry_path), changes=changes, root_dir=str(repo))
    try:
        return analyze_project(options, config=config)
    except DepImpactError as exc:
        raise HTTPException(
            status_code=500,
            detail={"error": "Failed to analyze dependencies", "details": exc.message},
        ) from exc


@app.get("/api/health")
def health() -> dict:
    return {
        "status": "ok",
        "service": "depimpact-backend",
        "workspace_root": str(WORKSPACE_ROOT),
    }


@app.get("/api/dependencies")
def dependencies(repo_path: str = ".", entry: str = "src/main.tsx", changes: str = "[]") -> dict:
    repo = _resolve_repo(repo_path)
    try:
        raw = json.loads(changes)
        change_list = [FileChange.from_dict(item) for item in raw]
    except (json.JSONDecodeError, TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=f"invalid changes: {exc}") from exc

    result = _run_analysis(repo, entry, change_list, str(DEFAULT_CONFIG_PATH))
    return result.root.to_dict(result.root_dir)


@app.post("/api/analyze")
def analyze(payload: AnalyzeRequest) -> dict:
    repo = _resolve_repo(payload.repo_path)
    change_list = [FileChange.from_dict(item.model_dump()) for item in payload.changes]
    result = _run_analysis(repo, payload.entry, change_list, payload.config_path)
    body = result.to_dict()
    return {
        "ok": True,
        "summary": {
            "affected": len(result.affected_files),
            "impacted": len(result.impacted_files),
            "warnings": len(result.warnings),
        },
        **body,
    }


def main() -> None:
    import uvicorn

    uvicorn.run("main:app", host="127.0.0.1", port=9000, reload=True)


if __name__ == "__main__":
    main()
