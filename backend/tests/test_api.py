from __future__ import annotations

import json
import shutil
import sys
from pathlib import Path

from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import main


client = TestClient(main.app)

FIXTURE = Path(__file__).resolve().parents[2] / "tests" / "fixtures" / "sample_app"


def _workspace(monkeypatch, tmp_path: Path) -> Path:
    workspace = tmp_path.resolve()
    shutil.copytree(FIXTURE, workspace / "app")
    monkeypatch.setattr(main, "WORKSPACE_ROOT", workspace)
    return workspace


def test_health() -> None:
    response = client.get("/api/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"


def test_dependencies_returns_annotated_tree(monkeypatch, tmp_path: Path) -> None:
    _workspace(monkeypatch, tmp_path)
    changes = [{"changedFile": "src/utils/format.ts", "changeType": "delete"}]

    response = client.get("/api/dependencies", params={"repo_path": "app", "changes": json.dumps(changes)})

    assert response.status_code == 200
    tree = response.json()
    assert tree["file"] == "src/main.tsx"
    assert tree["isAffected"] is True
    app_node = next(child for child in tree["children"] if child["file"] == "src/App.tsx")
    assert app_node["reason"] == "Directly affected: Imported file 'format.ts' was deleted"


def test_dependencies_rejects_bad_changes(monkeypatch, tmp_path: Path) -> None:
    _workspace(monkeypatch, tmp_path)

    response = client.get("/api/dependencies", params={"repo_path": "app", "changes": "[{}]"})

    assert response.status_code == 400


def test_analyze_reports_summary(monkeypatch, tmp_path: Path) -> None:
    _workspace(monkeypatch, tmp_path)
    payload = {
        "repo_path": "app",
        "changes": [
            {"changedFile": "src/utils/format.ts", "changeType": "modify", "modifiedExports": ["formatDate"]}
        ],
    }

    response = client.post("/api/analyze", json=payload)

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["summary"]["impacted"] == 3
    assert body["impactedFiles"] == ["src/App.tsx", "src/components/Header.tsx", "src/main.tsx"]


def test_analyze_rejects_unknown_change_type(monkeypatch, tmp_path: Path) -> None:
    _workspace(monkeypatch, tmp_path)
    payload = {"repo_path": "app", "changes": [{"changedFile": "src/App.tsx", "changeType": "rename"}]}

    response = client.post("/api/analyze", json=payload)

    assert response.status_code == 422


def test_repo_outside_workspace_is_rejected(monkeypatch, tmp_path: Path) -> None:
    workspace = _workspace(monkeypatch, tmp_path)

    response = client.post("/api/analyze", json={"repo_path": str(workspace.parent)})

    assert response.status_code == 400


def test_entry_outside_workspace_is_rejected(monkeypatch, tmp_path: Path) -> None:
    workspace = _workspace(monkeypatch, tmp_path)
    outside = workspace.parent / "secret.js"
    outside.write_text("export const API_TOKEN_NAME = 1\n", encoding="utf-8")

    relative = client.get("/api/dependencies", params={"repo_path": "app", "entry": "../../secret.js"})
    absolute = client.post("/api/analyze", json={"repo_path": "app", "entry": str(outside)})

    assert relative.status_code == 400
    assert absolute.status_code == 400
    assert "entry must stay inside workspace root" in absolute.json()["detail"]


def test_config_outside_workspace_is_rejected(monkeypatch, tmp_path: Path) -> None:
    workspace = _workspace(monkeypatch, tmp_path)
    outside = workspace.parent / "config.yaml"
    outside.write_text("exclude: []\n", encoding="utf-8")

    response = client.post("/api/analyze", json={"repo_path": "app", "config_path": str(outside)})

    assert response.status_code == 400
    assert "config_path must stay inside workspace root" in response.json()["detail"]


def test_missing_entry_is_a_server_error(monkeypatch, tmp_path: Path) -> None:
    _workspace(monkeypatch, tmp_path)

    response = client.post("/api/analyze", json={"repo_path": "app", "entry": "src/nope.tsx"})

    assert response.status_code == 500
    detail = response.json()["detail"]
    assert detail["error"] == "Failed to analyze dependencies"
    assert "entry file not found" in detail["details"]
