import json
import shutil
import subprocess
from pathlib import Path

from typer.testing import CliRunner

from depimpact.cli import app

runner = CliRunner()

FIXTURE = Path(__file__).parent / "fixtures" / "sample_app"


def _copy_fixture(tmp_path: Path) -> Path:
    repo = tmp_path.resolve() / "repo"
    shutil.copytree(FIXTURE, repo)
    return repo


def _changes(*exports: str) -> str:
    return json.dumps(
        [{"changedFile": "src/utils/format.ts", "changeType": "modify", "modifiedExports": list(exports)}]
    )


def _run(cmd: list[str], cwd: Path) -> None:
    subprocess.run(cmd, cwd=cwd, check=True, capture_output=True)


def test_init_writes_default_config(tmp_path) -> None:
    repo = _copy_fixture(tmp_path)

    result = runner.invoke(app, ["init", "--repo", str(repo)])

    assert result.exit_code == 0
    config = repo / ".depimpact" / "config.yaml"
    assert config.exists()
    assert "empty_exports_mean_unknown: true" in config.read_text(encoding="utf-8")


def test_analyze_reports_impacted_files(tmp_path) -> None:
    repo = _copy_fixture(tmp_path)

    result = runner.invoke(
        app,
        [
            "analyze",
            "--repo",
            str(repo),
            "--changes",
            _changes("formatMoney"),
            "--output",
            "out/report.json",
            "--markdown",
            "out/report.md",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Dependency Tree Analysis:" in result.output
    assert "Directly affected by modified exports from 'format.ts': formatMoney" in result.output
    assert "App.tsx [AFFECTED]" in result.output

    report = json.loads((repo / "out" / "report.json").read_text(encoding="utf-8"))
    assert report["impactedFiles"] == ["src/App.tsx", "src/main.tsx"]
    assert report["affectedFiles"] == ["src/App.tsx", "src/main.tsx", "src/utils/format.ts"]
    assert "| `src/App.tsx` | AFFECTED |" in (repo / "out" / "report.md").read_text(encoding="utf-8")


def test_analyze_with_unrelated_export_change(tmp_path) -> None:
    repo = _copy_fixture(tmp_path)

    result = runner.invoke(app, ["analyze", "--repo", str(repo), "--changes", _changes("currency")])

    assert result.exit_code == 0, result.output
    assert "format.ts [MODIFY]" in result.output
    assert "App.tsx [AFFECTED]" not in result.output


def test_analyze_reads_changes_file(tmp_path) -> None:
    repo = _copy_fixture(tmp_path)
    changes_file = tmp_path / "changes.json"
    changes_file.write_text(
        json.dumps([{"changedFile": "src/assets/logo.svg", "changeType": "delete"}]),
        encoding="utf-8",
    )

    result = runner.invoke(app, ["analyze", "--repo", str(repo), "--changes-file", str(changes_file)])

    assert result.exit_code == 0, result.output
    assert "Directly affected: Imported file 'logo.svg' was deleted" in result.output


def test_analyze_missing_entry_fails(tmp_path) -> None:
    repo = _copy_fixture(tmp_path)

    result = runner.invoke(app, ["analyze", "--repo", str(repo), "--entry", "src/nope.tsx"])

    assert result.exit_code == 1


def test_analyze_rejects_bad_changes(tmp_path) -> None:
    repo = _copy_fixture(tmp_path)

    result = runner.invoke(app, ["analyze", "--repo", str(repo), "--changes", "{not json"])

    assert result.exit_code == 2


def test_git_command_analyzes_commit_range(tmp_path) -> None:
    repo = _copy_fixture(tmp_path)
    _run(["git", "init", "-b", "main"], repo)
    _run(["git", "config", "user.name", "tester"], repo)
    _run(["git", "config", "user.email", "tester@example.com"], repo)
    _run(["git", "add", "."], repo)
    _run(["git", "commit", "-m", "baseline"], repo)

    header = repo / "src" / "components" / "Header.tsx"
    header.write_text(header.read_text(encoding="utf-8") + "export const Subtitle = 'hi'\n", encoding="utf-8")
    _run(["git", "commit", "-am", "add subtitle"], repo)

    result = runner.invoke(app, ["git", "--repo", str(repo), "--range", "HEAD~1..HEAD", "--detailed"])

    assert result.exit_code == 0, result.output
    assert "modified exports: Subtitle" in result.output
    assert "changes: +1 -0" in result.output
    assert "+export const Subtitle = 'hi'" in result.output
    assert "Header.tsx [MODIFY]" in result.output
    assert "App.tsx [AFFECTED]" not in result.output


def test_dispatch_runs_jobs_in_workers(tmp_path) -> None:
    repo = _copy_fixture(tmp_path)
    jobs = tmp_path / "jobs.json"
    jobs.write_text(
        json.dumps(
            [
                {
                    "entryFile": "src/main.tsx",
                    "rootDir": str(repo),
                    "changes": [{"changedFile": "src/utils/format.ts", "changeType": "delete"}],
                },
                {"entryFile": "src/missing.tsx", "rootDir": str(repo), "changes": []},
            ]
        ),
        encoding="utf-8",
    )
    output = tmp_path / "merged.json"

    result = runner.invoke(app, ["dispatch", "--jobs", str(jobs), "--workers", "2", "--output", str(output)])

    assert result.exit_code == 1
    assert "job 0 (src/main.tsx): ok" in result.output
    merged = json.loads(output.read_text(encoding="utf-8"))
    assert [item["status"] for item in merged["jobs"]] == ["success", "error"]
    assert str(repo / "src" / "components" / "Header.tsx") in merged["impactedFiles"]
