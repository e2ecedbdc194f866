from __future__ import annotations

import json
import logging
from pathlib import Path

import typer

from depimpact.cache import FactCache
from depimpact.config import DEFAULT_CONFIG_PATH, AnalyzerConfig, ensure_config
from depimpact.errors import DepImpactError
from depimpact.git_utils import GitError, collect_changes, parse_range
from depimpact.pipeline import AnalysisResult, analyze_project
from depimpact.render.report import render_text, write_report_json, write_report_markdown
from depimpact.schemas import AnalysisOptions, FileChange
from depimpact.utils import read_json
from depimpact.watch.service import watch_loop
from depimpact.worker import dispatch_many, reconcile

app = typer.Typer(help="depimpact: find the files a change set affects")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _abs(repo: Path, value: Path) -> Path:
    return value if value.is_absolute() else (repo / value).resolve()


def _load_config(repo: Path, config: Path) -> AnalyzerConfig:
    return AnalyzerConfig.load(_abs(repo, config))


def _parse_changes(changes: str, changes_file: Path | None) -> list[FileChange]:
    if changes_file is not None:
        data = read_json(changes_file)
    else:
        try:
            data = json.loads(changes)
        except json.JSONDecodeError as exc:
            raise typer.BadParameter(f"--changes is not valid JSON: {exc}") from exc
    if not isinstance(data, list):
        raise typer.BadParameter("changes must be a JSON list of change objects")
    try:
        return [FileChange.from_dict(item) for item in data]
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _run_analysis(repo: Path, entry: Path, changes: list[FileChange], config: AnalyzerConfig) -> AnalysisResult:
    options = AnalysisOptions(entry_file=str(entry), changes=changes, root_dir=str(repo))
    try:
        return analyze_project(options, config=config)
    except DepImpactError as exc:
        typer.secho(f"[depimpact] {exc.message}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc


def _emit(result: AnalysisResult, repo: Path, output: Path | None, markdown: Path | None) -> None:
    typer.echo("")
    typer.echo(render_text(result))
    if output is not None:
        path = _abs(repo, output)
        write_report_json(result, path)
        typer.echo(f"[depimpact] report: {path}")
    if markdown is not None:
        path = _abs(repo, markdown)
        write_report_markdown(result, path)
        typer.echo(f"[depimpact] markdown: {path}")


@app.command()
def init(
    repo: Path = typer.Option(Path("."), help="Project root"),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Config path"),
    force: bool = typer.Option(False, help="Overwrite existing config"),
) -> None:
    repo = repo.resolve()
    path = _abs(repo, config)
    ensure_config(path, force=force)
    typer.echo(f"[depimpact] initialized config at {path}")


@app.command()
def analyze(
    repo: Path = typer.Option(Path("."), help="Project root"),
    entry: Path = typer.Option(Path("src/main.tsx"), "--entry", "-e", help="Entry file path"),
    changes: str = typer.Option("[]", "--changes", "-f", help="JSON list of file changes"),
    changes_file: Path | None = typer.Option(None, help="Read the change list from a JSON file"),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Config path"),
    output: Path | None = typer.Option(None, help="Write the JSON report here"),
    markdown: Path | None = typer.Option(None, help="Write a markdown report here"),
) -> None:
    repo = repo.resolve()
    rules = _load_config(repo, config)
    change_list = _parse_changes(changes, changes_file)
    result = _run_analysis(repo, _abs(repo, entry), change_list, rules)
    _emit(result, repo, output, markdown)


@app.command()
def git(
    repo: Path = typer.Option(Path("."), help="Project root (a git work tree)"),
    entry: Path = typer.Option(Path("src/main.tsx"), "--entry", "-e", help="Entry file path"),
    range_: str = typer.Option("HEAD^..HEAD", "--range", "-r", help="Git diff range, e.g. HEAD^..HEAD"),
    detailed: bool = typer.Option(False, "--detailed", "-d", help="Diff export names of modified files"),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Config path"),
    output: Path | None = typer.Option(None, help="Write the JSON report here"),
) -> None:
    repo = repo.resolve()
    rules = _load_config(repo, config)
    try:
        base, head = parse_range(range_)
        change_list = collect_changes(repo, base, head, config=rules, cache=FactCache(), detailed=detailed)
    except (GitError, ValueError) as exc:
        typer.secho(f"[depimpact] error analyzing git changes: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc

    if not change_list:
        typer.echo("[depimpact] no relevant file changes found in the specified range")
        return

    typer.echo(f"[depimpact] analyzing changes between {range_}")
    typer.echo(f"- changed files: {len(change_list)}")
    for item in change_list:
        typer.echo(f"  {item.changed_file} ({item.change_type.value.upper()})")
        if item.content_changes is not None:
            typer.echo(f"    changes: +{item.content_changes.additions} -{item.content_changes.deletions}")
            for hunk in item.content_changes.hunks:
                typer.echo(f"    {hunk.header()}")
                for line in hunk.lines:
                    typer.echo(f"      {line}")
        if item.modified_exports:
            typer.echo(f"    modified exports: {', '.join(item.modified_exports)}")

    result = _run_analysis(repo, _abs(repo, entry), change_list, rules)
    _emit(result, repo, output, None)


@app.command()
def dispatch(
    jobs: Path = typer.Option(..., help="JSON file: list of {entryFile, changes, rootDir}"),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Config path"),
    workers: int = typer.Option(0, help="Parallel workers (0 = from config)"),
    output: Path | None = typer.Option(None, help="Write the merged JSON report here"),
) -> None:
    cwd = Path.cwd()
    rules = _load_config(cwd, config)
    data = read_json(jobs)
    if not isinstance(data, list):
        raise typer.BadParameter("jobs file must hold a JSON list")
    try:
        job_list = [AnalysisOptions.from_dict(item) for item in data]
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    outcomes = dispatch_many(job_list, config=rules, max_workers=workers or None)
    for outcome in outcomes:
        state = "ok" if outcome.ok else f"error: {outcome.error}"
        typer.echo(f"[depimpact] job {outcome.index} ({outcome.options.entry_file}): {state}")

    merged = reconcile([item.result for item in outcomes if item.result is not None])
    typer.echo(f"- affected files: {len(merged.affected_files)}")
    for path in sorted(merged.affected_files):
        typer.echo(f"  {path}")

    if output is not None:
        payload = {
            "jobs": [
                {"index": item.index, "status": "success" if item.ok else "error", "error": item.error}
                for item in outcomes
            ],
            "affectedFiles": sorted(merged.affected_files),
            "impactedFiles": sorted(merged.impacted_files),
            "warnings": merged.warnings,
        }
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    if any(not item.ok for item in outcomes):
        raise typer.Exit(code=1)


@app.command()
def watch(
    repo: Path = typer.Option(Path("."), help="Project root"),
    entry: Path = typer.Option(Path("src/main.tsx"), "--entry", "-e", help="Entry file path"),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Config path"),
    delay: float = typer.Option(0.8, help="Debounce delay in seconds"),
) -> None:
    repo = repo.resolve()
    rules = _load_config(repo, config)
    entry_path = _abs(repo, entry)

    def report(changes: list[FileChange], result: AnalysisResult) -> None:
        typer.echo(f"[depimpact] {len(changes)} change(s) detected")
        typer.echo(render_text(result))

    typer.echo(f"[depimpact] watching {repo} (entry {entry_path}); press Ctrl+C to stop")
    watch_loop(
        repo_root=repo,
        entry_file=str(entry_path),
        config=rules,
        on_result=report,
        debounce_seconds=max(0.2, delay),
    )


if __name__ == "__main__":
    app()
