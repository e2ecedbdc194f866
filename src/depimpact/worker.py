"""Isolated analysis workers.

A worker is a separate interpreter running ``python -m depimpact.worker``. It
reads one JSON request from stdin and writes one JSON response to stdout::

    request:  {"options": {...AnalysisOptions...}, "config": {...}}
    response: {"status": "success", "result": {...}}
            | {"status": "error", "message": "..."}

Workers share nothing with the caller; merging their impact state is the
caller's job (see ``reconcile``).
"""

from __future__ import annotations

import json
import logging
import subprocess
import sys
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any

from depimpact.config import AnalyzerConfig
from depimpact.errors import DepImpactError, WorkerError
from depimpact.graph.impact import DependencyContext, propagate_changes
from depimpact.pipeline import analyze_project
from depimpact.schemas import AnalysisOptions

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class WorkerOutcome:
    index: int
    options: AnalysisOptions
    result: dict[str, Any] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def build_request(options: AnalysisOptions, config: AnalyzerConfig) -> str:
    return json.dumps({"options": options.to_dict(), "config": config.to_dict()})


def handle_request(raw: str) -> dict[str, Any]:
    try:
        payload = json.loads(raw)
        options = AnalysisOptions.from_dict(payload["options"])
        config = AnalyzerConfig.from_dict(payload.get("config") or {})
        result = analyze_project(options, config=config)
    except (DepImpactError, KeyError, ValueError, TypeError) as exc:
        message = exc.message if isinstance(exc, DepImpactError) else str(exc)
        return {"status": "error", "message": message}
    return {"status": "success", "result": result.to_dict(relative=False)}


def _parse_response(stdout: str) -> dict[str, Any] | None:
    text = stdout.strip()
    if not text:
        return None
    try:
        response = json.loads(text.splitlines()[-1])
    except json.JSONDecodeError:
        return None
    if not isinstance(response, dict) or response.get("status") not in {"success", "error"}:
        return None
    return response


def dispatch(
    options: AnalysisOptions,
    config: AnalyzerConfig | None = None,
    python: str | None = None,
) -> dict[str, Any]:
    config = config or AnalyzerConfig.default()
    command = [python or sys.executable, "-m", "depimpact.worker"]
    proc = subprocess.run(
        command,
        input=build_request(options, config),
        capture_output=True,
        text=True,
        check=False,
    )
    response = _parse_response(proc.stdout)
    if response is None:
        if proc.returncode != 0:
            detail = proc.stderr.strip().splitlines()[-1:] if proc.stderr.strip() else []
            suffix = f": {detail[0]}" if detail else ""
            raise WorkerError(f"Worker stopped with exit code {proc.returncode}{suffix}", exit_code=proc.returncode)
        raise WorkerError("Worker exited without a response", exit_code=proc.returncode)
    if response["status"] == "error":
        raise WorkerError(str(response.get("message", "unknown worker error")))
    return response["result"]


def dispatch_many(
    jobs: list[AnalysisOptions],
    config: AnalyzerConfig | None = None,
    max_workers: int | None = None,
) -> list[WorkerOutcome]:
    config = config or AnalyzerConfig.default()
    workers = max(1, min(max_workers or config.workers.max_workers, len(jobs) or 1))
    outcomes: list[WorkerOutcome] = []

    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {pool.submit(dispatch, job, config): (index, job) for index, job in enumerate(jobs)}
        for future in as_completed(futures):
            index, job = futures[future]
            try:
                outcomes.append(WorkerOutcome(index=index, options=job, result=future.result()))
            except WorkerError as exc:
                logger.warning("worker %d failed: %s", index, exc.message)
                outcomes.append(WorkerOutcome(index=index, options=job, error=exc.message))

    return sorted(outcomes, key=lambda item: item.index)


def reconcile(results: list[dict[str, Any]]) -> DependencyContext:
    """Merge worker results and re-flood impact across their combined index."""
    context = DependencyContext()
    for result in results:
        for target, dependents in result.get("reverseDependencies", {}).items():
            for dependent in dependents:
                context.add_dependency(target, dependent)
        context.affected_files.update(result.get("affectedFiles", []))
        context.impacted_files.update(result.get("impactedFiles", []))
        context.warnings.extend(result.get("warnings", []))

    for path in sorted(context.impacted_files):
        propagate_changes(path, context)
    return context


def main() -> int:
    response = handle_request(sys.stdin.read())
    sys.stdout.write(json.dumps(response))
    sys.stdout.write("\n")
    sys.stdout.flush()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
