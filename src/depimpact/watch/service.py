from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Callable
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from depimpact.cache import FactCache
from depimpact.config import AnalyzerConfig
from depimpact.errors import AnalysisError
from depimpact.pipeline import AnalysisResult, analyze_project
from depimpact.schemas import AnalysisOptions, ChangeType, FileChange

logger = logging.getLogger(__name__)


def should_track(path: Path, repo_root: Path, config: AnalyzerConfig) -> bool:
    try:
        rel = Path(os.path.realpath(path)).relative_to(repo_root)
    except ValueError:
        return False
    if any(part in config.ignore_dirs for part in rel.parts):
        return False
    if rel.name.startswith("."):
        return False
    return config.is_relevant(rel.name)


def _merge(previous: ChangeType | None, current: ChangeType) -> ChangeType:
    if previous is None:
        return current
    if current == ChangeType.DELETE:
        return ChangeType.DELETE
    if previous == ChangeType.ADD:
        return ChangeType.ADD
    if previous == ChangeType.DELETE and current == ChangeType.ADD:
        return ChangeType.MODIFY
    return current


class ChangeCollector(FileSystemEventHandler):
    """Turns filesystem events into a pending change set."""

    def __init__(self, repo_root: Path, config: AnalyzerConfig) -> None:
        self.repo_root = Path(os.path.realpath(repo_root))
        self.config = config
        self._lock = threading.Lock()
        self._pending: dict[str, ChangeType] = {}
        self._last_event = 0.0

    def record(self, path: Path, change_type: ChangeType) -> None:
        if not should_track(path, self.repo_root, self.config):
            return
        key = os.path.realpath(path)
        with self._lock:
            self._pending[key] = _merge(self._pending.get(key), change_type)
            self._last_event = time.monotonic()

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        src = Path(os.fsdecode(event.src_path))
        if event.event_type == "created":
            self.record(src, ChangeType.ADD)
        elif event.event_type == "deleted":
            self.record(src, ChangeType.DELETE)
        elif event.event_type == "modified":
            self.record(src, ChangeType.MODIFY)
        elif event.event_type == "moved":
            self.record(src, ChangeType.DELETE)
            dest_path = getattr(event, "dest_path", "")
            if dest_path:
                self.record(Path(os.fsdecode(dest_path)), ChangeType.ADD)

    def quiet_for(self, seconds: float) -> bool:
        with self._lock:
            return bool(self._pending) and time.monotonic() - self._last_event >= seconds

    def flush(self) -> list[FileChange]:
        with self._lock:
            pending = self._pending
            self._pending = {}
        return [
            FileChange(changed_file=path, change_type=change_type)
            for path, change_type in sorted(pending.items())
        ]


def run_once(
    repo_root: Path,
    entry_file: str,
    changes: list[FileChange],
    config: AnalyzerConfig,
    cache: FactCache,
) -> AnalysisResult:
    for change in changes:
        cache.delete(change.changed_file)
    options = AnalysisOptions(entry_file=entry_file, changes=changes, root_dir=str(repo_root))
    return analyze_project(options, config=config, cache=cache)


def watch_loop(
    repo_root: Path,
    entry_file: str,
    config: AnalyzerConfig,
    on_result: Callable[[list[FileChange], AnalysisResult], None],
    cache: FactCache | None = None,
    debounce_seconds: float = 0.8,
    poll_seconds: float = 0.2,
) -> None:
    cache = cache or FactCache.with_store(config.cache.path or None)
    collector = ChangeCollector(repo_root=repo_root, config=config)
    observer = Observer()
    observer.schedule(collector, str(repo_root), recursive=True)
    observer.start()
    try:
        while True:
            time.sleep(poll_seconds)
            if not collector.quiet_for(debounce_seconds):
                continue
            changes = collector.flush()
            if not changes:
                continue
            try:
                result = run_once(repo_root, entry_file, changes, config, cache)
            except AnalysisError as exc:
                logger.error("analysis failed: %s", exc.message)
                continue
            on_result(changes, result)
    except KeyboardInterrupt:
        logger.info("watch stopped")
    finally:
        observer.stop()
        observer.join()
