from pathlib import Path

import pytest
from watchdog.events import (
    DirCreatedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from depimpact.cache import FactCache
from depimpact.config import AnalyzerConfig
from depimpact.schemas import ChangeType
from depimpact.watch import service
from depimpact.watch.service import ChangeCollector, _merge, run_once, should_track, watch_loop


def _collector(tmp_path: Path) -> tuple[Path, ChangeCollector]:
    root = tmp_path.resolve()
    return root, ChangeCollector(repo_root=root, config=AnalyzerConfig.default())


def test_should_track_filters_paths(tmp_path: Path) -> None:
    root = tmp_path.resolve()
    config = AnalyzerConfig.default()

    assert should_track(root / "src" / "a.ts", root, config)
    assert should_track(root / "src" / "logo.svg", root, config)
    assert not should_track(root / "node_modules" / "x" / "index.js", root, config)
    assert not should_track(root / "README.md", root, config)
    assert not should_track(root / "src" / ".a.js", root, config)
    assert not should_track(tmp_path.parent / "elsewhere.js", root, config)


def test_merge_rules() -> None:
    assert _merge(None, ChangeType.MODIFY) == ChangeType.MODIFY
    assert _merge(ChangeType.ADD, ChangeType.MODIFY) == ChangeType.ADD
    assert _merge(ChangeType.ADD, ChangeType.DELETE) == ChangeType.DELETE
    assert _merge(ChangeType.DELETE, ChangeType.ADD) == ChangeType.MODIFY
    assert _merge(ChangeType.MODIFY, ChangeType.MODIFY) == ChangeType.MODIFY


def test_collector_turns_events_into_changes(tmp_path: Path) -> None:
    root, collector = _collector(tmp_path)

    collector.on_any_event(FileCreatedEvent(str(root / "src" / "new.js")))
    collector.on_any_event(FileModifiedEvent(str(root / "src" / "new.js")))
    collector.on_any_event(FileDeletedEvent(str(root / "src" / "old.js")))
    collector.on_any_event(FileMovedEvent(str(root / "src" / "a.js"), str(root / "src" / "b.js")))
    collector.on_any_event(DirCreatedEvent(str(root / "src" / "pkg")))
    collector.on_any_event(FileModifiedEvent(str(root / "notes.txt")))

    changes = {Path(item.changed_file).name: item.change_type for item in collector.flush()}

    assert changes == {
        "new.js": ChangeType.ADD,
        "old.js": ChangeType.DELETE,
        "a.js": ChangeType.DELETE,
        "b.js": ChangeType.ADD,
    }
    assert collector.flush() == []


def test_quiet_for_waits_for_pending_changes(tmp_path: Path) -> None:
    root, collector = _collector(tmp_path)

    assert not collector.quiet_for(0)
    collector.record(root / "a.js", ChangeType.MODIFY)
    assert collector.quiet_for(0)
    assert not collector.quiet_for(3600)


def test_run_once_drops_stale_facts(tmp_path: Path) -> None:
    root = tmp_path.resolve()
    (root / "main.js").write_text("import { a } from './dep'\n", encoding="utf-8")
    dep = root / "dep.js"
    dep.write_text("export const a = 1\n", encoding="utf-8")
    cache = FactCache()
    config = AnalyzerConfig.default()

    run_once(root, str(root / "main.js"), [], config, cache)
    assert cache.lookup(str(dep)).exports == {"a"}

    dep.write_text("export const b = 1\n", encoding="utf-8")
    collector = ChangeCollector(repo_root=root, config=config)
    collector.on_any_event(FileModifiedEvent(str(dep)))
    result = run_once(root, str(root / "main.js"), collector.flush(), config, cache)

    assert cache.lookup(str(dep)).exports == {"b"}
    assert result.root.is_affected
    assert result.root.reason == "Directly affected: File 'dep.js' content was modified"


class _FakeObserver:
    def __init__(self) -> None:
        self.handler = None
        self.root = ""
        self.stopped = False
        self.joined = False

    def schedule(self, handler, path: str, recursive: bool = False) -> None:
        self.handler = handler
        self.root = path

    def start(self) -> None:
        self.handler.record(Path(self.root) / "a.js", ChangeType.MODIFY)

    def stop(self) -> None:
        self.stopped = True

    def join(self, timeout: float | None = None) -> None:
        self.joined = True


def test_watch_loop_stops_observer_when_callback_fails(monkeypatch, tmp_path: Path) -> None:
    root = tmp_path.resolve()
    observer = _FakeObserver()
    monkeypatch.setattr(service, "Observer", lambda: observer)
    monkeypatch.setattr(service, "run_once", lambda *args: object())

    def on_result(changes, result) -> None:
        raise RuntimeError("report failed")

    with pytest.raises(RuntimeError, match="report failed"):
        watch_loop(
            root,
            str(root / "main.js"),
            AnalyzerConfig.default(),
            on_result,
            cache=FactCache(),
            debounce_seconds=0,
            poll_seconds=0,
        )

    assert observer.stopped
    assert observer.joined
