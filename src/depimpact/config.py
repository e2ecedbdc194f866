from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_CONFIG = """source_extensions:
  - .js
  - .jsx
  - .ts
  - .tsx
asset_extensions:
  - .css
  - .svg
  - .png
  - .jpg
  - .jpeg
  - .gif
aliases:
  "@/": src
ignore_dirs:
  - node_modules
  - .git
  - .vscode
  - dist
  - build
exclude: []
impact:
  empty_exports_mean_unknown: true
traversal:
  concurrent: true
workers:
  max_workers: 4
cache:
  path: ""
"""

DEFAULT_CONFIG_PATH = Path(".depimpact/config.yaml")


@dataclass(slots=True)
class ImpactConfig:
    empty_exports_mean_unknown: bool = True


@dataclass(slots=True)
class TraversalConfig:
    concurrent: bool = True


@dataclass(slots=True)
class WorkerConfig:
    max_workers: int = 4


@dataclass(slots=True)
class CacheConfig:
    path: str = ""


@dataclass(slots=True)
class AnalyzerConfig:
    source_extensions: list[str]
    asset_extensions: list[str]
    aliases: dict[str, str]
    ignore_dirs: list[str]
    exclude: list[str]
    impact: ImpactConfig = field(default_factory=ImpactConfig)
    traversal: TraversalConfig = field(default_factory=TraversalConfig)
    workers: WorkerConfig = field(default_factory=WorkerConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)

    @classmethod
    def default(cls) -> AnalyzerConfig:
        data = yaml.safe_load(DEFAULT_CONFIG)
        return cls.from_dict(data)

    @classmethod
    def from_path(cls, path: Path) -> AnalyzerConfig:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        return cls.from_dict(data)

    @classmethod
    def load(cls, path: Path | None) -> AnalyzerConfig:
        if path is not None and path.exists():
            return cls.from_path(path)
        return cls.default()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnalyzerConfig:
        impact_data = data.get("impact") or {}
        traversal_data = data.get("traversal") or {}
        workers_data = data.get("workers") or {}
        cache_data = data.get("cache") or {}

        impact = ImpactConfig(
            empty_exports_mean_unknown=bool(impact_data.get("empty_exports_mean_unknown", True)),
        )
        traversal = TraversalConfig(concurrent=bool(traversal_data.get("concurrent", True)))
        workers = WorkerConfig(max_workers=max(1, int(workers_data.get("max_workers", 4))))
        cache = CacheConfig(path=str(cache_data.get("path") or ""))

        env_concurrent = os.getenv("DEPIMPACT_CONCURRENT", "").strip().lower()
        env_workers = os.getenv("DEPIMPACT_MAX_WORKERS", "").strip()
        env_cache = os.getenv("DEPIMPACT_CACHE_DB", "").strip()
        env_empty = os.getenv("DEPIMPACT_EMPTY_EXPORTS", "").strip().lower()

        if env_concurrent in {"1", "true", "yes", "on"}:
            traversal.concurrent = True
        elif env_concurrent in {"0", "false", "no", "off"}:
            traversal.concurrent = False
        if env_workers:
            try:
                workers.max_workers = max(1, int(env_workers))
            except ValueError:
                pass
        if env_cache:
            cache.path = env_cache
        if env_empty == "unknown":
            impact.empty_exports_mean_unknown = True
        elif env_empty == "none":
            impact.empty_exports_mean_unknown = False

        return cls(
            source_extensions=_normalize_extensions(data.get("source_extensions", [".js", ".jsx", ".ts", ".tsx"])),
            asset_extensions=_normalize_extensions(
                data.get("asset_extensions", [".css", ".svg", ".png", ".jpg", ".jpeg", ".gif"])
            ),
            aliases={str(key): str(value) for key, value in (data.get("aliases") or {}).items()},
            ignore_dirs=list(data.get("ignore_dirs", ["node_modules", ".git"])),
            exclude=list(data.get("exclude") or []),
            impact=impact,
            traversal=traversal,
            workers=workers,
            cache=cache,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_extensions": list(self.source_extensions),
            "asset_extensions": list(self.asset_extensions),
            "aliases": dict(self.aliases),
            "ignore_dirs": list(self.ignore_dirs),
            "exclude": list(self.exclude),
            "impact": {"empty_exports_mean_unknown": self.impact.empty_exports_mean_unknown},
            "traversal": {"concurrent": self.traversal.concurrent},
            "workers": {"max_workers": self.workers.max_workers},
            "cache": {"path": self.cache.path},
        }

    def is_source(self, path: str) -> bool:
        return path.lower().endswith(tuple(self.source_extensions))

    def is_asset(self, path: str) -> bool:
        return path.lower().endswith(tuple(self.asset_extensions))

    def is_relevant(self, path: str) -> bool:
        return self.is_source(path) or self.is_asset(path)


def _normalize_extensions(values: list[str]) -> list[str]:
    result: list[str] = []
    for value in values:
        ext = str(value).strip().lower()
        if not ext:
            continue
        result.append(ext if ext.startswith(".") else f".{ext}")
    return result


def ensure_config(path: Path, force: bool = False) -> None:
    if path.exists() and not force:
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_CONFIG, encoding="utf-8")
