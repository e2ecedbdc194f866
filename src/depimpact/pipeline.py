from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from depimpact.cache import FactCache
from depimpact.config import AnalyzerConfig
from depimpact.graph.builder import GraphBuilder
from depimpact.schemas import AnalysisOptions, FileNode, display_path
from depimpact.utils import canonical_path


@dataclass(slots=True)
class AnalysisResult:
    root: FileNode
    root_dir: Path
    affected_files: set[str] = field(default_factory=set)
    impacted_files: set[str] = field(default_factory=set)
    reverse_dependencies: dict[str, set[str]] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    def impacted_nodes(self) -> list[FileNode]:
        return [
            node
            for node in self.root.walk()
            if not node.stub and (node.change_type is not None or node.is_affected)
        ]

    def to_dict(self, relative: bool = True) -> dict[str, Any]:
        base = self.root_dir if relative else None

        def rel(path: str) -> str:
            return display_path(path, base)

        return {
            "rootDir": str(self.root_dir),
            "tree": self.root.to_dict(base),
            "affectedFiles": sorted(rel(path) for path in self.affected_files),
            "impactedFiles": sorted(rel(path) for path in self.impacted_files),
            "reverseDependencies": {
                rel(target): sorted(rel(item) for item in dependents)
                for target, dependents in sorted(self.reverse_dependencies.items())
            },
            "warnings": list(self.warnings),
        }


def normalize_options(options: AnalysisOptions) -> AnalysisOptions:
    """Resolve entry and change paths against the root into canonical form."""
    root = Path(canonical_path(options.root_dir))
    changes = [
        replace(change, changed_file=canonical_path(change.changed_file, root))
        for change in options.changes
    ]
    return AnalysisOptions(
        entry_file=canonical_path(options.entry_file, root),
        changes=changes,
        root_dir=str(root),
    )


async def analyze_project_async(
    options: AnalysisOptions,
    config: AnalyzerConfig | None = None,
    cache: FactCache | None = None,
) -> AnalysisResult:
    config = config or AnalyzerConfig.default()
    if cache is None:
        cache = FactCache.with_store(config.cache.path or None)
    options = normalize_options(options)
    root_dir = Path(options.root_dir)

    builder = GraphBuilder(root_dir=root_dir, config=config, cache=cache)
    graph = await builder.build_graph(options.entry_file, options.changes)
    context = graph.context
    return AnalysisResult(
        root=graph.root,
        root_dir=root_dir,
        affected_files=set(context.affected_files),
        impacted_files=set(context.impacted_files),
        reverse_dependencies={key: set(value) for key, value in context.reverse_dependencies.items()},
        warnings=list(context.warnings),
    )


def analyze_project(
    options: AnalysisOptions,
    config: AnalyzerConfig | None = None,
    cache: FactCache | None = None,
) -> AnalysisResult:
    return asyncio.run(analyze_project_async(options, config=config, cache=cache))
