from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path

from depimpact.cache import FactCache
from depimpact.config import AnalyzerConfig
from depimpact.errors import AnalysisError, ParseError
from depimpact.graph.impact import (
    DependencyContext,
    find_affecting_changes,
    mark_affected,
    propagate_changes,
    self_change_reason,
)
from depimpact.resolver import resolve_import_path
from depimpact.schemas import FileChange, FileNode, ImportRecord, NodeKind
from depimpact.utils import path_matches

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DependencyGraph:
    """Result of one build: the annotated tree plus its run state.

    ``nodes`` is the arena of expanded nodes keyed by canonical path; every
    other occurrence of a path in the tree is a stub.
    """

    root: FileNode
    nodes: dict[str, FileNode]
    context: DependencyContext


@dataclass(slots=True)
class _Run:
    changes: list[FileChange]
    changes_by_path: dict[str, FileChange]
    context: DependencyContext = field(default_factory=DependencyContext)
    visited: set[str] = field(default_factory=set)
    nodes: dict[str, FileNode] = field(default_factory=dict)


def _targets(imports: list[ImportRecord]) -> list[str]:
    targets: list[str] = []
    for imp in imports:
        if imp.resolved is not None and imp.resolved not in targets:
            targets.append(imp.resolved)
    return targets


class GraphBuilder:
    def __init__(
        self,
        root_dir: Path,
        config: AnalyzerConfig | None = None,
        cache: FactCache | None = None,
    ) -> None:
        self.root_dir = Path(os.path.realpath(root_dir))
        self.config = config or AnalyzerConfig.default()
        self.cache = cache or FactCache()

    async def build(self, entry_file: str, changes: list[FileChange]) -> FileNode:
        graph = await self.build_graph(entry_file, changes)
        return graph.root

    async def build_graph(self, entry_file: str, changes: list[FileChange]) -> DependencyGraph:
        entry = os.path.realpath(entry_file)
        try:
            await asyncio.to_thread(os.stat, entry)
        except OSError as exc:
            raise AnalysisError(
                f"Failed to analyze project: entry file not found: {entry_file} ({exc.strerror})",
                entry=entry_file,
            ) from exc

        changes_by_path: dict[str, FileChange] = {}
        for change in changes:
            # First entry for a path wins, matching a linear scan of the list.
            changes_by_path.setdefault(change.changed_file, change)
        run = _Run(changes=list(changes), changes_by_path=changes_by_path)

        root = await self._visit(entry, run)
        self._reconcile(run)
        if entry in run.nodes:
            root = self._arrange(entry, run)
        return DependencyGraph(root=root, nodes=run.nodes, context=run.context)

    def kind_for(self, path: str) -> NodeKind:
        return NodeKind.SOURCE if self.config.is_source(path) else NodeKind.ASSET

    def is_ignored(self, path: str) -> bool:
        try:
            rel = Path(path).relative_to(self.root_dir)
        except ValueError:
            rel = Path(path)
        if any(part in self.config.ignore_dirs for part in rel.parts):
            return True
        return bool(self.config.exclude) and path_matches(rel.as_posix(), self.config.exclude)

    def _warn(self, run: _Run, message: str) -> None:
        logger.warning(message)
        run.context.warnings.append(message)

    async def _visit(self, path: str, run: _Run) -> FileNode:
        if path in run.visited:
            return FileNode(file=path, type=self.kind_for(path), stub=True)
        run.visited.add(path)

        if not await asyncio.to_thread(os.path.exists, path):
            self._warn(run, f"Could not access file {path}")
            return FileNode(file=path, type=NodeKind.ASSET)

        node = FileNode(file=path, type=self.kind_for(path))
        run.nodes[path] = node

        change = run.changes_by_path.get(path)
        if change is not None:
            node.change_type = change.change_type
            node.reason = self_change_reason(node)
            run.context.affected_files.add(path)

        if node.type == NodeKind.SOURCE:
            if not self.is_ignored(path):
                await self._expand(node, run)
        elif change is not None:
            node.is_affected = True
            run.context.affected_files.add(path)

        return node

    async def _expand(self, node: FileNode, run: _Run) -> None:
        try:
            facts = await self.cache.facts(node.file)
        except ParseError as exc:
            self._warn(run, f"Error analyzing file {node.file}: {exc.message}")
            return
        except (OSError, ValueError) as exc:
            self._warn(run, f"Error analyzing file {node.file}: {exc}")
            return

        imports = [
            replace(imp, specifiers=set(imp.specifiers), resolved=self._resolve(node.file, imp.source))
            for imp in facts.imports
        ]
        node.imports = imports
        node.exports = set(facts.exports)

        for imp in imports:
            if imp.resolved is not None:
                run.context.add_dependency(imp.resolved, node.file)
        targets = _targets(imports)

        if self.config.traversal.concurrent:
            children = await asyncio.gather(*(self._visit_child(target, run) for target in targets))
        else:
            children = [await self._visit_child(target, run) for target in targets]
        node.children = [child for child in children if child is not None]

        affecting = find_affecting_changes(
            imports,
            run.changes,
            run.context,
            empty_exports_mean_unknown=self.config.impact.empty_exports_mean_unknown,
        )
        if affecting:
            mark_affected(node, affecting, run.context)

    async def _visit_child(self, target: str, run: _Run) -> FileNode | None:
        if not await asyncio.to_thread(os.path.exists, target):
            self._warn(run, f"Could not access imported file: {target}")
            return None
        return await self._visit(target, run)

    def _resolve(self, from_file: str, specifier: str) -> str | None:
        return resolve_import_path(from_file, specifier, self.root_dir, self.config)

    def _reconcile(self, run: _Run) -> None:
        """Re-annotate expanded nodes against the complete index.

        Concurrent branches can check a node before a sibling branch marks one
        of its imports; flooding every impacted path again over the final
        reverse index and recomputing causes removes that dependence on
        interleaving. Annotations only ever grow here.
        """
        context = run.context
        for path in sorted(context.impacted_files):
            propagate_changes(path, context)

        for path in sorted(run.nodes):
            node = run.nodes[path]
            if node.imports is None:
                continue
            affecting = find_affecting_changes(
                node.imports,
                run.changes,
                context,
                empty_exports_mean_unknown=self.config.impact.empty_exports_mean_unknown,
            )
            if affecting:
                mark_affected(node, affecting, context)

    def _arrange(self, entry: str, run: _Run) -> FileNode:
        """Lay the arena out as a tree in declared import order.

        Concurrent branches race to expand a shared path, so the traversal
        itself may hang the expanded node under either importer. The first
        occurrence in a depth-first walk over import order owns the expanded
        node; later occurrences become stubs, as a sequential traversal would
        produce.
        """
        owned: set[str] = set()

        def place(path: str) -> FileNode:
            node = run.nodes[path]
            if path in owned:
                return FileNode(file=path, type=node.type, stub=True)
            owned.add(path)
            if node.imports is not None:
                node.children = [place(target) for target in _targets(node.imports) if target in run.nodes]
            return node

        return place(entry)
