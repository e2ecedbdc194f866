"""Change-impact rules: which import edges carry a change, and how far it floods."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import PurePath

from depimpact.parser import NAMESPACE
from depimpact.schemas import ChangeType, FileChange, FileNode, ImportRecord


@dataclass(slots=True)
class DependencyContext:
    """Shared state of one analysis run.

    ``affected_files`` holds every path judged impacted, including files that
    only changed themselves. ``impacted_files`` is the subset reached by
    propagation (a direct or indirect cause, or the flood); it is the set
    importers consult for indirect impact and the flood's revisit guard.
    """

    affected_files: set[str] = field(default_factory=set)
    impacted_files: set[str] = field(default_factory=set)
    reverse_dependencies: dict[str, set[str]] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    def add_dependency(self, target: str, dependent: str) -> None:
        self.reverse_dependencies.setdefault(target, set()).add(dependent)


@dataclass(slots=True)
class AffectingImport:
    change: FileChange
    imported_specifiers: list[str]
    indirect: bool = False


def _overlap(specifiers: set[str], modified_exports: list[str]) -> list[str]:
    if NAMESPACE in specifiers:
        return list(modified_exports)
    return [name for name in modified_exports if name in specifiers]


def _direct_cause(
    imp: ImportRecord,
    change: FileChange,
    empty_exports_mean_unknown: bool,
) -> AffectingImport | None:
    if change.change_type in {ChangeType.ADD, ChangeType.DELETE}:
        return AffectingImport(change=change, imported_specifiers=sorted(imp.specifiers))

    exports = change.modified_exports
    if exports:
        overlap = _overlap(imp.specifiers, exports)
        if not overlap:
            return None
        return AffectingImport(change=change, imported_specifiers=overlap)

    if exports is not None and not empty_exports_mean_unknown:
        return None
    return AffectingImport(change=change, imported_specifiers=sorted(imp.specifiers))


def find_affecting_changes(
    imports: list[ImportRecord],
    changes: list[FileChange],
    context: DependencyContext,
    empty_exports_mean_unknown: bool = True,
) -> list[AffectingImport]:
    affecting: list[AffectingImport] = []

    for change in changes:
        for imp in imports:
            if imp.resolved != change.changed_file:
                continue
            cause = _direct_cause(imp, change, empty_exports_mean_unknown)
            if cause is not None:
                affecting.append(cause)

    for imp in imports:
        if imp.resolved and imp.resolved in context.impacted_files:
            specifiers = sorted(imp.specifiers)
            affecting.append(
                AffectingImport(
                    change=FileChange(
                        changed_file=imp.resolved,
                        change_type=ChangeType.MODIFY,
                        modified_exports=specifiers,
                    ),
                    imported_specifiers=specifiers,
                    indirect=True,
                )
            )

    return affecting


def describe_impact(affecting: list[AffectingImport]) -> str:
    reasons: list[str] = []
    for item in affecting:
        file_name = PurePath(item.change.changed_file).name
        prefix = "Indirectly" if item.indirect else "Directly"

        if item.change.change_type == ChangeType.DELETE:
            reasons.append(f"{prefix} affected: Imported file '{file_name}' was deleted")
        elif item.change.change_type == ChangeType.ADD:
            reasons.append(f"{prefix} affected: New file '{file_name}' was added that is imported")
        elif item.change.modified_exports and item.imported_specifiers:
            names = ", ".join(item.imported_specifiers)
            reasons.append(f"{prefix} affected by modified exports from '{file_name}': {names}")
        else:
            reasons.append(f"{prefix} affected: File '{file_name}' content was modified")
    return "\n".join(reasons)


def self_change_reason(node: FileNode) -> str | None:
    if node.change_type is None:
        return None
    label = "Asset file" if node.type.value == "asset" else "File"
    return f"{label} was {node.change_type.past_tense}"


def propagate_changes(path: str, context: DependencyContext) -> None:
    """Flood ``path``'s impact through the reverse-dependency index."""
    context.affected_files.add(path)
    context.impacted_files.add(path)
    stack = [path]
    while stack:
        current = stack.pop()
        for dependent in sorted(context.reverse_dependencies.get(current, ())):
            if dependent in context.impacted_files:
                continue
            context.impacted_files.add(dependent)
            context.affected_files.add(dependent)
            stack.append(dependent)


def mark_affected(node: FileNode, affecting: list[AffectingImport], context: DependencyContext) -> None:
    node.is_affected = True
    lines = [line for line in (self_change_reason(node), describe_impact(affecting)) if line]
    node.reason = "\n".join(lines)
    propagate_changes(node.file, context)
