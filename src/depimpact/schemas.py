from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any


class Serializable:
    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ChangeType(StrEnum):
    ADD = "add"
    MODIFY = "modify"
    DELETE = "delete"

    @property
    def past_tense(self) -> str:
        return {"add": "added", "modify": "modified", "delete": "deleted"}[self.value]


class NodeKind(StrEnum):
    SOURCE = "js"
    ASSET = "asset"


@dataclass(slots=True)
class DiffHunk:
    """One `@@ -a,b +c,d @@` block; ``lines`` keep their leading ``+``/``-``."""

    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    lines: list[str] = field(default_factory=list)

    def header(self) -> str:
        return f"@@ -{self.old_start},{self.old_lines} +{self.new_start},{self.new_lines} @@"

    def to_dict(self) -> dict[str, Any]:
        return {
            "oldStart": self.old_start,
            "oldLines": self.old_lines,
            "newStart": self.new_start,
            "newLines": self.new_lines,
            "changes": [
                {"type": "addition" if line.startswith("+") else "deletion", "content": line[1:]}
                for line in self.lines
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DiffHunk:
        return cls(
            old_start=int(data["oldStart"]),
            old_lines=int(data["oldLines"]),
            new_start=int(data["newStart"]),
            new_lines=int(data["newLines"]),
            lines=[
                ("+" if item.get("type") == "addition" else "-") + str(item.get("content", ""))
                for item in data.get("changes", [])
            ],
        )


@dataclass(slots=True)
class ContentChanges:
    additions: int = 0
    deletions: int = 0
    hunks: list[DiffHunk] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "additions": self.additions,
            "deletions": self.deletions,
            "hunks": [hunk.to_dict() for hunk in self.hunks],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ContentChanges:
        return cls(
            additions=int(data.get("additions", 0)),
            deletions=int(data.get("deletions", 0)),
            hunks=[DiffHunk.from_dict(item) for item in data.get("hunks", [])],
        )


@dataclass(slots=True)
class FileChange(Serializable):
    changed_file: str
    change_type: ChangeType
    modified_exports: list[str] | None = None
    content_changes: ContentChanges | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileChange:
        changed_file = data.get("changedFile", data.get("changed_file"))
        change_type = data.get("changeType", data.get("change_type"))
        if not changed_file or not change_type:
            raise ValueError(f"change entry needs changedFile and changeType: {data!r}")
        exports = data.get("modifiedExports", data.get("modified_exports"))
        if exports is not None and not isinstance(exports, list):
            raise ValueError(f"modifiedExports must be a list of names: {exports!r}")
        content = data.get("contentChanges", data.get("content_changes"))
        return cls(
            changed_file=str(changed_file),
            change_type=ChangeType(str(change_type).lower()),
            modified_exports=None if exports is None else [str(item) for item in exports],
            content_changes=None if content is None else ContentChanges.from_dict(content),
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "changedFile": self.changed_file,
            "changeType": self.change_type.value,
        }
        if self.modified_exports is not None:
            payload["modifiedExports"] = list(self.modified_exports)
        if self.content_changes is not None:
            payload["contentChanges"] = self.content_changes.to_dict()
        return payload


@dataclass(slots=True)
class ImportRecord:
    source: str
    specifiers: set[str] = field(default_factory=set)
    resolved: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"source": self.source, "specifiers": sorted(self.specifiers)}


@dataclass(slots=True)
class FileFacts:
    imports: list[ImportRecord] = field(default_factory=list)
    exports: set[str] = field(default_factory=set)

    def to_dict(self) -> dict[str, Any]:
        return {
            "imports": [item.to_dict() for item in self.imports],
            "exports": sorted(self.exports),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileFacts:
        imports = [
            ImportRecord(source=item["source"], specifiers=set(item.get("specifiers", [])))
            for item in data.get("imports", [])
        ]
        return cls(imports=imports, exports=set(data.get("exports", [])))


@dataclass(slots=True)
class FileNode:
    """One vertex of the dependency tree.

    A ``stub`` node stands in for a path already expanded elsewhere in the
    run: it carries no imports, exports or children.
    """

    file: str
    type: NodeKind
    children: list[FileNode] = field(default_factory=list)
    imports: list[ImportRecord] | None = None
    exports: set[str] | None = None
    change_type: ChangeType | None = None
    is_affected: bool = False
    reason: str | None = None
    stub: bool = False

    def to_dict(self, root_dir: Path | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "file": display_path(self.file, root_dir),
            "type": self.type.value,
        }
        if self.change_type is not None:
            payload["changeType"] = self.change_type.value
        if self.is_affected:
            payload["isAffected"] = True
        if self.reason:
            payload["reason"] = self.reason
        if self.imports is not None:
            payload["imports"] = [item.to_dict() for item in self.imports]
        if self.exports is not None:
            payload["exports"] = sorted(self.exports)
        payload["children"] = [child.to_dict(root_dir) for child in self.children]
        return payload

    def walk(self):
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass(slots=True)
class AnalysisOptions(Serializable):
    entry_file: str
    changes: list[FileChange] = field(default_factory=list)
    root_dir: str = "."

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnalysisOptions:
        entry = data.get("entryFile", data.get("entry_file"))
        if not entry:
            raise ValueError("analysis options need an entryFile")
        return cls(
            entry_file=str(entry),
            changes=[FileChange.from_dict(item) for item in data.get("changes", [])],
            root_dir=str(data.get("rootDir", data.get("root_dir", "."))),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "entryFile": self.entry_file,
            "changes": [item.to_dict() for item in self.changes],
            "rootDir": self.root_dir,
        }


def display_path(path: str, root_dir: Path | None) -> str:
    if root_dir is None:
        return path
    try:
        rel = Path(path).relative_to(root_dir)
    except ValueError:
        return path
    return rel.as_posix() or "."
