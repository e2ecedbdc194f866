from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePath

from depimpact.pipeline import AnalysisResult
from depimpact.schemas import FileNode, display_path
from depimpact.utils import write_json

LEGEND = [
    "Legend:",
    "  [MODIFY]   - File was modified",
    "  [DELETE]   - File was deleted",
    "  [ADD]      - File was added",
    "  [AFFECTED] - File is affected by changes",
    "",
    "→ Indicates impact reason",
]

REASON_WIDTH = 48


@dataclass(slots=True)
class ImpactRow:
    file: str
    status: str
    reason: str


def status_badge(node: FileNode) -> str:
    if node.change_type is not None:
        return f"[{node.change_type.value.upper()}]"
    if node.is_affected:
        return "[AFFECTED]"
    return ""


def _sort_key(node: FileNode) -> tuple[bool, str]:
    return (bool(node.children), PurePath(node.file).name)


def format_tree(node: FileNode, root_dir: Path | None = None) -> list[str]:
    lines: list[str] = []

    def visit(current: FileNode, prefix: str, is_last: bool) -> None:
        marker = "└── " if is_last else "├── "
        child_prefix = prefix + ("    " if is_last else "│   ")
        badge = status_badge(current)
        label = display_path(current.file, root_dir)
        lines.append(f"{prefix}{marker}{label} {badge}".rstrip())
        if current.reason:
            for reason in current.reason.split("\n"):
                lines.append(f"{child_prefix}    → {reason}")
        children = sorted(current.children, key=_sort_key)
        for index, child in enumerate(children):
            visit(child, child_prefix, index == len(children) - 1)

    visit(node, "", True)
    return lines


def collect_rows(result: AnalysisResult) -> list[ImpactRow]:
    rows: list[ImpactRow] = []
    for node in result.impacted_nodes():
        status = node.change_type.value.upper() if node.change_type is not None else "AFFECTED"
        rows.append(
            ImpactRow(
                file=display_path(node.file, result.root_dir),
                status=status,
                reason=node.reason or "-",
            )
        )
    return rows


def format_summary(rows: list[ImpactRow]) -> list[str]:
    if not rows:
        return ["No files were impacted by the changes."]

    file_width = max([len(row.file) for row in rows] + [len("File")])
    status_width = max([len(row.status) for row in rows] + [len("Status")])
    reason_width = max([len(line) for row in rows for line in row.reason.split("\n")] + [REASON_WIDTH])

    def rule(left: str, mid: str, right: str) -> str:
        return (
            left
            + "─" * (file_width + 2)
            + mid
            + "─" * (status_width + 2)
            + mid
            + "─" * (reason_width + 2)
            + right
        )

    def row(file: str, status: str, reason: str) -> str:
        return f"│ {file.ljust(file_width)} │ {status.ljust(status_width)} │ {reason.ljust(reason_width)} │"

    lines = [rule("┌", "┬", "┐"), row("File", "Status", "Impact Reason"), rule("├", "┼", "┤")]
    for item in rows:
        for index, reason in enumerate(item.reason.split("\n")):
            if index == 0:
                lines.append(row(item.file, item.status, reason))
            else:
                lines.append(row("", "", reason))
    lines.append(rule("└", "┴", "┘"))
    return lines


def render_text(result: AnalysisResult) -> str:
    lines = ["Dependency Tree Analysis:", "=======================", ""]
    lines.extend(format_tree(result.root, result.root_dir))
    lines.append("")
    lines.extend(LEGEND)
    lines.append("")
    lines.extend(["Impact Summary:", "==============", ""])
    lines.extend(format_summary(collect_rows(result)))
    if result.warnings:
        lines.append("")
        lines.append(f"Warnings ({len(result.warnings)}):")
        lines.extend(f"  - {item}" for item in result.warnings)
    return "\n".join(lines)


def write_report_json(result: AnalysisResult, output_path: Path) -> None:
    write_json(output_path, result.to_dict())


def write_report_markdown(result: AnalysisResult, output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    rows = collect_rows(result)
    lines: list[str] = []
    lines.append("# Change Impact Report")
    lines.append("")
    lines.append(f"- Root: `{result.root_dir}`")
    lines.append(f"- Entry: `{display_path(result.root.file, result.root_dir)}`")
    lines.append(f"- Affected files: {len(result.affected_files)}")
    lines.append("")

    lines.append("## Impacted Files")
    if not rows:
        lines.append("- None")
    else:
        lines.append("| File | Status | Reason |")
        lines.append("| --- | --- | --- |")
        for item in rows:
            reason = item.reason.replace("\n", "<br>")
            lines.append(f"| `{item.file}` | {item.status} | {reason} |")
    lines.append("")

    lines.append("## Warnings")
    if not result.warnings:
        lines.append("- None")
    else:
        for item in result.warnings:
            lines.append(f"- {item}")
    lines.append("")

    output_path.write_text("\n".join(lines), encoding="utf-8")
