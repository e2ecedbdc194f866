from __future__ import annotations

from pathlib import Path

from depimpact.pipeline import AnalysisResult
from depimpact.render.report import collect_rows, format_summary, format_tree, render_text, write_report_markdown
from depimpact.schemas import ChangeType, FileNode, NodeKind


def _result(root_dir: Path) -> AnalysisResult:
    leaf = FileNode(
        file=str(root_dir / "c.js"),
        type=NodeKind.SOURCE,
        change_type=ChangeType.DELETE,
        reason="File was deleted",
    )
    css = FileNode(file=str(root_dir / "b.css"), type=NodeKind.ASSET)
    mid = FileNode(
        file=str(root_dir / "b.js"),
        type=NodeKind.SOURCE,
        children=[leaf],
        is_affected=True,
        reason="Directly affected: Imported file 'c.js' was deleted",
    )
    root = FileNode(
        file=str(root_dir / "a.js"),
        type=NodeKind.SOURCE,
        children=[mid, css],
        is_affected=True,
        reason="Indirectly affected by modified exports from 'b.js': b",
    )
    return AnalysisResult(
        root=root,
        root_dir=root_dir,
        affected_files={root.file, mid.file, leaf.file},
        impacted_files={root.file, mid.file},
        warnings=["Could not access file /x/gone.js"],
    )


def test_format_tree_lists_leaves_first_with_reasons() -> None:
    root_dir = Path("/proj")

    lines = format_tree(_result(root_dir).root, root_dir)

    assert lines == [
        "└── a.js [AFFECTED]",
        "        → Indirectly affected by modified exports from 'b.js': b",
        "    ├── b.css",
        "    └── b.js [AFFECTED]",
        "            → Directly affected: Imported file 'c.js' was deleted",
        "        └── c.js [DELETE]",
        "                → File was deleted",
    ]


def test_summary_table_rows() -> None:
    rows = collect_rows(_result(Path("/proj")))

    assert [(row.file, row.status) for row in rows] == [("a.js", "AFFECTED"), ("b.js", "AFFECTED"), ("c.js", "DELETE")]
    table = format_summary(rows)
    assert table[0].startswith("┌")
    assert table[1].startswith("│ File ")
    assert table[-1].startswith("└")


def test_empty_summary() -> None:
    assert format_summary([]) == ["No files were impacted by the changes."]


def test_render_text_includes_legend_and_warnings() -> None:
    text = render_text(_result(Path("/proj")))

    assert "Legend:" in text
    assert "Impact Summary:" in text
    assert "Warnings (1):" in text
    assert "  - Could not access file /x/gone.js" in text


def test_markdown_report(tmp_path: Path) -> None:
    output = tmp_path / "out" / "report.md"

    write_report_markdown(_result(Path("/proj")), output)

    text = output.read_text(encoding="utf-8")
    assert "# Change Impact Report" in text
    assert "- Entry: `a.js`" in text
    assert "| `c.js` | DELETE | File was deleted |" in text
