"""Regex-based import/export extraction for JavaScript and TypeScript sources."""

from __future__ import annotations

import re
from pathlib import Path

from depimpact.errors import ParseError
from depimpact.schemas import FileFacts, ImportRecord

NAMESPACE = "*"
DEFAULT = "default"

BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
LINE_COMMENT_RE = re.compile(r"^\s*//.*$", re.MULTILINE)

IMPORT_FROM_RE = re.compile(
    r"""^\s*import\s+(?:type\s+)?(?P<clause>[\w$*{}\s,]+?)\s*from\s*['"](?P<source>[^'"]+)['"]""",
    re.MULTILINE,
)
IMPORT_SIDE_EFFECT_RE = re.compile(r"""^\s*import\s*['"](?P<source>[^'"]+)['"]""", re.MULTILINE)
EXPORT_FROM_RE = re.compile(
    r"""^\s*export\s+(?:type\s+)?(?P<clause>\*(?:\s+as\s+[\w$]+)?|\{[^}]*\})\s*from\s*['"](?P<source>[^'"]+)['"]""",
    re.MULTILINE,
)
REQUIRE_RE = re.compile(r"""\brequire\(\s*['"](?P<source>[^'"]+)['"]\s*\)""")
DYNAMIC_IMPORT_RE = re.compile(r"""\bimport\(\s*['"](?P<source>[^'"]+)['"]\s*\)""")

EXPORT_DECL_RE = re.compile(
    r"^\s*export\s+(?:declare\s+)?(?:abstract\s+)?(?:async\s+)?"
    r"(?:function\s*\*?|class|const|let|var|interface|type|enum)\s+([A-Za-z_$][\w$]*)",
    re.MULTILINE,
)
EXPORT_DEFAULT_RE = re.compile(r"^\s*export\s+default\b", re.MULTILINE)
EXPORT_LIST_RE = re.compile(r"^\s*export\s+(?:type\s+)?\{(?P<names>[^}]*)\}(?!\s*from)", re.MULTILINE)
AS_RE = re.compile(r"\s+as\s+")


def _strip_comments(source: str) -> str:
    source = BLOCK_COMMENT_RE.sub(" ", source)
    return LINE_COMMENT_RE.sub("", source)


def _split_names(body: str) -> list[tuple[str, str]]:
    """Split ``a, b as c, type d`` into ``(imported, local)`` pairs."""
    pairs: list[tuple[str, str]] = []
    for item in body.split(","):
        item = item.strip()
        if not item:
            continue
        item = re.sub(r"^type\s+", "", item)
        parts = AS_RE.split(item, maxsplit=1)
        imported = parts[0].strip()
        local = parts[1].strip() if len(parts) > 1 else imported
        if imported:
            pairs.append((imported, local))
    return pairs


def _import_bindings(clause: str) -> set[str]:
    names: set[str] = set()
    brace = re.search(r"\{([^}]*)\}", clause)
    if brace:
        names.update(imported for imported, _ in _split_names(brace.group(1)))
        clause = clause[: brace.start()] + clause[brace.end() :]
    for part in clause.split(","):
        part = part.strip()
        if not part:
            continue
        names.add(NAMESPACE if part.startswith("*") else DEFAULT)
    return names


def _reexport_bindings(clause: str) -> tuple[set[str], set[str]]:
    clause = clause.strip()
    if clause.startswith("*"):
        parts = AS_RE.split(clause, maxsplit=1)
        exported = {parts[1].strip()} if len(parts) > 1 else set()
        return {NAMESPACE}, exported
    pairs = _split_names(clause.strip("{}"))
    return {imported for imported, _ in pairs}, {local for _, local in pairs}


def parse_source(source: str) -> FileFacts:
    text = _strip_comments(source)
    found: list[tuple[int, ImportRecord]] = []
    exports: set[str] = set()

    for match in IMPORT_FROM_RE.finditer(text):
        found.append((match.start(), ImportRecord(match.group("source"), _import_bindings(match.group("clause")))))

    for match in IMPORT_SIDE_EFFECT_RE.finditer(text):
        found.append((match.start(), ImportRecord(match.group("source"), set())))

    for match in EXPORT_FROM_RE.finditer(text):
        imported, exported = _reexport_bindings(match.group("clause"))
        found.append((match.start(), ImportRecord(match.group("source"), imported)))
        exports.update(exported)

    for regex in (REQUIRE_RE, DYNAMIC_IMPORT_RE):
        for match in regex.finditer(text):
            found.append((match.start(), ImportRecord(match.group("source"), {NAMESPACE})))

    for match in EXPORT_DECL_RE.finditer(text):
        exports.add(match.group(1))

    if EXPORT_DEFAULT_RE.search(text):
        exports.add(DEFAULT)

    for match in EXPORT_LIST_RE.finditer(text):
        exports.update(local for _, local in _split_names(match.group("names")))

    found.sort(key=lambda item: item[0])
    return FileFacts(imports=[record for _, record in found], exports=exports)


def parse_file(path: str, content: str | None = None) -> FileFacts:
    if content is None:
        try:
            content = Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ParseError(f"cannot read {path}: {exc}", file_path=path) from exc
    return parse_source(content)
