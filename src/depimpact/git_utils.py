from __future__ import annotations

import logging
import os
import re
import subprocess
from pathlib import Path

from depimpact.cache import FactCache
from depimpact.config import AnalyzerConfig
from depimpact.errors import ParseError
from depimpact.schemas import ChangeType, ContentChanges, DiffHunk, FileChange

logger = logging.getLogger(__name__)

HUNK_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")


class GitError(RuntimeError):
    pass


def _run_git(repo: Path, args: list[str]) -> str:
    proc = subprocess.run(
        ["git", *args],
        cwd=repo,
        check=False,
        capture_output=True,
        text=True,
    )
    if proc.returncode != 0:
        raise GitError(proc.stderr.strip() or proc.stdout.strip())
    return proc.stdout


def parse_range(value: str) -> tuple[str, str]:
    base, sep, head = value.partition("..")
    head = head.lstrip(".")
    if not sep or not base or not head:
        raise ValueError(f"Invalid git range format '{value}'. Use format: commit1..commit2")
    return base, head


def show_file(repo: Path, ref: str, rel_path: str) -> str:
    return _run_git(repo, ["show", f"{ref}:{rel_path}"])


def name_status(repo: Path, base: str, head: str) -> list[tuple[str, list[str]]]:
    out = _run_git(repo, ["diff", "--name-status", base, head])
    entries: list[tuple[str, list[str]]] = []
    for line in out.splitlines():
        if not line.strip():
            continue
        status, *paths = line.split("\t")
        entries.append((status[:1], paths))
    return entries


def _diff_path(line: str) -> str | None:
    path = line[4:].strip()
    if path == "/dev/null":
        return None
    return path[2:] if path.startswith(("a/", "b/")) else path


def parse_unified_diff(text: str) -> dict[str, ContentChanges]:
    """Split `git diff` output into per-file line counts and hunks.

    Files are keyed by their repo-relative path after the change, or before it
    for deletions.
    """
    files: dict[str, ContentChanges] = {}
    current: ContentChanges | None = None
    hunk: DiffHunk | None = None
    old_path: str | None = None

    for line in text.splitlines():
        if line.startswith("diff --git"):
            current, hunk, old_path = None, None, None
            continue
        if hunk is None and line.startswith("--- "):
            old_path = _diff_path(line)
            continue
        if hunk is None and line.startswith("+++ "):
            path = _diff_path(line) or old_path
            if path is not None:
                current = files.setdefault(path, ContentChanges())
            continue
        match = HUNK_RE.match(line)
        if match and current is not None:
            old_start, old_lines, new_start, new_lines = match.groups()
            # An omitted count means a single line.
            hunk = DiffHunk(
                old_start=int(old_start),
                old_lines=1 if old_lines is None else int(old_lines),
                new_start=int(new_start),
                new_lines=1 if new_lines is None else int(new_lines),
            )
            current.hunks.append(hunk)
            continue
        if hunk is None or current is None:
            continue
        if line.startswith("+"):
            hunk.lines.append(line)
            current.additions += 1
        elif line.startswith("-"):
            hunk.lines.append(line)
            current.deletions += 1

    return files


def content_diff(repo: Path, base: str, head: str) -> dict[str, ContentChanges]:
    return parse_unified_diff(_run_git(repo, ["diff", "-U0", base, head]))


def _exports_at(repo: Path, ref: str, rel_path: str, abs_path: str, cache: FactCache) -> set[str]:
    content = show_file(repo, ref, rel_path)
    return set(cache.lookup(abs_path, content).exports)


def _modified_exports(
    repo: Path,
    base: str,
    head: str,
    rel_path: str,
    abs_path: str,
    cache: FactCache,
) -> list[str] | None:
    try:
        before = _exports_at(repo, base, rel_path, abs_path, cache)
        try:
            after = _exports_at(repo, head, rel_path, abs_path, cache)
        except GitError:
            # head may be the working tree rather than a commit
            after = set(cache.lookup(abs_path).exports)
    except (GitError, ParseError) as exc:
        logger.warning("Could not analyze exports for %s: %s", rel_path, exc)
        return None
    changed = sorted(before.symmetric_difference(after))
    return changed or None


def collect_changes(
    repo: Path,
    base: str,
    head: str,
    config: AnalyzerConfig | None = None,
    cache: FactCache | None = None,
    detailed: bool = False,
) -> list[FileChange]:
    config = config or AnalyzerConfig.default()
    cache = cache or FactCache()
    repo = Path(os.path.realpath(repo))
    changes: list[FileChange] = []
    diffs = content_diff(repo, base, head) if detailed else {}

    def absolute(rel_path: str) -> str:
        return os.path.realpath(repo / rel_path)

    for status, paths in name_status(repo, base, head):
        if status == "R" and len(paths) == 2:
            old, new = paths
            if config.is_source(old):
                changes.append(FileChange(changed_file=absolute(old), change_type=ChangeType.DELETE))
            if config.is_source(new):
                changes.append(
                    FileChange(changed_file=absolute(new), change_type=ChangeType.ADD, content_changes=diffs.get(new))
                )
            continue

        rel_path = paths[-1]
        if not config.is_source(rel_path):
            continue
        abs_path = absolute(rel_path)

        content = diffs.get(rel_path)
        if status == "A":
            changes.append(FileChange(changed_file=abs_path, change_type=ChangeType.ADD, content_changes=content))
        elif status == "D":
            changes.append(FileChange(changed_file=abs_path, change_type=ChangeType.DELETE, content_changes=content))
        else:
            exports = _modified_exports(repo, base, head, rel_path, abs_path, cache) if detailed else None
            changes.append(
                FileChange(
                    changed_file=abs_path,
                    change_type=ChangeType.MODIFY,
                    modified_exports=exports,
                    content_changes=content,
                )
            )

    return changes
