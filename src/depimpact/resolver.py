from __future__ import annotations

import os
from pathlib import Path

from depimpact.config import AnalyzerConfig


def _alias_base(specifier: str, aliases: dict[str, str]) -> tuple[str, str] | None:
    # Longest prefix wins so "@/ui/" beats "@/".
    for prefix in sorted(aliases, key=len, reverse=True):
        if specifier.startswith(prefix):
            return aliases[prefix], specifier[len(prefix) :]
    return None


def is_external(specifier: str, config: AnalyzerConfig) -> bool:
    if specifier.startswith(("./", "../")) or specifier in {".", ".."}:
        return False
    return _alias_base(specifier, config.aliases) is None


def resolve_import_path(
    from_file: str,
    specifier: str,
    root_dir: Path,
    config: AnalyzerConfig,
) -> str | None:
    """Map ``specifier`` as written in ``from_file`` to a canonical file path.

    Bare package specifiers and anything that does not exist on disk resolve
    to ``None``; neither is an error.
    """
    if is_external(specifier, config):
        return None

    alias = _alias_base(specifier, config.aliases)
    if alias is not None:
        base, rest = alias
        candidate = os.path.normpath(os.path.join(root_dir, base, rest))
    else:
        candidate = os.path.normpath(os.path.join(os.path.dirname(from_file), specifier))

    if os.path.isfile(candidate):
        return os.path.realpath(candidate)

    for ext in config.source_extensions:
        with_ext = f"{candidate}{ext}"
        if os.path.isfile(with_ext):
            return os.path.realpath(with_ext)

    for ext in config.asset_extensions:
        with_ext = f"{candidate}{ext}"
        if os.path.isfile(with_ext):
            return os.path.realpath(with_ext)

    for ext in config.source_extensions:
        index_path = os.path.join(candidate, f"index{ext}")
        if os.path.isfile(index_path):
            return os.path.realpath(index_path)

    return None
