"""Placeholder substitution across a project tree.

Tokens such as ``{SERVICE_NAME}`` are replaced in a single regex pass over
the alternation of every token, so matches never overlap and substituted
values are never scanned again.  Path components containing a token are
renamed as well.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Mapping

from ..errors import CompositionError
from .tree import ProjectTree, is_text_file, read_text_file


def _token_pattern(mapping: Mapping[str, str]) -> re.Pattern[str] | None:
    if not mapping:
        return None
    # Longest first so a token that prefixes another cannot shadow it.
    tokens = sorted(mapping, key=len, reverse=True)
    return re.compile("|".join(re.escape(token) for token in tokens))


def substitute_text(text: str, mapping: Mapping[str, str]) -> str:
    """Replace every token occurrence in *text* with its value."""
    pattern = _token_pattern(mapping)
    if pattern is None:
        return text
    return pattern.sub(lambda match: mapping[match.group(0)], text)


def substitute_tree(tree: ProjectTree, mapping: Mapping[str, str]) -> list[str]:
    """Substitute tokens in file contents and path names.

    Binary files are left untouched.  Files that are not UTF-8 keep their
    original encoding.  Renames are applied deepest-first so
    that a renamed directory never invalidates a pending child rename.

    Returns:
        Relative paths (after renaming) of every file whose content changed
        or that was renamed.

    Raises:
        CompositionError: if a rename would overwrite an existing path.
    """
    touched: set[str] = set()

    for path in tree.text_files():
        original, encoding = read_text_file(path)
        updated = substitute_text(original, mapping)
        if updated != original:
            path.write_bytes(updated.encode(encoding))
            touched.add(tree.relative(path))

    renamed = rename_paths(tree, mapping)
    touched = {renamed.get(rel, rel) for rel in touched}
    for new_rel in renamed.values():
        touched.add(new_rel)

    return sorted(p for p in touched if tree.path(p).is_file())


def rename_paths(tree: ProjectTree, mapping: Mapping[str, str]) -> dict[str, str]:
    """Rename every file or directory whose name contains a token.

    Returns:
        Mapping of old relative file path to new relative file path for each
        file whose path changed (directly or through a renamed parent).
    """
    pattern = _token_pattern(mapping)
    if pattern is None:
        return {}

    before = {tree.relative(p) for p in tree.iter_files()}

    candidates = [
        p for p in tree.root.rglob("*")
        if pattern.search(p.name) and ".git" not in p.relative_to(tree.root).parts
    ]
    # Deepest first; ties broken by name for deterministic ordering.
    candidates.sort(key=lambda p: (-len(p.parts), str(p)))

    for path in candidates:
        target = path.with_name(substitute_text(path.name, mapping))
        if target.exists():
            raise CompositionError(
                f"Cannot rename {tree.relative(path)}: "
                f"{tree.relative(target)} already exists"
            )
        path.rename(target)

    moved: dict[str, str] = {}
    for old_rel in before:
        new_rel = "/".join(
            substitute_text(part, mapping) for part in Path(old_rel).parts
        )
        if new_rel != old_rel:
            moved[old_rel] = new_rel
    return moved


def remaining_tokens(tree: ProjectTree, mapping: Mapping[str, str]) -> dict[str, list[str]]:
    """Report token occurrences still present in the tree.

    Returns:
        Mapping of relative path to the tokens found in that file's content
        or in the path itself.  Empty after a successful substitution.
    """
    pattern = _token_pattern(mapping)
    if pattern is None:
        return {}

    found: dict[str, list[str]] = {}
    for path in tree.iter_files():
        rel = tree.relative(path)
        hits = set(pattern.findall(rel))
        if is_text_file(path):
            hits.update(pattern.findall(read_text_file(path)[0]))
        if hits:
            found[rel] = sorted(hits)
    return found
