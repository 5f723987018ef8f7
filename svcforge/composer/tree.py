"""Working copy of a cloned template.

``ProjectTree`` wraps the root directory of the project being composed.
Writes can be *staged*: staged content is visible to subsequent reads but
only reaches the disk on :meth:`ProjectTree.commit`.  The fragment merger
relies on this so that a failed merge leaves no file half-edited.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

from ..errors import CompositionError

# Skipped without reading; everything else is classified by content.
BINARY_EXTENSIONS: frozenset[str] = frozenset({
    ".jar",
    ".class",
    ".zip",
    ".gz",
    ".tar",
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".ico",
    ".pdf",
    ".woff",
    ".woff2",
    ".ttf",
    ".jks",
    ".p12",
})

FALLBACK_ENCODING = "latin-1"

_SNIFF_BYTES = 8192


def is_text_file(path: Path) -> bool:
    """Return ``True`` if *path* should receive placeholder substitution.

    A file is text when its first bytes contain no NUL byte.  The name does
    not matter, so ``Dockerfile``, ``.env`` and shell scripts all qualify.
    """
    if path.suffix.lower() in BINARY_EXTENSIONS:
        return False
    with path.open("rb") as fh:
        return b"\x00" not in fh.read(_SNIFF_BYTES)


def read_text_file(path: Path) -> tuple[str, str]:
    """Decode *path* and return ``(text, encoding)``.

    UTF-8 is tried first.  Anything else (Latin-1 ``.properties`` files, for
    instance) is decoded as Latin-1, which maps every byte, so writing the
    text back with the same encoding reproduces the untouched bytes exactly.
    """
    data = path.read_bytes()
    try:
        return data.decode("utf-8"), "utf-8"
    except UnicodeDecodeError:
        return data.decode(FALLBACK_ENCODING), FALLBACK_ENCODING


class ProjectTree:
    """A project directory owned exclusively by one composition run."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        if not self.root.is_dir():
            raise FileNotFoundError(f"Project tree not found: {self.root}")
        self._staged: dict[str, str] = {}

    # -- Paths -------------------------------------------------------------

    def path(self, relative: str | Path) -> Path:
        return self.root / relative

    def relative(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def exists(self, relative: str | Path) -> bool:
        key = Path(relative).as_posix()
        return key in self._staged or self.path(relative).is_file()

    def iter_files(self, *, skip_dirs: tuple[str, ...] = (".git",)) -> Iterator[Path]:
        """Yield every regular file under the root in sorted order."""
        for path in sorted(self.root.rglob("*")):
            if not path.is_file():
                continue
            rel_parts = path.relative_to(self.root).parts
            if any(part in skip_dirs for part in rel_parts[:-1]):
                continue
            yield path

    def text_files(self, *, skip_dirs: tuple[str, ...] = (".git",)) -> Iterator[Path]:
        for path in self.iter_files(skip_dirs=skip_dirs):
            if is_text_file(path):
                yield path

    # -- Content -----------------------------------------------------------

    def read(self, relative: str | Path) -> str:
        """Return staged content if present, otherwise the on-disk content."""
        key = Path(relative).as_posix()
        if key in self._staged:
            return self._staged[key]
        try:
            return self.path(relative).read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise CompositionError(
                f"{key} is not valid UTF-8 (byte {exc.start}); it cannot be merged into",
                f"Re-encode {key} as UTF-8 in the template.",
            ) from exc

    def write(self, relative: str | Path, content: str) -> Path:
        """Write *content* straight to disk, bypassing the stage."""
        target = self.path(relative)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        self._staged.pop(Path(relative).as_posix(), None)
        return target

    # -- Staging -----------------------------------------------------------

    def stage(self, relative: str | Path, content: str) -> None:
        self._staged[Path(relative).as_posix()] = content

    @property
    def staged(self) -> list[str]:
        return sorted(self._staged)

    def commit(self) -> list[str]:
        """Flush every staged write to disk and return the written paths."""
        written = sorted(self._staged)
        for key in written:
            target = self.path(key)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(self._staged[key], encoding="utf-8")
        self._staged.clear()
        return written

    def discard(self) -> None:
        self._staged.clear()
