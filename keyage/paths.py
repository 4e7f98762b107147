"""
Path Resolution
Maps user-supplied entry names onto files inside the store root.

Entries are files ending in ENTRY_SUFFIX. A name that already points at an
existing directory addresses a subtree and is left untouched. Every path is
checked against the canonical store root before anything destructive or
sensitive happens to it.
"""

import logging
from pathlib import Path

from keyage.errors import InvalidPathError

logger = logging.getLogger(__name__)

ENTRY_SUFFIX = ".age"


def resolve(root: str | Path, relative: str | Path) -> Path:
    """
    Join `relative` onto `root` and give it the entry suffix.

    `note` becomes `note.age`, `note.txt` becomes `note.txt.age` and
    `note.age` stays as it is. Existing directories are returned unchanged.
    The only filesystem access is a single ``is_dir`` check.
    """
    path = Path(root) / relative
    if path.is_dir():
        return path

    if path.suffix != ENTRY_SUFFIX:
        path = path.with_name(path.name + ENTRY_SUFFIX)

    logger.debug("resolved %s -> %s", relative, path)
    return path


def canonical_root(root: str | Path) -> Path:
    """Canonicalize the store root. A missing root is an error."""
    try:
        return Path(root).resolve(strict=True)
    except (OSError, RuntimeError) as e:
        raise InvalidPathError(f"Cannot canonicalize store root {root}: {e}") from e


def confined(root: str | Path, absolute: str | Path) -> bool:
    """
    Check that `absolute` lies strictly below the store root.

    Both sides are canonicalized first (symlinks followed, `..` collapsed),
    so a link or a relative segment pointing out of the store is caught.
    The root itself is not considered confined.

    Raises:
        InvalidPathError: If either side cannot be canonicalized. The check
            fails closed and never reports an error as ``False``.
    """
    base = canonical_root(root)
    try:
        candidate = Path(absolute).resolve()
    except (OSError, RuntimeError) as e:
        raise InvalidPathError(f"Cannot canonicalize {absolute}: {e}") from e

    return candidate != base and candidate.is_relative_to(base)


def is_entry_in_store(root: str | Path, relative: str | Path) -> bool:
    """True if `relative` names an existing entry file inside the store."""
    path = resolve(root, relative)
    return confined(root, path) and path.is_file()


def entry_name(root: str | Path, path: str | Path) -> str:
    """Inverse of resolve(): the relative entry name of an entry file."""
    rel = Path(path).relative_to(root).as_posix()
    if rel.endswith(ENTRY_SUFFIX):
        rel = rel[: -len(ENTRY_SUFFIX)]
    return rel
