"""Path containment helpers shared by the extractor, the cache and the renderer."""

from __future__ import annotations

import os
from pathlib import Path

from tplforge.errors import IllegalPathError


def normalize_root(root: str | Path) -> str:
    """Return ``root`` as an absolute, normalized path string."""
    return os.path.normpath(os.path.abspath(root))


def is_within(path: str, root: str) -> bool:
    """
    Whether normalized ``path`` lies strictly inside normalized ``root``.

    ``root`` itself is not "within" ``root``.
    """
    prefix = root if root.endswith(os.sep) else root + os.sep
    return path.startswith(prefix)


def safe_join(root: str | Path, name: str, *, allow_root: bool = False) -> Path:
    """
    Join ``name`` onto ``root`` and refuse results outside ``root``.

    Parameters
    ----------
    root : str | Path
        Destination root.
    name : str
        Relative name taken from an archive entry, a rendered template path
        or a cache key. Absolute names and ``..`` components that climb out
        of ``root`` are rejected.
    allow_root : bool, default=False
        Accept a name that normalizes to ``root`` itself (``"."``, ``"./"``).

    Returns
    -------
    Path
        The normalized destination path.

    Raises
    ------
    IllegalPathError
        If the normalized destination is not strictly inside ``root``.

    Examples
    --------
    >>> safe_join("/out", "src/app.py")
    PosixPath('/out/src/app.py')
    >>> safe_join("/out", "../evil")
    Traceback (most recent call last):
    ...
    tplforge.errors.IllegalPathError: /evil: illegal file path (outside /out)
    """
    clean_root = normalize_root(root)
    dest = os.path.normpath(os.path.join(clean_root, name))

    if allow_root and dest == clean_root:
        return Path(dest)
    if not is_within(dest, clean_root):
        raise IllegalPathError(dest, clean_root)
    return Path(dest)
