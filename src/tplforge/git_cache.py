"""
tplforge.git_cache - Git-backed Template Cache
==============================================

Remote template repositories are cloned once into a cache directory and
fast-forwarded on every later use:

    <cache_root>/<host>/<path>      e.g. ~/.cache/tplforge/github.com/acme/svc

The ``(host, path)`` of the URL is the cache key (see ``CacheKey``), so one
remote always maps to one directory.

git is driven through ``subprocess``; authentication is left entirely to
git and its credential helpers.

Limitations
-----------
Two processes obtaining the same remote at the same time are not
synchronized. An interrupted clone or pull can leave the cache directory in
an indeterminate state; remove it to force a fresh clone.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys
from collections import deque
from pathlib import Path
from typing import IO, TYPE_CHECKING

from tplforge.errors import GitError
from tplforge.models import CacheKey


if TYPE_CHECKING:
    from tplforge.models import Settings


logger = logging.getLogger(__name__)

REMOTE_NAME = "origin"


def _run_git(args: list[str], *, url: str, path: Path) -> str:
    """Run a git command, returning stdout; failures become ``GitError``."""
    try:
        result = subprocess.run(
            ["git", *args],
            capture_output=True,
            check=True,
            text=True,
        )
    except FileNotFoundError as exc:
        raise GitError(url, path, "git executable not found") from exc
    except subprocess.CalledProcessError as exc:
        reason = (exc.stderr or "").strip() or f"exit status {exc.returncode}"
        raise GitError(url, path, reason) from exc
    return result.stdout.strip()


def _head(path: Path, url: str) -> str:
    return _run_git(["-C", str(path), "rev-parse", "HEAD"], url=url, path=path)


def update_repository(path: Path, url: str) -> bool:
    """
    Fast-forward an existing cached clone from ``origin``.

    Returns
    -------
    bool
        True if new commits were pulled, False if already up to date.

    Raises
    ------
    GitError
        If the directory is not a repository or the pull fails (including a
        pull that cannot fast-forward).
    """
    before = _head(path, url)
    output = _run_git(
        ["-C", str(path), "pull", "--ff-only", REMOTE_NAME], url=url, path=path
    )
    logger.debug("git pull in %s: %s", path, output)
    after = _head(path, url)

    if before == after:
        logger.info("Template cache %s is already up to date", path)
        return False

    logger.info("Updated template cache %s (%s -> %s)", path, before[:8], after[:8])
    return True


def clone_repository(url: str, path: Path, progress: IO[str] | None = None) -> None:
    """
    Clone ``url`` into ``path``, streaming git's progress to ``progress``.

    The directory (and its parents) is created first. If the clone fails the
    directory is removed again so the next attempt clones from scratch.

    Raises
    ------
    GitError
        If git is missing or the clone fails.
    """
    progress = sys.stderr if progress is None else progress
    path.mkdir(parents=True, exist_ok=True)

    # Last lines of output, used as the failure reason.
    tail: deque[str] = deque(maxlen=5)
    try:
        with subprocess.Popen(
            ["git", "clone", "--progress", url, str(path)],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            text=True,
        ) as proc:
            for line in proc.stderr or ():
                progress.write(line)
                if line.strip():
                    tail.append(line.strip())
            returncode = proc.wait()
    except FileNotFoundError as exc:
        shutil.rmtree(path)
        raise GitError(url, path, "git executable not found") from exc

    if returncode != 0:
        shutil.rmtree(path)
        raise GitError(url, path, "; ".join(tail) or f"exit status {returncode}")

    logger.info("Cloned %s into %s", url, path)


def obtain(remote_url: str, settings: Settings, progress: IO[str] | None = None) -> Path:
    """
    Return a local, up-to-date checkout of ``remote_url``.

    Parameters
    ----------
    remote_url : str
        Full repository URL (``https://host/owner/repo``, ``file:///...``).
    settings : Settings
        Supplies ``cache_root``.
    progress : IO[str] | None
        Stream receiving clone progress; defaults to stderr.

    Returns
    -------
    Path
        The cache directory for the remote.

    Raises
    ------
    IllegalPathError
        If the URL path would place the cache entry outside the cache root.
    GitError
        If the clone or the update fails. "Already up to date" is success.
    """
    cache_dir = CacheKey.from_url(remote_url).directory(settings.cache_root)

    if cache_dir.exists():
        logger.debug("Reusing template cache %s for %s", cache_dir, remote_url)
        update_repository(cache_dir, remote_url)
    else:
        clone_repository(remote_url, cache_dir, progress)

    return cache_dir
