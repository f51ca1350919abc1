"""
tplforge.resolver - Template Source Resolution
==============================================

Turns a user-supplied template identifier into a local directory holding
the template tree.

Resolution Order
----------------
The first rule that matches wins:

    1. ``identifier`` exists locally
         directory          -> used as-is                 (local-file)
         archive file       -> unpacked to scratch        (local-archive)
         any other file     -> UnsupportedFormatError
    2. ``identifier + suffix`` is a file, for each archive suffix
                            -> unpacked to scratch        (local-archive)
    3. rules 1-2 under each search-path entry             (search-path-*)
    4. remote repository: a URL, ``owner/repo`` or ``host/owner/repo``
                            -> cloned/updated in the cache (git-remote)

Path-like identifiers (absolute, ``./``, ``../``, ``~``) that match nothing
locally raise ``NotFoundError``; they are never tried as remotes.

Usage Example
-------------
>>> from tplforge.models import Settings
>>> from tplforge.resolver import resolve
>>> source = resolve("acme/service-template", Settings.from_env())
>>> source.kind, source.resolved_dir
(<SourceKind.GIT_REMOTE: 'git-remote'>, PosixPath('/home/me/.cache/tplforge/github.com/acme/service-template'))
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from typing import IO
from urllib.parse import urlsplit

from tplforge.archive import ARCHIVE_SUFFIXES, extract_archive, is_archive
from tplforge.errors import (
    InvalidIdentifierError,
    NotFoundError,
    UnsupportedFormatError,
)
from tplforge.git_cache import obtain
from tplforge.models import DEFAULT_REMOTE_HOST, Settings, SourceKind, TemplateSource


logger = logging.getLogger(__name__)

#: URL schemes accepted as a full remote URL.
REMOTE_SCHEMES = frozenset({"http", "https", "ssh", "git", "file"})

SCRATCH_PREFIX = "tplforge-"


# =============================================================================
# Remote Identifiers
# =============================================================================

def is_remote_url(identifier: str) -> bool:
    parts = urlsplit(identifier)
    if parts.scheme not in REMOTE_SCHEMES:
        return False
    return bool(parts.netloc) or parts.scheme == "file"


def parse_remote_identifier(identifier: str, default_host: str = DEFAULT_REMOTE_HOST) -> str:
    """
    Normalize a remote identifier to a URL with explicit scheme and host.

    Parameters
    ----------
    identifier : str
        A full URL, ``owner/repo`` or ``host/owner/repo``.
    default_host : str
        Host used for two-segment shorthand.

    Returns
    -------
    str
        The repository URL.

    Raises
    ------
    InvalidIdentifierError
        If shorthand does not have exactly two or three non-empty segments.

    Examples
    --------
    >>> parse_remote_identifier("acme/svc")
    'https://github.com/acme/svc'
    >>> parse_remote_identifier("gitlab.com/acme/svc")
    'https://gitlab.com/acme/svc'
    >>> parse_remote_identifier("ssh://git@example.com/acme/svc.git")
    'ssh://git@example.com/acme/svc.git'
    """
    if is_remote_url(identifier):
        return identifier

    segments = identifier.split("/")
    if len(segments) not in (2, 3) or not all(segments):
        raise InvalidIdentifierError(identifier)

    host = default_host
    if len(segments) == 3:
        host = segments[0]
        segments = segments[1:]

    owner, repo = segments
    return f"https://{host}/{owner}/{repo}"


def _is_path_like(identifier: str) -> bool:
    return identifier.startswith(("/", "./", "../", "~")) or identifier in (".", "..")


# =============================================================================
# Local Lookup
# =============================================================================

def _probe(base: Path) -> tuple[Path, bool] | None:
    """
    Find ``base`` or ``base + suffix`` on disk.

    Returns ``(path, is_archive)`` or None when nothing matches.
    """
    if base.is_dir():
        return base, False
    if base.is_file():
        if not is_archive(base):
            raise UnsupportedFormatError(base)
        return base, True

    for suffix in ARCHIVE_SUFFIXES:
        candidate = Path(f"{base}{suffix}")
        if candidate.is_file():
            return candidate, True
    return None


def unpack_to_scratch(archive_path: Path) -> Path:
    """
    Extract ``archive_path`` into a fresh temporary directory.

    The directory is removed again if extraction fails for any reason,
    including interruption.
    """
    scratch = Path(tempfile.mkdtemp(prefix=SCRATCH_PREFIX))
    try:
        extract_archive(archive_path, scratch)
    except BaseException:
        shutil.rmtree(scratch, ignore_errors=True)
        raise
    return scratch


def _materialize(match: tuple[Path, bool], *, searched: bool) -> TemplateSource:
    path, archived = match

    if not archived:
        kind = SourceKind.SEARCH_PATH_ENTRY if searched else SourceKind.LOCAL_FILE
        return TemplateSource(kind=kind, location=str(path), resolved_dir=path.resolve())

    kind = SourceKind.SEARCH_PATH_ARCHIVE if searched else SourceKind.LOCAL_ARCHIVE
    scratch = unpack_to_scratch(path)
    logger.info("Unpacked %s into %s", path, scratch)
    return TemplateSource(kind=kind, location=str(path), resolved_dir=scratch)


# =============================================================================
# Resolution
# =============================================================================

def resolve(
    identifier: str,
    settings: Settings,
    progress: IO[str] | None = None,
) -> TemplateSource:
    """
    Resolve ``identifier`` to a local template tree.

    Parameters
    ----------
    identifier : str
        Local path, archive path (with or without suffix), name on the search
        path, repository URL or ``[host/]owner/repo`` shorthand.
    settings : Settings
        Search path, cache root and default host.
    progress : IO[str] | None
        Stream receiving git clone progress.

    Returns
    -------
    TemplateSource
        The resolved source; ``resolved_dir`` is always a directory. Archive
        sources live in a scratch directory, see ``TemplateSource.cleanup``.

    Raises
    ------
    NotFoundError
        Empty or path-like identifier that matched nothing.
    InvalidIdentifierError
        Malformed remote shorthand.
    UnsupportedFormatError
        The identifier names a regular file that is not an archive.
    IllegalPathError, ArchiveError, FileSystemError
        Extraction failures.
    GitError
        Clone or update failures.
    """
    if not identifier:
        raise NotFoundError(identifier)

    local = Path(identifier).expanduser()
    match = _probe(local)
    if match is not None:
        logger.debug("Resolved %s locally: %s", identifier, match[0])
        return _materialize(match, searched=False)

    if not local.is_absolute():
        for entry in settings.search_path:
            match = _probe(entry / local)
            if match is not None:
                logger.debug("Resolved %s on search path %s: %s", identifier, entry, match[0])
                return _materialize(match, searched=True)

    if _is_path_like(identifier):
        raise NotFoundError(identifier)

    url = parse_remote_identifier(identifier, settings.default_host)
    logger.debug("Resolving %s as remote %s", identifier, url)
    return TemplateSource(
        kind=SourceKind.GIT_REMOTE,
        location=url,
        resolved_dir=obtain(url, settings, progress),
    )
