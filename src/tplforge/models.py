"""
tplforge.models - Data Models
=============================

This module defines the values that flow through the tplforge pipeline.
Configuration-like values are Pydantic models so they validate at
construction time; short-lived records produced while walking archives and
template trees are plain dataclasses.

Architecture Notes
------------------
The models are organized around the pipeline:

    Settings (explicit configuration, passed into resolve())
    ├── search_path: list[Path]
    ├── cache_root: Path
    ├── default_host: str
    └── delimiters: Delimiters

    resolve(identifier) ──> TemplateSource(kind, location, resolved_dir)
    render_tree(..., RenderContext(env, name, org))

    ArchiveEntry   - one archive member, produced lazily by the extractor
    TemplatePair   - one template-tree entry, produced by the renderer walk
    CacheKey       - (host, path) of a remote, addressing the git cache

Usage Example
-------------
>>> from tplforge.models import Settings
>>> settings = Settings.from_env({"TPLFORGE_PATH": "/a:/b", "HOME": "/home/me"})
>>> settings.search_path
[PosixPath('/a'), PosixPath('/b')]
>>> settings.cache_root
PosixPath('/home/me/.cache/tplforge')
"""

from __future__ import annotations

import os
import shutil
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import IO, Any
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, model_validator

from tplforge.paths import safe_join


# =============================================================================
# Constants
# =============================================================================

#: Environment variable holding the os.pathsep-delimited template search path.
SEARCH_PATH_ENV = "TPLFORGE_PATH"

#: Subdirectory of the user's cache location holding cloned templates.
CACHE_DIR_NAME = "tplforge"

DEFAULT_REMOTE_HOST = "github.com"


# =============================================================================
# Enumerations
# =============================================================================

class SourceKind(str, Enum):
    """
    Where a template tree was found.

    Attributes
    ----------
    LOCAL_FILE : str
        The identifier is a directory on disk, used as-is.
    LOCAL_ARCHIVE : str
        The identifier (or identifier + suffix) is an archive on disk.
    SEARCH_PATH_ENTRY : str
        A directory found under a search-path entry.
    SEARCH_PATH_ARCHIVE : str
        An archive found under a search-path entry.
    GIT_REMOTE : str
        A repository cloned into (or updated in) the git cache.
    """

    LOCAL_FILE = "local-file"
    LOCAL_ARCHIVE = "local-archive"
    SEARCH_PATH_ENTRY = "search-path-entry"
    SEARCH_PATH_ARCHIVE = "search-path-archive"
    GIT_REMOTE = "git-remote"

    @property
    def is_archive(self) -> bool:
        """Whether sources of this kind are unpacked into a scratch directory."""
        return self in {SourceKind.LOCAL_ARCHIVE, SourceKind.SEARCH_PATH_ARCHIVE}


# =============================================================================
# Resolution Results
# =============================================================================

class TemplateSource(BaseModel):
    """
    A resolved template tree.

    Attributes
    ----------
    kind : SourceKind
        Which resolution rule matched.
    location : str
        The path or URL the identifier matched.
    resolved_dir : Path
        Local directory holding the template tree. Always a directory.

    Notes
    -----
    Archive sources are unpacked into a fresh scratch directory owned by the
    caller; call ``cleanup()`` once rendering is done. Cleanup is a no-op for
    local directories and git cache entries.
    """

    model_config = ConfigDict(frozen=True)

    kind: SourceKind
    location: str
    resolved_dir: Path

    @property
    def is_scratch(self) -> bool:
        return self.kind.is_archive

    def cleanup(self) -> None:
        """Remove the scratch directory of an archive source."""
        if self.is_scratch and self.resolved_dir.exists():
            shutil.rmtree(self.resolved_dir)


@dataclass(frozen=True)
class CacheKey:
    """
    ``(host, path)`` of a remote repository, addressing one cache directory.

    Examples
    --------
    >>> key = CacheKey.from_url("https://github.com/acme/service-template")
    >>> key
    CacheKey(host='github.com', path='acme/service-template')
    >>> key.directory(Path("/cache"))
    PosixPath('/cache/github.com/acme/service-template')
    """

    host: str
    path: str

    @classmethod
    def from_url(cls, url: str) -> CacheKey:
        parts = urlsplit(url)
        # Credentials never become part of the cache location; hosts are
        # case-insensitive.
        host = parts.netloc.rpartition("@")[2].lower()
        return cls(host=host, path=parts.path.strip("/"))

    def directory(self, cache_root: Path) -> Path:
        """Cache directory for this key; ``IllegalPathError`` if it escapes the root."""
        return safe_join(cache_root, os.path.join(self.host, self.path))


# =============================================================================
# Archive and Template Records
# =============================================================================

@dataclass
class ArchiveEntry:
    """
    One archive member.

    Attributes
    ----------
    name : str
        Member name as stored in the archive.
    is_dir : bool
        Whether the member is a directory.
    mode : int
        Permission bits.
    content : IO[bytes] | None
        Readable stream for regular files; ``None`` for directories and for
        special members (symlinks, devices) which are not extracted.
    """

    name: str
    is_dir: bool
    mode: int
    content: IO[bytes] | None = None


@dataclass(frozen=True)
class TemplatePair:
    """A template-tree entry: its relative path and, for files, its source path."""

    relative_path: str
    source: Path
    is_dir: bool

    def read_content(self) -> bytes:
        return self.source.read_bytes()


# =============================================================================
# Render Configuration
# =============================================================================

class Delimiters(BaseModel):
    """
    Jinja2 delimiter configuration.

    The defaults differ from Jinja's own ``{{ }}``/``{% %}``; generated
    files may themselves contain Jinja or Helm templates, which are copied
    verbatim.

    Examples
    --------
    >>> Delimiters().variable_start
    '{{{'
    >>> Delimiters(variable_start="<<", variable_end=">>").variable_end
    '>>'
    """

    model_config = ConfigDict(frozen=True)

    variable_start: str = Field(default="{{{", min_length=1)
    variable_end: str = Field(default="}}}", min_length=1)
    block_start: str = Field(default="{{%", min_length=1)
    block_end: str = Field(default="%}}", min_length=1)
    comment_start: str = Field(default="{{#", min_length=1)
    comment_end: str = Field(default="#}}", min_length=1)

    @model_validator(mode="after")
    def validate_distinct_starts(self) -> Delimiters:
        """Jinja's lexer cannot tell apart identical start strings."""
        starts = {self.variable_start, self.block_start, self.comment_start}
        if len(starts) != 3:
            msg = "variable, block and comment start delimiters must differ"
            raise ValueError(msg)
        return self

    @property
    def start_strings(self) -> tuple[str, str, str]:
        return (self.variable_start, self.block_start, self.comment_start)


class RenderContext(BaseModel):
    """
    Data exposed to template evaluation.

    Built fresh for every invocation (see ``tplforge.context.build_context``)
    and never mutated during a render pass.

    Attributes
    ----------
    env : dict[str, str]
        Snapshot of environment variables, available as ``env.HOME`` etc.
    name : str
        Target project name.
    org : str
        Target organization.
    """

    model_config = ConfigDict(frozen=True)

    env: dict[str, str] = Field(default_factory=dict)
    name: str = ""
    org: str = ""

    def as_template_vars(self) -> dict[str, Any]:
        """Variables handed to Jinja; ``env`` is a read-only view."""
        return {
            "env": MappingProxyType(dict(self.env)),
            "name": self.name,
            "org": self.org,
        }


# =============================================================================
# Settings
# =============================================================================

def default_cache_root(environ: Mapping[str, str] | None = None) -> Path:
    """
    ``$XDG_CACHE_HOME/tplforge``, falling back to ``~/.cache/tplforge``.
    """
    environ = os.environ if environ is None else environ
    base = environ.get("XDG_CACHE_HOME")
    if base:
        return Path(base) / CACHE_DIR_NAME
    home = environ.get("HOME")
    home_dir = Path(home) if home else Path.home()
    return home_dir / ".cache" / CACHE_DIR_NAME


class Settings(BaseModel):
    """
    Explicit configuration for source resolution.

    Attributes
    ----------
    search_path : list[Path]
        Directories searched for templates by identifier, in order.
    cache_root : Path
        Root of the git template cache.
    default_host : str
        Host assumed for ``owner/repo`` shorthand.
    delimiters : Delimiters
        Template delimiters used by the renderer.
    """

    search_path: list[Path] = Field(default_factory=list)
    cache_root: Path = Field(default_factory=default_cache_root)
    default_host: str = Field(default=DEFAULT_REMOTE_HOST, min_length=1)
    delimiters: Delimiters = Field(default_factory=Delimiters)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: Any) -> Settings:
        """
        Build settings from environment variables.

        Parameters
        ----------
        environ : Mapping[str, str] | None
            Environment to read; defaults to ``os.environ``.
        **overrides
            Field values that take precedence over the environment.

        Returns
        -------
        Settings
            Settings with ``search_path`` taken from ``TPLFORGE_PATH`` (empty
            entries ignored) and ``cache_root`` from ``XDG_CACHE_HOME``.
        """
        environ = os.environ if environ is None else environ
        raw = environ.get(SEARCH_PATH_ENV, "")
        values: dict[str, Any] = {
            "search_path": [Path(p) for p in raw.split(os.pathsep) if p],
            "cache_root": default_cache_root(environ),
        }
        values.update(overrides)
        return cls(**values)
