"""
tplforge.errors - Exception Hierarchy
=====================================

Every failure the core can report is one of the exceptions below. They all
derive from ``TplforgeError`` so callers (the CLI in particular) can catch a
single type, print it, and exit.

Hierarchy
---------
    TplforgeError
    ├── NotFoundError            - no template source matched the identifier
    ├── InvalidIdentifierError   - malformed remote shorthand
    ├── IllegalPathError         - a destination path escapes its root
    ├── UnsupportedFormatError   - unknown archive suffix
    ├── ArchiveError             - malformed archive
    ├── GitError                 - clone/pull failure
    ├── TemplateError
    │   ├── TemplateParseError   - template syntax error
    │   └── TemplateExecError    - template evaluation error
    └── FileSystemError          - wrapped OSError

Each error carries the offending path or identifier as an attribute so the
message can always point at what went wrong.
"""

from __future__ import annotations

from pathlib import Path


class TplforgeError(Exception):
    """Base class for all tplforge errors."""


class NotFoundError(TplforgeError):
    """No template source matched the identifier."""

    def __init__(self, identifier: str) -> None:
        super().__init__(f"template '{identifier}' not found")
        self.identifier = identifier


class InvalidIdentifierError(TplforgeError):
    """Remote shorthand is not of the form [<host>/]<owner>/<repo>."""

    def __init__(self, identifier: str) -> None:
        super().__init__(
            f"invalid template identifier '{identifier}': expected "
            "[<host>/]<owner>/<repo> or a valid URL"
        )
        self.identifier = identifier


class IllegalPathError(TplforgeError):
    """
    A computed destination path lies outside its root.

    Raised for zip-slip archive entries, rendered template paths that climb
    out of the output directory, and cache keys containing ``..``.

    Attributes
    ----------
    path : str
        The offending (normalized) destination path.
    root : str
        The root the path was required to stay inside.
    """

    def __init__(self, path: str | Path, root: str | Path) -> None:
        super().__init__(f"{path}: illegal file path (outside {root})")
        self.path = str(path)
        self.root = str(root)


class UnsupportedFormatError(TplforgeError):
    """The file is not an archive format tplforge can unpack."""

    def __init__(self, path: str | Path) -> None:
        super().__init__(f"{path}: unsupported archive format")
        self.path = str(path)


class ArchiveError(TplforgeError):
    """The archive could not be read."""

    def __init__(self, path: str | Path, reason: str) -> None:
        super().__init__(f"{path}: cannot read archive: {reason}")
        self.path = str(path)
        self.reason = reason


class GitError(TplforgeError):
    """
    A git operation against the template cache failed.

    Attributes
    ----------
    url : str
        Remote URL being cloned or pulled.
    path : str
        Local cache directory.
    """

    def __init__(self, url: str, path: str | Path, reason: str) -> None:
        super().__init__(f"git failed for {url} ({path}): {reason}")
        self.url = url
        self.path = str(path)
        self.reason = reason


class TemplateError(TplforgeError):
    """Base for template failures; ``path`` is the template-relative path."""

    kind = "template error"

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {self.kind}: {reason}")
        self.path = path
        self.reason = reason


class TemplateParseError(TemplateError):
    kind = "parse error"


class TemplateExecError(TemplateError):
    kind = "execution error"


class FileSystemError(TplforgeError):
    """An ``OSError`` raised while reading or writing ``path``."""

    def __init__(self, path: str | Path, error: OSError) -> None:
        super().__init__(f"{path}: {error.strerror or error}")
        self.path = str(path)
        self.error = error
