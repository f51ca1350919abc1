"""
tplforge.renderer - Template Tree Rendering
===========================================

Walks a resolved template tree and writes a rendered copy into a target
directory. Two things are rendered for every entry:

    1. the entry's path relative to the tree root, and
    2. for files, the file's content.

Both go through the same ``render_text`` function, with the same Jinja2
environment (delimiters, function library, undefined handling) and the same
context.

Template Syntax
---------------
The default delimiters differ from Jinja's own so generated files may
contain ``{{ }}`` untouched:

    {{{ name }}}               variable
    {{% if org %}}...{{% endif %}}    block
    {{# note #}}               comment

Template Context
----------------
    env : mapping
        Environment variables (``{{{ env.HOME }}}``).
    name : str
        Target project name.
    org : str
        Target organization.

Special Files
-------------
Top-level entries whose name begins with ``.git`` (``.git``, ``.gitignore``,
``.github``, ...) are never copied. A file named
``pyproject.toml.tmpl`` is written as ``pyproject.toml``, so template trees
can ship a project manifest without build tools treating the tree itself as
a project.

Usage Example
-------------
>>> from tplforge.context import build_context
>>> from tplforge.renderer import render_tree
>>> result = render_tree(Path("templates/service"), Path("out/billing"),
...                      build_context(name="billing", org="acme"))
>>> result.files_created[0]
PosixPath('out/billing/billing/README.md')
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from jinja2 import Environment, StrictUndefined, TemplateSyntaxError
from jinja2 import TemplateError as JinjaTemplateError

from tplforge import functions
from tplforge.errors import FileSystemError, TemplateExecError, TemplateParseError
from tplforge.models import Delimiters, RenderContext, TemplatePair
from tplforge.paths import normalize_root, safe_join


if TYPE_CHECKING:
    from collections.abc import Iterator


logger = logging.getLogger(__name__)

#: Relative paths starting with this prefix are never copied into the output.
VCS_DIR = ".git"

#: File name routed to MANIFEST_NAME before path rendering.
MANIFEST_SENTINEL = "pyproject.toml.tmpl"
MANIFEST_NAME = "pyproject.toml"

# Round-trips arbitrary bytes through str.
_ENCODING = "utf-8"
_ERRORS = "surrogateescape"


# =============================================================================
# Result Data Classes
# =============================================================================


@dataclass
class RenderResult:
    """
    Outcome of rendering a template tree.

    Attributes
    ----------
    dest_dir : Path
        Target directory.
    dirs_created : list[Path]
        Rendered directories, in walk order.
    files_created : list[Path]
        Rendered files, in walk order.
    """

    dest_dir: Path
    dirs_created: list[Path] = field(default_factory=list)
    files_created: list[Path] = field(default_factory=list)


# =============================================================================
# Template Engine Setup
# =============================================================================


def create_jinja_env(delimiters: Delimiters | None = None) -> Environment:
    """
    Create the Jinja2 environment used for both rendering passes.

    The environment is configured with:
    - the given delimiters (default ``{{{ }}}``, ``{{% %}}``, ``{{# #}}``)
    - autoescaping disabled (we're generating code, not HTML)
    - ``StrictUndefined`` so a missing variable fails instead of rendering
      an empty string
    - trailing newlines preserved
    - the tplforge function library (see ``tplforge.functions``)

    Parameters
    ----------
    delimiters : Delimiters | None
        Delimiter configuration; defaults to ``Delimiters()``.

    Returns
    -------
    Environment
        Configured Jinja2 environment.
    """
    delimiters = delimiters or Delimiters()
    env = Environment(
        variable_start_string=delimiters.variable_start,
        variable_end_string=delimiters.variable_end,
        block_start_string=delimiters.block_start,
        block_end_string=delimiters.block_end,
        comment_start_string=delimiters.comment_start,
        comment_end_string=delimiters.comment_end,
        autoescape=False,
        undefined=StrictUndefined,
        keep_trailing_newline=True,
    )
    return functions.register(env)


def _has_markup(source: str, environment: Environment) -> bool:
    starts = (
        environment.variable_start_string,
        environment.block_start_string,
        environment.comment_start_string,
    )
    return any(start in source for start in starts)


def render_text(
    source: str,
    context: RenderContext,
    environment: Environment,
    origin: str,
) -> str:
    """
    Render one template string against ``context``.

    This is the single rendering operation behind both path and content
    rendering.

    Parameters
    ----------
    source : str
        Template source text.
    context : RenderContext
        Template variables.
    environment : Environment
        Environment from ``create_jinja_env``.
    origin : str
        Template-relative path, used in error messages.

    Returns
    -------
    str
        Rendered text. Text without any start delimiter is returned
        unchanged; CRLF line endings are kept.

    Raises
    ------
    TemplateParseError
        If ``source`` is not a valid template.
    TemplateExecError
        If evaluation fails (undefined variable, failing filter, ...).
    """
    if not _has_markup(source, environment):
        return source

    if "\r\n" in source:
        environment = environment.overlay(newline_sequence="\r\n")

    try:
        template = environment.from_string(source)
    except TemplateSyntaxError as exc:
        raise TemplateParseError(origin, f"line {exc.lineno}: {exc.message}") from exc

    try:
        return template.render(context.as_template_vars())
    except JinjaTemplateError as exc:
        raise TemplateExecError(origin, str(exc)) from exc
    except Exception as exc:
        # Helpers run arbitrary Python (re, strftime, base64, ...)
        raise TemplateExecError(origin, f"{type(exc).__name__}: {exc}") from exc


# =============================================================================
# Tree Walk
# =============================================================================


def iter_template_tree(source_dir: Path) -> Iterator[TemplatePair]:
    """
    Yield the entries of a template tree depth-first, in sorted order.

    The root itself is not yielded. Every entry whose relative path begins
    with ``.git`` is pruned with everything beneath it. That covers ``.git``
    itself as well as ``.gitignore``, ``.github`` and ``.gitmodules`` at the
    top of the tree; nested names like ``src/.gitkeep`` are kept.
    """

    def walk(directory: Path, prefix: str) -> Iterator[TemplatePair]:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
        for entry in entries:
            relative = os.path.join(prefix, entry.name) if prefix else entry.name
            if relative.startswith(VCS_DIR):
                continue
            is_dir = entry.is_dir(follow_symlinks=False)
            yield TemplatePair(relative, Path(entry.path), is_dir)
            if is_dir:
                yield from walk(Path(entry.path), relative)

    yield from walk(source_dir, "")


def _template_path(pair: TemplatePair) -> str:
    if not pair.is_dir and pair.source.name == MANIFEST_SENTINEL:
        return os.path.join(os.path.dirname(pair.relative_path), MANIFEST_NAME)
    return pair.relative_path


def _collapse_empty_segments(path: str) -> str:
    """``"/a.txt"`` (from ``{{{ org }}}/a.txt`` with an empty org) -> ``"a.txt"``."""
    return os.sep.join(part for part in path.split(os.sep) if part)


# =============================================================================
# Rendering
# =============================================================================


def render_file(
    pair: TemplatePair,
    dest: Path,
    context: RenderContext,
    environment: Environment,
) -> None:
    """Render the content of ``pair`` into ``dest`` (created or truncated)."""
    source = pair.read_content().decode(_ENCODING, _ERRORS)
    rendered = render_text(source, context, environment, pair.relative_path)

    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_bytes(rendered.encode(_ENCODING, _ERRORS))
    shutil.copymode(pair.source, dest)


def render_tree(
    source_dir: Path,
    dest_dir: Path,
    context: RenderContext,
    delimiters: Delimiters | None = None,
) -> RenderResult:
    """
    Render the template tree ``source_dir`` into ``dest_dir``.

    Parameters
    ----------
    source_dir : Path
        Resolved template tree (see ``tplforge.resolver.resolve``).
    dest_dir : Path
        Output directory; created if missing, existing files are
        overwritten.
    context : RenderContext
        Variables for both path and content templates.
    delimiters : Delimiters | None
        Template delimiters; defaults to ``Delimiters()``.

    Returns
    -------
    RenderResult
        Directories and files written.

    Raises
    ------
    TemplateParseError, TemplateExecError
        A path or content template failed; the message names the relative
        path inside the tree.
    IllegalPathError
        A rendered path escapes ``dest_dir``, or a file name renders empty.
        Empty path segments are dropped, so a directory whose name renders
        empty passes its children up to its parent.
    FileSystemError
        Reading the tree or writing the output failed.

    Notes
    -----
    Nothing is rolled back on failure: files rendered before the failing
    entry stay in ``dest_dir``.
    """
    source_dir = Path(source_dir)
    dest_dir = Path(dest_dir)
    environment = create_jinja_env(delimiters)
    result = RenderResult(dest_dir=dest_dir)

    clean_root = Path(normalize_root(dest_dir))

    logger.debug("Rendering %s into %s", source_dir, dest_dir)

    try:
        dest_dir.mkdir(parents=True, exist_ok=True)

        for pair in iter_template_tree(source_dir):
            rendered_path = render_text(
                _template_path(pair), context, environment, pair.relative_path
            )
            dest = safe_join(
                dest_dir, _collapse_empty_segments(rendered_path), allow_root=pair.is_dir
            )

            if dest == clean_root:
                # Directory name rendered empty: its children land one level up.
                continue
            if pair.is_dir:
                dest.mkdir(parents=True, exist_ok=True)
                result.dirs_created.append(dest)
            else:
                render_file(pair, dest, context, environment)
                result.files_created.append(dest)

            logger.debug("Rendered %s -> %s", pair.relative_path, dest)
    except OSError as exc:
        raise FileSystemError(exc.filename or source_dir, exc) from exc

    logger.info(
        "Rendered %d files and %d directories into %s",
        len(result.files_created),
        len(result.dirs_created),
        dest_dir,
    )
    return result
