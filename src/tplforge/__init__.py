"""
tplforge - Project Scaffolding from Template Trees
==================================================

A tool that creates new projects from "template trees": directories whose
file names, directory names and file contents are Jinja2 templates.

Features
--------
- **Many Sources**: local directories, archives (tar, tar.gz, tgz, tar.bz2,
  tar.xz, zip), a template search path, or git repositories
- **Git Cache**: remote templates are cloned once and fast-forwarded on reuse
- **Safe Extraction**: archive entries can never escape their destination
- **Collision-free Syntax**: ``{{{ }}}`` delimiters leave ``{{ }}`` in
  generated files untouched

Quick Start
-----------
```bash
# From a GitHub repository
tplforge gen billing-service -t acme/service-template

# From an archive on the search path
export TPLFORGE_PATH=~/templates
tplforge gen billing-service -t service
```

Example
-------
>>> from tplforge import Settings, build_context, render_tree, resolve
>>> source = resolve("acme/service-template", Settings.from_env())
>>> render_tree(source.resolved_dir, Path("billing"), build_context(name="billing"))
RenderResult(dest_dir=PosixPath('billing'), ...)

Architecture
------------
The package is organized into these main modules:

- ``cli``: Typer-based command line interface
- ``resolver``: Identifier -> local template tree
- ``archive``: Safe archive extraction
- ``git_cache``: Clone-or-update cache for remote templates
- ``renderer``: Path and content rendering with Jinja2
- ``functions``: Template function library
- ``context``: Render context construction
- ``models``: Pydantic models for configuration and results
- ``errors``: Exception hierarchy
"""

# =============================================================================
# Package Metadata
# =============================================================================
__version__ = "0.1.0"

# =============================================================================
# Public API Exports
# =============================================================================

from tplforge.archive import extract_archive
from tplforge.context import build_context
from tplforge.errors import TplforgeError
from tplforge.git_cache import obtain
from tplforge.models import Delimiters, RenderContext, Settings, SourceKind, TemplateSource
from tplforge.renderer import RenderResult, render_tree
from tplforge.resolver import resolve


__all__ = [
    "Delimiters",
    "RenderContext",
    "RenderResult",
    "Settings",
    "SourceKind",
    "TemplateSource",
    "TplforgeError",
    "__version__",
    "build_context",
    "extract_archive",
    "obtain",
    "render_tree",
    "resolve",
]
