"""Builds the RenderContext handed to the renderer."""

from __future__ import annotations

import os
from collections.abc import Mapping

from tplforge.models import RenderContext


def env_map(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Snapshot of the environment as a plain dict."""
    environ = os.environ if environ is None else environ
    return dict(environ)


def build_context(
    name: str = "",
    org: str = "",
    environ: Mapping[str, str] | None = None,
) -> RenderContext:
    """
    Build a fresh context for one render invocation.

    Parameters
    ----------
    name : str
        Target project name, ``{{{ name }}}`` in templates.
    org : str
        Target organization, ``{{{ org }}}`` in templates.
    environ : Mapping[str, str] | None
        Environment to expose as ``env``; defaults to ``os.environ``.
    """
    return RenderContext(env=env_map(environ), name=name, org=org)
