"""
Tests for tplforge.renderer
===========================

Test Organization
-----------------
- TestRenderText: Single-string rendering
- TestIterTemplateTree: Walk order and .git pruning
- TestRenderTree: Whole-tree rendering
- TestRenderErrors: Parse, execution and path errors
"""

from __future__ import annotations

import stat
from pathlib import Path

import pytest

from tplforge.context import build_context
from tplforge.errors import IllegalPathError, TemplateExecError, TemplateParseError
from tplforge.models import Delimiters, RenderContext
from tplforge.renderer import (
    create_jinja_env,
    iter_template_tree,
    render_text,
    render_tree,
)


@pytest.fixture
def context() -> RenderContext:
    return build_context(name="demo", org="acme", environ={"USER": "bob"})


def render(source: str, context: RenderContext, delimiters: Delimiters | None = None) -> str:
    return render_text(source, context, create_jinja_env(delimiters), "test.txt")


# =============================================================================
# render_text Tests
# =============================================================================

class TestRenderText:
    """Tests for render_text."""

    def test_variables(self, context: RenderContext) -> None:
        """Test name, org and env substitution."""
        assert render("{{{ name }}}-{{{ org }}}-{{{ env.USER }}}", context) == "demo-acme-bob"

    def test_jinja_braces_untouched(self, context: RenderContext) -> None:
        """Test that plain Jinja/Go-style braces pass through."""
        source = "name: {{ .Values.name }}\nreal: {{{ name }}}\n"
        assert render(source, context) == "name: {{ .Values.name }}\nreal: demo\n"

    def test_no_markup_is_verbatim(self, context: RenderContext) -> None:
        """Test that text without delimiters is returned as-is."""
        source = "{% raw %} {{ x }} {# y #}"
        assert render(source, context) == source

    def test_blocks_and_comments(self, context: RenderContext) -> None:
        """Test the block and comment delimiters."""
        source = "{{# hidden #}}{{% if org %}}by {{{ org }}}{{% endif %}}"
        assert render(source, context) == "by acme"

    def test_trailing_newline_kept(self, context: RenderContext) -> None:
        """Test that the final newline survives."""
        assert render("{{{ name }}}\n", context) == "demo\n"

    def test_crlf_preserved(self, context: RenderContext) -> None:
        """Test that CRLF line endings are not normalized."""
        source = "a {{{ name }}}\r\n{{% if org %}}b\r\n{{% endif %}}c\r\n"
        assert render(source, context) == "a demo\r\nb\r\nc\r\n"

    def test_custom_delimiters(self, context: RenderContext) -> None:
        """Test user-chosen variable delimiters."""
        delimiters = Delimiters(variable_start="<%", variable_end="%>")
        assert render("<% name %> {{{ name }}}", context, delimiters) == "demo {{{ name }}}"

    def test_function_library(self, context: RenderContext) -> None:
        """Test that the helper filters are registered."""
        source = "{{{ 'My Project' | snake_case }}} {{{ name | upper }}} {{{ org | quote }}}"
        assert render(source, context) == 'my_project DEMO "acme"'

    def test_env_is_iterable(self, context: RenderContext) -> None:
        """Test that env can be looped over."""
        source = "{{% for k in env | keys %}}{{{ k }}}={{{ env[k] }}};{{% endfor %}}"
        assert render(source, context) == "USER=bob;"


# =============================================================================
# Tree Walk Tests
# =============================================================================

class TestIterTemplateTree:
    """Tests for iter_template_tree."""

    def test_depth_first_sorted(self, tmp_path: Path, write_tree) -> None:
        """Test that entries come out sorted, parents before children."""
        root = write_tree(
            tmp_path / "tpl",
            {"b.txt": "", "a/z.txt": "", "a/m/x.txt": "", "c/.keep": ""},
        )

        names = [pair.relative_path for pair in iter_template_tree(root)]

        assert names == ["a", "a/m", "a/m/x.txt", "a/z.txt", "b.txt", "c", "c/.keep"]

    def test_git_pruned(self, template_tree: Path) -> None:
        """Test that .git and .gitignore at the root are skipped."""
        names = [pair.relative_path for pair in iter_template_tree(template_tree)]

        assert not any(n.startswith(".git") for n in names)

    def test_git_prefix_pruned_only_at_root(self, tmp_path: Path, write_tree) -> None:
        """Test that .github is pruned whole while a nested .gitkeep survives."""
        root = write_tree(
            tmp_path / "tpl",
            {
                ".github/workflows/ci.yml": "on: push\n",
                ".gitmodules": "",
                "src/.gitkeep": "",
                "src/main.py": "",
            },
        )

        names = [pair.relative_path for pair in iter_template_tree(root)]

        assert names == ["src", "src/.gitkeep", "src/main.py"]

    def test_pairs_describe_source(self, template_tree: Path) -> None:
        """Test TemplatePair fields."""
        pairs = {p.relative_path: p for p in iter_template_tree(template_tree)}

        assert pairs["scripts"].is_dir
        assert not pairs["scripts/run.sh"].is_dir
        assert pairs["scripts/run.sh"].source == template_tree / "scripts" / "run.sh"


# =============================================================================
# render_tree Tests
# =============================================================================

class TestRenderTree:
    """Tests for render_tree."""

    def test_full_tree(
        self, template_tree: Path, tmp_path: Path, context: RenderContext, tree_snapshot
    ) -> None:
        """Test paths, contents and the manifest sentinel."""
        dest = tmp_path / "out"

        result = render_tree(template_tree, dest, context)

        assert tree_snapshot(dest) == {
            "README.md": b"# demo\n\nMaintained by acme.\n",
            "demo/__init__.py": b'NAME = "demo"\n',
            "pyproject.toml": b'[project]\nname = "demo"\n',
            "scripts/run.sh": b"#!/bin/sh\necho demo\n",
        }
        assert not (dest / ".git").exists()
        assert not (dest / ".gitignore").exists()
        assert not (dest / "pyproject.toml.tmpl").exists()
        assert dest / "demo" in result.dirs_created
        assert len(result.files_created) == 4

    def test_rendered_directory_name(
        self, tmp_path: Path, write_tree, context: RenderContext
    ) -> None:
        """Test that '{{{ name }}}' as a directory becomes 'demo'."""
        template = write_tree(tmp_path / "tpl", {"{{{ name }}}/main.py": "print('hi')\n"})
        dest = tmp_path / "out"

        render_tree(template, dest, context)

        assert (dest / "demo").is_dir()
        assert (dest / "demo" / "main.py").read_text() == "print('hi')\n"

    def test_file_mode_copied(
        self, template_tree: Path, tmp_path: Path, context: RenderContext
    ) -> None:
        """Test that executable bits survive rendering."""
        dest = tmp_path / "out"

        render_tree(template_tree, dest, context)

        assert stat.S_IMODE((dest / "scripts" / "run.sh").stat().st_mode) == 0o755

    def test_nested_sentinel(self, tmp_path: Path, write_tree, context: RenderContext) -> None:
        """Test that the sentinel is honoured below the root too."""
        template = write_tree(
            tmp_path / "tpl", {"{{{ name }}}/pyproject.toml.tmpl": "name = '{{{ name }}}'\n"}
        )
        dest = tmp_path / "out"

        render_tree(template, dest, context)

        assert (dest / "demo" / "pyproject.toml").read_text() == "name = 'demo'\n"

    def test_binary_content_preserved(
        self, tmp_path: Path, write_tree, context: RenderContext
    ) -> None:
        """Test that non-UTF-8 bytes round-trip untouched."""
        blob = bytes(range(256))
        template = write_tree(
            tmp_path / "tpl",
            {"logo.bin": blob, "mixed.txt": b"\xff\xfe {{{ name }}} \x80\n"},
        )
        dest = tmp_path / "out"

        render_tree(template, dest, context)

        assert (dest / "logo.bin").read_bytes() == blob
        assert (dest / "mixed.txt").read_bytes() == b"\xff\xfe demo \x80\n"

    def test_rerender_is_idempotent(
        self, template_tree: Path, tmp_path: Path, context: RenderContext, tree_snapshot
    ) -> None:
        """Test that rendering twice into one target gives the same tree."""
        dest = tmp_path / "out"

        render_tree(template_tree, dest, context)
        first = tree_snapshot(dest)
        render_tree(template_tree, dest, context)

        assert tree_snapshot(dest) == first

    def test_empty_directory_name_collapses(
        self, tmp_path: Path, write_tree, tree_snapshot
    ) -> None:
        """Test that a directory rendering to nothing passes its files up a level."""
        template = write_tree(
            tmp_path / "tpl", {"{{{ org }}}/x.txt": "x", "a/{{{ org }}}/y.txt": "y"}
        )
        dest = tmp_path / "out"

        result = render_tree(template, dest, build_context(org="", environ={}))

        assert tree_snapshot(dest) == {"a/y.txt": b"y", "x.txt": b"x"}
        assert dest not in result.dirs_created

    def test_custom_delimiters(self, tmp_path: Path, write_tree, context: RenderContext) -> None:
        """Test that path and content use the same delimiters."""
        template = write_tree(tmp_path / "tpl", {"<% name %>.txt": "<% org %>\n"})
        dest = tmp_path / "out"

        render_tree(template, dest, context, Delimiters(variable_start="<%", variable_end="%>"))

        assert (dest / "demo.txt").read_text() == "acme\n"


# =============================================================================
# Error Tests
# =============================================================================

class TestRenderErrors:
    """Tests for render_tree failures."""

    def test_parse_error_names_path(
        self, tmp_path: Path, write_tree, context: RenderContext
    ) -> None:
        """Test that a syntax error reports the template-relative path."""
        template = write_tree(tmp_path / "tpl", {"docs/bad.md": "{{% if name %}}\nno end\n"})

        with pytest.raises(TemplateParseError) as exc_info:
            render_tree(template, tmp_path / "out", context)

        assert exc_info.value.path == "docs/bad.md"
        assert "parse error" in str(exc_info.value)

    def test_undefined_variable(self, tmp_path: Path, write_tree, context: RenderContext) -> None:
        """Test that an unknown variable fails instead of rendering empty."""
        template = write_tree(tmp_path / "tpl", {"a.txt": "{{{ missing }}}"})

        with pytest.raises(TemplateExecError) as exc_info:
            render_tree(template, tmp_path / "out", context)

        assert exc_info.value.path == "a.txt"

    def test_failing_filter(self, context: RenderContext) -> None:
        """Test that an exception inside a helper becomes TemplateExecError."""
        with pytest.raises(TemplateExecError) as exc_info:
            render("{{{ 'not base64!' | b64dec }}}", context)

        assert exc_info.value.path == "test.txt"

    @pytest.mark.parametrize(
        "source",
        [
            "{{{ name | regex_replace('(', 'x') }}}",
            "{{{ name | regex_match('(') }}}",
            "{{{ name | unix_epoch }}}",
            "{{{ name | date }}}",
        ],
    )
    def test_helper_exceptions_wrapped(self, context: RenderContext, source: str) -> None:
        """Test that re.error and AttributeError from helpers become TemplateExecError."""
        with pytest.raises(TemplateExecError) as exc_info:
            render(source, context)

        assert exc_info.value.path == "test.txt"

    def test_path_escape(self, tmp_path: Path, write_tree) -> None:
        """Test that a rendered name climbing out of the target is rejected."""
        template = write_tree(tmp_path / "tpl", {"{{{ name }}}.txt": "x"})
        dest = tmp_path / "out"

        with pytest.raises(IllegalPathError):
            render_tree(template, dest, build_context(name="../escape", environ={}))

        assert not (tmp_path / "escape.txt").exists()

    def test_empty_file_name(self, tmp_path: Path, write_tree) -> None:
        """Test that a file name rendering to nothing is rejected."""
        template = write_tree(tmp_path / "tpl", {"{{{ org }}}": "x"})

        with pytest.raises(IllegalPathError):
            render_tree(template, tmp_path / "out", build_context(org="", environ={}))

    def test_partial_output_kept(
        self, tmp_path: Path, write_tree, context: RenderContext
    ) -> None:
        """Test that files rendered before a failure are not rolled back."""
        template = write_tree(tmp_path / "tpl", {"a.txt": "ok", "b.txt": "{{{ missing }}}"})
        dest = tmp_path / "out"

        with pytest.raises(TemplateExecError):
            render_tree(template, dest, context)

        assert (dest / "a.txt").read_text() == "ok"
