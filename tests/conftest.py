"""
pytest configuration and shared fixtures for tplforge tests.

This module provides fixtures and configuration used across all test modules.
Fixtures defined here are automatically available to all tests.

Fixtures
--------
write_tree : Callable
    Writes a ``{relative path: content}`` mapping below a directory.

make_archive : Callable
    Builds a tar/zip archive (format chosen by suffix) from entry tuples.

patch_zip : Callable
    Rewrites the general-purpose flags or compression method of every
    member of a zip archive in place.

template_tree : Path
    A small template tree exercising path and content templates.

settings : Settings
    Settings with an empty search path and a cache root under tmp_path.
"""

from __future__ import annotations

import io
import stat
import tarfile
import zipfile
from collections.abc import Callable
from pathlib import Path

import pytest

from tplforge.models import Settings


# (name, data, mode); data=None denotes a directory entry
ArchiveSpec = list[tuple[str, bytes | None, int]]

TAR_MODES = {
    ".tar.gz": "w:gz",
    ".tgz": "w:gz",
    ".tar.bz2": "w:bz2",
    ".tar.xz": "w:xz",
    ".tar": "w",
}


def build_archive(path: Path, entries: ArchiveSpec) -> Path:
    """Write ``entries`` into an archive whose format follows ``path``'s suffix."""
    if path.name.endswith(".zip"):
        with zipfile.ZipFile(path, "w") as zf:
            for name, data, mode in entries:
                if data is None:
                    info = zipfile.ZipInfo(name.rstrip("/") + "/")
                    info.external_attr = ((stat.S_IFDIR | mode) << 16) | 0x10
                    zf.writestr(info, b"")
                else:
                    info = zipfile.ZipInfo(name)
                    info.external_attr = (stat.S_IFREG | mode) << 16
                    zf.writestr(info, data)
        return path

    tar_mode = next(m for suffix, m in TAR_MODES.items() if path.name.endswith(suffix))
    with tarfile.open(path, tar_mode) as tf:
        for name, data, mode in entries:
            info = tarfile.TarInfo(name)
            info.mode = mode
            if data is None:
                info.type = tarfile.DIRTYPE
                tf.addfile(info)
            else:
                info.size = len(data)
                tf.addfile(info, io.BytesIO(data))
    return path


def patch_zip_headers(path: Path, *, flag_bits: int = 0, method: int | None = None) -> Path:
    """
    OR ``flag_bits`` into (and optionally replace the compression method of)
    every local and central directory header of a stored zip.
    """
    data = bytearray(path.read_bytes())
    # (signature, flags offset, method offset)
    for signature, flags_at, method_at in ((b"PK\x03\x04", 6, 8), (b"PK\x01\x02", 8, 10)):
        start = data.find(signature)
        while start != -1:
            field = slice(start + flags_at, start + flags_at + 2)
            flags = int.from_bytes(data[field], "little") | flag_bits
            data[field] = flags.to_bytes(2, "little")
            if method is not None:
                data[start + method_at:start + method_at + 2] = method.to_bytes(2, "little")
            start = data.find(signature, start + len(signature))
    path.write_bytes(bytes(data))
    return path


def write_files(root: Path, files: dict[str, str | bytes]) -> Path:
    """Create ``files`` (relative path -> content) below ``root``."""
    root.mkdir(parents=True, exist_ok=True)
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
    return root


def snapshot(root: Path) -> dict[str, bytes]:
    """Relative path -> bytes for every file below ``root`` (``.git`` excluded)."""
    return {
        str(p.relative_to(root)): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file() and ".git" not in p.relative_to(root).parts
    }


@pytest.fixture
def write_tree() -> Callable[[Path, dict[str, str | bytes]], Path]:
    return write_files


@pytest.fixture
def tree_snapshot() -> Callable[[Path], dict[str, bytes]]:
    return snapshot


@pytest.fixture
def make_archive() -> Callable[[Path, ArchiveSpec], Path]:
    return build_archive


@pytest.fixture
def patch_zip() -> Callable[..., Path]:
    return patch_zip_headers


@pytest.fixture
def template_tree(tmp_path: Path) -> Path:
    """
    A template tree covering the rendering rules.

    Layout
    ------
        {{{ name }}}/__init__.py    path + content template
        README.md                   content template using name and org
        pyproject.toml.tmpl         manifest sentinel
        scripts/run.sh              executable script
        .gitignore                  skipped (starts with .git)
        .git/HEAD                   skipped
    """
    root = write_files(
        tmp_path / "template",
        {
            "{{{ name }}}/__init__.py": 'NAME = "{{{ name }}}"\n',
            "README.md": "# {{{ name }}}\n\nMaintained by {{{ org }}}.\n",
            "pyproject.toml.tmpl": '[project]\nname = "{{{ name }}}"\n',
            "scripts/run.sh": "#!/bin/sh\necho {{{ name }}}\n",
            ".gitignore": "*.pyc\n",
            ".git/HEAD": "ref: refs/heads/main\n",
        },
    )
    (root / "scripts" / "run.sh").chmod(0o755)
    return root


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(search_path=[], cache_root=tmp_path / "cache")


# =============================================================================
# pytest Configuration
# =============================================================================

def pytest_configure(config: pytest.Config) -> None:
    """
    Configure pytest with custom markers.

    This function is called by pytest during startup to register
    custom markers used in our test suite.
    """
    config.addinivalue_line(
        "markers", "git: marks tests that need the git executable"
    )
