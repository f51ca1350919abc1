"""
tplforge.archive - Safe Archive Extraction
==========================================

Unpacks a template archive into a destination directory. Supported formats
are selected by filename suffix only (no content sniffing):

    .tar        raw tar
    .tar.gz     gzip-compressed tar (also .tgz)
    .tar.bz2    bzip2-compressed tar
    .tar.xz     xz-compressed tar
    .zip        zip container

Safety
------
Every member name is joined onto the destination root and normalized before
anything is written. A name that lands outside the root (``../evil``, an
absolute path) raises ``IllegalPathError`` and stops extraction at once.
Members written before the offending one are left in place: extraction is
not transactional.

Symlinks, hard links and device members are never materialized.

Usage Example
-------------
>>> from tplforge.archive import extract_archive
>>> extract_archive(Path("service.tar.gz"), Path("/tmp/unpacked"))
[PosixPath('/tmp/unpacked/service/README.md'), ...]
"""

from __future__ import annotations

import contextlib
import gzip
import io
import logging
import lzma
import os
import stat
import tarfile
import zipfile
import zlib
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from tplforge.errors import ArchiveError, FileSystemError, UnsupportedFormatError
from tplforge.models import ArchiveEntry
from tplforge.paths import safe_join


if TYPE_CHECKING:
    from collections.abc import Iterator


logger = logging.getLogger(__name__)

DEFAULT_FILE_MODE = 0o644
DEFAULT_DIR_MODE = 0o755


# =============================================================================
# Format Detection
# =============================================================================

class ArchiveFormat(str, Enum):
    """Archive formats, valued by their filename suffix."""

    TAR = ".tar"
    TAR_GZ = ".tar.gz"
    TGZ = ".tgz"
    TAR_BZ2 = ".tar.bz2"
    TAR_XZ = ".tar.xz"
    ZIP = ".zip"

    @property
    def tar_mode(self) -> str | None:
        """``tarfile.open`` mode, or None for zip."""
        modes = {
            ArchiveFormat.TAR: "r:",
            ArchiveFormat.TAR_GZ: "r:gz",
            ArchiveFormat.TGZ: "r:gz",
            ArchiveFormat.TAR_BZ2: "r:bz2",
            ArchiveFormat.TAR_XZ: "r:xz",
        }
        return modes.get(self)


#: Suffixes probed by the resolver, in probing order.
ARCHIVE_SUFFIXES: tuple[str, ...] = tuple(fmt.value for fmt in ArchiveFormat)


def detect_format(path: str | os.PathLike[str]) -> ArchiveFormat:
    """
    Select the archive format from the filename suffix.

    Raises
    ------
    UnsupportedFormatError
        If the name ends in none of the supported suffixes.
    """
    name = os.fspath(path)
    for fmt in ArchiveFormat:
        if name.endswith(fmt.value):
            return fmt
    raise UnsupportedFormatError(name)


def is_archive(path: str | os.PathLike[str]) -> bool:
    return os.fspath(path).endswith(ARCHIVE_SUFFIXES)


# =============================================================================
# Entry Iteration
# =============================================================================

#: Errors raised by the tar/zip readers and decompressors on malformed input.
READ_ERRORS = (
    tarfile.TarError,
    zipfile.BadZipFile,
    gzip.BadGzipFile,
    zlib.error,
    lzma.LZMAError,
    EOFError,
)


def _check_end_of_archive(tf: tarfile.TarFile, archive_path: Path) -> None:
    """
    Fail unless the member loop stopped at the end-of-archive marker.

    ``tarfile`` ends iteration quietly at an unreadable header past the first
    one. A real end of archive is a zero block (or plain EOF). Reading the
    rest of the stream also makes the decompressor verify its checksum.
    """
    fileobj = tf.fileobj
    try:
        fileobj.seek(tf.offset)
        block = fileobj.read(tarfile.BLOCKSIZE)
        if block.strip(tarfile.NUL):
            raise ArchiveError(archive_path, f"invalid member header at offset {tf.offset}")
        while fileobj.read(io.DEFAULT_BUFFER_SIZE):
            pass
    except (*READ_ERRORS, OSError) as exc:
        raise ArchiveError(archive_path, str(exc)) from exc


def _tar_entries(archive_path: Path, mode: str) -> Iterator[ArchiveEntry]:
    with tarfile.open(archive_path, mode) as tf:
        # Iterating the TarFile reads member headers lazily.
        for member in tf:
            perms = stat.S_IMODE(member.mode)
            if member.isdir():
                yield ArchiveEntry(member.name, True, perms or DEFAULT_DIR_MODE)
            elif member.isfile():
                stream = tf.extractfile(member)
                if stream is None:
                    raise ArchiveError(archive_path, f"cannot read member {member.name}")
                with stream:
                    yield ArchiveEntry(member.name, False, perms or DEFAULT_FILE_MODE, stream)
            else:
                yield ArchiveEntry(member.name, False, perms)
        _check_end_of_archive(tf, archive_path)


def _zip_entries(archive_path: Path) -> Iterator[ArchiveEntry]:
    with zipfile.ZipFile(archive_path) as zf:
        for info in zf.infolist():
            unix_mode = info.external_attr >> 16
            perms = stat.S_IMODE(unix_mode)
            if info.is_dir():
                yield ArchiveEntry(info.filename, True, perms or DEFAULT_DIR_MODE)
            elif unix_mode and stat.S_ISLNK(unix_mode):
                yield ArchiveEntry(info.filename, False, perms)
            else:
                try:
                    stream = zf.open(info)
                except (RuntimeError, NotImplementedError) as exc:
                    # Encrypted members, unsupported compression methods
                    raise ArchiveError(archive_path, f"{info.filename}: {exc}") from exc
                with stream:
                    yield ArchiveEntry(info.filename, False, perms or DEFAULT_FILE_MODE, stream)


def iter_entries(archive_path: Path) -> Iterator[ArchiveEntry]:
    """
    Lazily yield the members of an archive in archive order.

    The archive (and its decompressor) stays open while the generator is
    alive; close the generator (``contextlib.closing``) to release it early.
    A regular-file entry's ``content`` stream is only valid until the next
    entry is requested; it is closed by the generator.

    Raises
    ------
    UnsupportedFormatError
        For unknown suffixes.
    ArchiveError
        If the archive or one of its headers is malformed.
    """
    fmt = detect_format(archive_path)
    try:
        if fmt is ArchiveFormat.ZIP:
            yield from _zip_entries(archive_path)
        else:
            yield from _tar_entries(archive_path, fmt.tar_mode or "r:")
    except READ_ERRORS as exc:
        raise ArchiveError(archive_path, str(exc)) from exc


# =============================================================================
# Extraction
# =============================================================================

def _read_chunk(entry: ArchiveEntry, archive_path: Path) -> bytes:
    # Corrupt member data surfaces here (bad CRC, truncated stream).
    try:
        return entry.content.read(io.DEFAULT_BUFFER_SIZE)
    except (*READ_ERRORS, OSError) as exc:
        raise ArchiveError(archive_path, f"{entry.name}: {exc}") from exc


def _write_entry(entry: ArchiveEntry, dest: Path, archive_path: Path) -> None:
    if entry.content is None:
        raise ValueError(f"entry {entry.name} has no content")
    dest.parent.mkdir(parents=True, exist_ok=True)
    with open(dest, "wb") as out:
        while True:
            chunk = _read_chunk(entry, archive_path)
            if not chunk:
                break
            out.write(chunk)
    os.chmod(dest, entry.mode)


def extract_archive(archive_path: Path, dest_root: Path) -> list[Path]:
    """
    Unpack ``archive_path`` into ``dest_root``.

    Parameters
    ----------
    archive_path : Path
        Archive to unpack; its suffix selects the format.
    dest_root : Path
        Destination directory. Created if missing.

    Returns
    -------
    list[Path]
        Files written, in archive order.

    Raises
    ------
    IllegalPathError
        If an entry would land outside ``dest_root``. No later entry is
        written; earlier ones remain.
    UnsupportedFormatError
        If the suffix is not a supported archive suffix.
    ArchiveError
        If the archive is malformed.
    FileSystemError
        If reading the archive or writing an entry fails.

    Notes
    -----
    Directory entries are created with their permission bits (subject to
    the umask, pre-existing directories are fine). File entries are written
    with truncation, then chmod-ed to the entry's permission bits. A
    directory entry naming the root itself (``./``) is accepted as a no-op.
    """
    archive_path = Path(archive_path)
    dest_root = Path(dest_root)
    detect_format(archive_path)
    written: list[Path] = []

    logger.debug("Extracting %s into %s", archive_path, dest_root)

    try:
        dest_root.mkdir(parents=True, exist_ok=True)
        with contextlib.closing(iter_entries(archive_path)) as entries:
            for entry in entries:
                dest = safe_join(dest_root, entry.name, allow_root=entry.is_dir)

                if entry.is_dir:
                    os.makedirs(dest, entry.mode, exist_ok=True)
                elif entry.content is None:
                    logger.warning(
                        "Skipping special archive member %s in %s", entry.name, archive_path
                    )
                else:
                    _write_entry(entry, dest, archive_path)
                    written.append(dest)
    except OSError as exc:
        raise FileSystemError(exc.filename or archive_path, exc) from exc

    logger.info("Extracted %d files from %s", len(written), archive_path)
    return written
