"""Archive reading for uploaded site bundles.

Accepts zip files and tarballs (plain, gzip, bz2 or xz). Entries are yielded
one at a time as raw bytes; nothing is extracted to disk and nothing in the
archive is executed.
"""

from __future__ import annotations

import logging
import tarfile
import zipfile
import zlib
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from easypages.errors import ArchiveFormatError

_LOG = logging.getLogger(__name__)


@dataclass(slots=True)
class ArchiveEntry:
    """One member of an uploaded archive.

    Attributes:
        name: Raw entry name as stored in the archive (untrusted).
        data: Entry contents (empty for directories).
        is_directory: True for directory entries.
    """

    name: str
    data: bytes
    is_directory: bool = False


def open_archive(path: Path) -> Iterator[ArchiveEntry]:
    """Open an archive and return a lazy iterator over its entries.

    The container format is checked before the iterator is returned, so a
    corrupt or unknown file fails here rather than on the first ``next()``.

    Args:
        path: Path to the uploaded archive.

    Returns:
        Single-use iterator of ArchiveEntry.

    Raises:
        ArchiveFormatError: File is neither a readable zip nor a tarball.
    """
    if zipfile.is_zipfile(path):
        try:
            zf = zipfile.ZipFile(path)
        except (zipfile.BadZipFile, OSError) as e:
            raise ArchiveFormatError("Uploaded file is not a valid zip archive", str(e)) from e
        return _iter_zip(zf)

    if tarfile.is_tarfile(path):
        try:
            tar = tarfile.open(path, "r:*")
        except (tarfile.TarError, OSError) as e:
            raise ArchiveFormatError("Uploaded file is not a valid tarball", str(e)) from e
        return _iter_tar(tar)

    raise ArchiveFormatError("Uploaded file is not a zip or tar archive")


def _iter_zip(zf: zipfile.ZipFile) -> Iterator[ArchiveEntry]:
    with zf:
        for info in zf.infolist():
            if info.is_dir():
                yield ArchiveEntry(name=info.filename, data=b"", is_directory=True)
                continue
            # RuntimeError: encrypted entry. NotImplementedError: unsupported compression.
            try:
                data = zf.read(info)
            except (zipfile.BadZipFile, zlib.error, EOFError, RuntimeError, NotImplementedError) as e:
                raise ArchiveFormatError(f"Unreadable archive entry: {info.filename}", str(e)) from e
            yield ArchiveEntry(name=info.filename, data=data)


def _iter_tar(tar: tarfile.TarFile) -> Iterator[ArchiveEntry]:
    with tar:
        try:
            for member in tar:
                if member.isdir():
                    yield ArchiveEntry(name=member.name, data=b"", is_directory=True)
                    continue
                if not member.isfile():
                    # Links and device nodes have no content of their own
                    _LOG.warning("Skipping non-regular tar member: %s", member.name)
                    continue
                fileobj = tar.extractfile(member)
                data = fileobj.read() if fileobj is not None else b""
                yield ArchiveEntry(name=member.name, data=data)
        except (tarfile.TarError, zlib.error, EOFError, OSError) as e:
            raise ArchiveFormatError("Corrupt tarball", str(e)) from e
