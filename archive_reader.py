"""
Archive access for addon installs.

Downloaded addons are normally zip files, but 7z and rar archives are read
as well. The container type is sniffed from the file content because the
downloaded file is named after the addon, not after its format.

Entry names come from untrusted archives. ``sanitize_entry_name`` reduces a
raw name to a relative path that cannot climb out of the install root; it
never raises, it only drops the parts it cannot trust.
"""

from __future__ import annotations

import logging
import re
import sys
import zipfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import IO, Literal

import py7zr
import rarfile

_log = logging.getLogger(__name__)

# rarfile shells out to UnRAR; prefer a bundled copy when one ships with the app
_unrar = Path(__file__).parent / "assets" / ("UnRAR.exe" if sys.platform == "win32" else "unrar")
if _unrar.exists():
    rarfile.UNRAR_TOOL = str(_unrar)

ArchiveKind = Literal["zip", "7z", "rar"]

_DRIVE_RE = re.compile(r"^[A-Za-z]:$")


class ArchiveOpenError(OSError):
    """The archive file is missing, unreadable or not a supported container."""


@dataclass(frozen=True)
class ArchiveEntry:
    name: str  # Forward-slash separated (backslashes normalized)
    is_dir: bool
    member: str = field(default="", compare=False, repr=False)  # Name as stored


# ── Path sanitizing ───────────────────────────────────────────────────


def sanitize_entry_name(name: str) -> PurePosixPath:
    """Reduce an archive entry name to a safe relative path.

    Everything after a NUL byte is discarded, backslashes count as
    separators, and empty, ``.`` and ``..`` segments are dropped along with
    a leading drive segment (``C:``). The result may be empty.
    """
    name = name.split("\0", 1)[0].replace("\\", "/")
    parts = [part for part in name.split("/") if part not in ("", ".", "..")]
    if parts and _DRIVE_RE.match(parts[0]):
        parts = parts[1:]
    return PurePosixPath(*parts)


def sanitize_entry_path(name: str, root: Path) -> Path:
    """Join the sanitized form of ``name`` onto ``root``."""
    return root.joinpath(*sanitize_entry_name(name).parts)


# ── Reader ────────────────────────────────────────────────────────────


def detect_archive_kind(filepath: Path) -> ArchiveKind | None:
    if zipfile.is_zipfile(filepath):
        return "zip"
    if py7zr.is_7zfile(filepath):
        return "7z"
    if rarfile.is_rarfile(filepath):
        return "rar"
    return None


class ArchiveReader:
    """Read-only view over a zip, 7z or rar archive.

    Use as a context manager; the underlying handle is released on exit so
    the archive file can be deleted afterwards.
    """

    def __init__(self, filepath: str | Path):
        self.filepath = Path(filepath)
        if not self.filepath.is_file():
            raise ArchiveOpenError(f"Archive not found: {self.filepath}")

        try:
            self.kind = detect_archive_kind(self.filepath)
        except OSError as exc:
            raise ArchiveOpenError(f"Cannot read archive {self.filepath}: {exc}") from exc
        if self.kind is None:
            raise ArchiveOpenError(f"Not a supported archive: {self.filepath.name}")

        try:
            if self.kind == "zip":
                self._handle = zipfile.ZipFile(self.filepath, "r")
            elif self.kind == "7z":
                self._handle = py7zr.SevenZipFile(self.filepath, "r")
            else:
                self._handle = rarfile.RarFile(self.filepath, "r")
        except (OSError, zipfile.BadZipFile, py7zr.Bad7zFile, rarfile.Error) as exc:
            raise ArchiveOpenError(f"Cannot open archive {self.filepath.name}: {exc}") from exc

        _log.debug("Opened %s archive %s", self.kind, self.filepath)

    def __enter__(self) -> ArchiveReader:
        return self

    def __exit__(self, exc_type, exc_value, exc_tb):
        self.close()

    def close(self):
        self._handle.close()

    def entries(self) -> list[ArchiveEntry]:
        """All entries, in archive order."""
        if self.kind == "zip":
            items = [(info.filename, info.is_dir()) for info in self._handle.infolist()]
        elif self.kind == "7z":
            items = [(info.filename, info.is_directory) for info in self._handle.list()]
        else:
            items = [(info.filename, info.is_dir()) for info in self._handle.infolist()]
        return [
            ArchiveEntry(name=name.replace("\\", "/"), is_dir=is_dir, member=name)
            for name, is_dir in items
        ]

    def open(self, entry: ArchiveEntry) -> IO[bytes]:
        """Open a file entry as a binary stream."""
        member = entry.member or entry.name
        if self.kind == "zip":
            return self._handle.open(member, "r")
        if self.kind == "7z":
            # Each read starts over from the first block
            self._handle.reset()
            return self._handle.read(targets=[member])[member]
        return self._handle.open(member)
