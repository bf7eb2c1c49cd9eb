"""
On-disk addon lifecycle: install from a downloaded archive, delete addon
folders, and remove SavedVariables files belonging to removed addons.

None of these operations are transactional. An install deletes the addon's
previous folders before extracting, so a failure part-way through leaves the
addon uninstalled; ``toc_parser.scan_addon_folders`` re-reads what is
actually on disk. Callers must serialize installs per AddOns root.
"""

from __future__ import annotations

import asyncio
import logging
import lzma
import os
import shutil
import zipfile
import zlib
from pathlib import Path

import py7zr
import rarfile

from addon import Addon, AddonFolder
from archive_reader import ArchiveEntry, ArchiveReader, sanitize_entry_name
from toc_parser import is_toc_path, parse_toc_path, sort_and_dedup

SAVED_VARIABLES_DIR = "SavedVariables"
SAVED_VARIABLES_EXTENSION = ".lua"
BACKUP_SUFFIX = ".bak"

# Corrupt member data surfaces from the codecs, not only from the containers
_ARCHIVE_READ_ERRORS = (
    zipfile.BadZipFile,
    zlib.error,
    EOFError,
    lzma.LZMAError,
    py7zr.exceptions.ArchiveError,
    rarfile.Error,
)

_log = logging.getLogger(__name__)


# ── Deleting ──────────────────────────────────────────────────────────


def delete_addons(addon_folders: list[AddonFolder]):
    """Delete every folder that still exists.

    Missing folders are skipped. The first failure propagates and the
    remaining folders are left untouched.
    """
    for folder in addon_folders:
        if folder.path.exists() or folder.path.is_symlink():
            _remove_folder(folder.path)
            _log.info("Deleted addon folder %s", folder.path)


def _remove_folder(path: Path):
    # A linked development checkout is unlinked, never emptied
    if path.is_symlink():
        path.unlink()
    else:
        shutil.rmtree(path)


def _saved_variables_id(file_name: str) -> str | None:
    """Addon id a SavedVariables file belongs to, or None.

    ``<id>.lua`` and ``<id>.lua.bak`` qualify; a bare ``<id>.bak`` does not.
    """
    if file_name.endswith(BACKUP_SUFFIX):
        file_name = file_name[: -len(BACKUP_SUFFIX)]
    if not file_name.endswith(SAVED_VARIABLES_EXTENSION):
        return None
    return file_name[: -len(SAVED_VARIABLES_EXTENSION)]


def _is_valid_text(name: str) -> bool:
    # Undecodable bytes come back from the OS as lone surrogates
    try:
        name.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def delete_saved_variables(addon_folders: list[AddonFolder], wtf_path: Path):
    """Delete SavedVariables files named after any of ``addon_folders``.

    Walks the whole WTF tree, so account-wide and per-character files are
    both covered. Unreadable sub-directories are skipped; a failure to
    delete a matched file propagates.
    """
    ids = {folder.id for folder in addon_folders}
    if not ids:
        return

    def _on_walk_error(exc: OSError):
        _log.debug("Skipping unreadable path during SavedVariables scan: %s", exc)

    for dirpath, _dirnames, filenames in os.walk(wtf_path, onerror=_on_walk_error):
        if Path(dirpath).name != SAVED_VARIABLES_DIR:
            continue
        for file_name in filenames:
            if not _is_valid_text(file_name):
                continue
            if _saved_variables_id(file_name) in ids:
                path = Path(dirpath) / file_name
                path.unlink()
                _log.info("Deleted saved variables %s", path)


# ── Installing ────────────────────────────────────────────────────────


def _top_level_names(entries: list[ArchiveEntry]) -> set[str]:
    names = set()
    for entry in entries:
        parts = sanitize_entry_name(entry.name).parts
        if parts:
            names.add(parts[0])
    return names


def _clear_stray_folder(path: Path):
    """Best-effort removal of a leftover top-level folder; never raises."""
    try:
        if path.is_symlink():
            path.unlink()
        elif path.is_dir():
            shutil.rmtree(path)
        else:
            return
        _log.debug("Cleared existing folder %s", path)
    except OSError as exc:
        _log.warning("Could not clear existing folder %s: %s", path, exc)


def _is_within(path: Path, root: Path) -> bool:
    real_root = os.path.realpath(root)
    real_path = os.path.realpath(path)
    return os.path.commonpath([real_root, real_path]) == real_root


def _extract_entry(archive: ArchiveReader, entry: ArchiveEntry, dest: Path):
    if entry.is_dir:
        dest.mkdir(parents=True, exist_ok=True)
        return

    if not dest.parent.exists():
        dest.parent.mkdir(parents=True, exist_ok=True)
    try:
        with archive.open(entry) as src, dest.open("wb") as dst:
            shutil.copyfileobj(src, dst)
    except _ARCHIVE_READ_ERRORS as exc:
        raise OSError(f"Failed to read {entry.name!r} from {archive.filepath.name}: {exc}") from exc


def install_addon(
    addon: Addon, from_directory: str | Path, to_directory: str | Path
) -> list[AddonFolder]:
    """Install ``addon`` from its downloaded archive into the AddOns root.

    The archive is ``from_directory / addon.primary_folder_id``. It is opened
    before anything on disk changes, so an unreadable archive leaves
    ``to_directory`` untouched. The addon's previous folders and any
    existing top-level folder the archive also contains are removed, the
    archive is extracted and then deleted.

    Returns the folders found through top-level .toc files, sorted and
    de-duplicated. Raises ``ArchiveOpenError`` or ``OSError``.
    """
    from_directory = Path(from_directory)
    to_directory = Path(to_directory)
    archive_path = from_directory / addon.primary_folder_id

    toc_paths: list[Path] = []
    with ArchiveReader(archive_path) as archive:
        entries = archive.entries()

        # Replace, don't merge: the previous version goes first
        for folder in addon.folders:
            if folder.path.exists() or folder.path.is_symlink():
                _remove_folder(folder.path)
                _log.debug("Removed previous folder %s", folder.path)

        # Folders the archive brings that the caller doesn't know about
        for name in _top_level_names(entries):
            path = to_directory / name
            if path.exists() or path.is_symlink():
                _clear_stray_folder(path)

        for entry in entries:
            relative = sanitize_entry_name(entry.name)
            if not relative.parts:
                _log.warning("Skipping archive entry with unusable name %r", entry.name)
                continue

            dest = to_directory.joinpath(*relative.parts)
            if not _is_within(dest, to_directory):
                _log.warning("Skipping archive entry %r: resolves outside %s", entry.name, to_directory)
                continue

            if is_toc_path(dest, to_directory):
                toc_paths.append(dest)

            _extract_entry(archive, entry, dest)

    archive_path.unlink()
    _log.info(
        "Extracted %d entries from %s into %s", len(entries), archive_path.name, to_directory
    )

    folders = [folder for folder in map(parse_toc_path, toc_paths) if folder is not None]
    # Several .toc files in one folder yield the same folder more than once
    return sort_and_dedup(folders)


async def install_addon_async(
    addon: Addon, from_directory: str | Path, to_directory: str | Path
) -> list[AddonFolder]:
    """Awaitable ``install_addon`` that keeps an event loop responsive."""
    return await asyncio.to_thread(install_addon, addon, from_directory, to_directory)
