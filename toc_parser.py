"""
Addon manifest (.toc) discovery and parsing.

Every addon folder carries at least one ``<FolderName>.toc`` file directly
inside it. Flavored clients add variants such as ``<FolderName>-Mainline.toc``
or ``<FolderName>_Vanilla.toc``; all of them describe the same folder.

A .toc file starts with metadata lines:

    ## Interface: 110002
    ## Title: |cff00ff00My|r Addon
    ## Version: 1.4.2
    ## Dependencies: LibStub, AceDB-3.0
    ## X-Curse-Project-ID: 12345

Only these header lines are read; the file list that follows is ignored.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from addon import AddonFolder

TOC_EXTENSION = ".toc"

_log = logging.getLogger(__name__)

_HEADER_RE = re.compile(r"^##\s*(?P<key>[^:]+?)\s*:\s*(?P<value>.*?)\s*$")
_COLOR_RE = re.compile(r"\|c[0-9A-Fa-f]{8}|\|r")

_REPOSITORY_KEYS = {
    "x-curse-project-id": "curse",
    "x-wago-id": "wago",
    "x-wowi-id": "wowi",
    "x-tukui-projectid": "tukui",
}


# ── Locating ──────────────────────────────────────────────────────────


def is_toc_path(path: Path, root: Path) -> bool:
    """True if ``path`` is ``<root>/<folder>/<name>.toc``.

    Manifests nested deeper (bundled libraries, for example) are not
    top-level addon folders and are ignored.
    """
    if path.suffix != TOC_EXTENSION:
        return False
    try:
        remainder = path.relative_to(root)
    except ValueError:
        return False
    return len(remainder.parts) == 2


def toc_id(toc_path: Path) -> str | None:
    """Folder identity for a manifest, or None if the name does not belong.

    The manifest stem must be the folder name, optionally followed by a
    ``-suffix`` or ``_suffix``.
    """
    folder_name = toc_path.parent.name
    stem = toc_path.stem
    if not folder_name:
        return None
    if stem == folder_name:
        return folder_name
    if stem.startswith(folder_name) and stem[len(folder_name)] in "-_":
        return folder_name
    return None


# ── Parsing ───────────────────────────────────────────────────────────


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _strip_colors(value: str) -> str:
    return _COLOR_RE.sub("", value).strip()


def parse_toc_text(text: str) -> dict[str, str]:
    """Collect ``## Key: Value`` headers, keys lower-cased. First one wins."""
    headers: dict[str, str] = {}
    for line in text.splitlines():
        m = _HEADER_RE.match(line.strip())
        if not m:
            continue
        key = m.group("key").lower()
        headers.setdefault(key, m.group("value"))
    return headers


def parse_toc_path(toc_path: Path) -> AddonFolder | None:
    """Build an AddonFolder from a manifest file.

    Returns None when the file is not a manifest of its folder or cannot be
    read; callers skip those silently.
    """
    addon_id = toc_id(toc_path)
    if addon_id is None:
        _log.debug("Ignoring %s: name does not match its folder", toc_path)
        return None

    try:
        text = toc_path.read_text(encoding="utf-8-sig", errors="replace")
    except OSError as exc:
        _log.debug("Could not read %s: %s", toc_path, exc)
        return None

    headers = parse_toc_text(text)
    dependencies = _split_list(headers.get("dependencies", ""))
    dependencies += [
        dep for dep in _split_list(headers.get("requireddeps", "")) if dep not in dependencies
    ]

    title = headers.get("title")
    return AddonFolder(
        id=addon_id,
        path=toc_path.parent,
        title=_strip_colors(title) if title else None,
        interface=headers.get("interface"),
        version=headers.get("version"),
        author=headers.get("author"),
        notes=_strip_colors(headers["notes"]) if "notes" in headers else None,
        dependencies=dependencies,
        optional_dependencies=_split_list(headers.get("optionaldeps", "")),
        repository_ids={
            name: headers[key]
            for key, name in _REPOSITORY_KEYS.items()
            if headers.get(key)
        },
    )


def sort_and_dedup(folders: list[AddonFolder]) -> list[AddonFolder]:
    """Sort by (id, path) and drop consecutive duplicates."""
    result: list[AddonFolder] = []
    for folder in sorted(folders):
        if result and result[-1] == folder:
            continue
        result.append(folder)
    return result


def scan_addon_folders(root: Path) -> list[AddonFolder]:
    """Parse every top-level addon folder currently under ``root``."""
    root = Path(root)
    if not root.is_dir():
        return []

    folders = []
    for child in sorted(root.iterdir()):
        if not child.is_dir():
            continue
        for toc in sorted(child.glob(f"*{TOC_EXTENSION}")):
            folder = parse_toc_path(toc)
            if folder is not None:
                folders.append(folder)
    return sort_and_dedup(folders)
