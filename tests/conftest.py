"""
Shared fixtures and helpers for the Addon Manager test suite.
"""

import struct
import zipfile
from pathlib import Path

import pytest


def make_zip(path: Path, members: dict[str, str | bytes]) -> Path:
    """Write a zip at ``path`` with ``{archive_name: content}`` members.

    Names ending in "/" become directory entries.
    """
    with zipfile.ZipFile(path, "w") as zf:
        for member, data in members.items():
            zf.writestr(member, data)
    return path


def make_corrupt_zip(path: Path, member: str, content: str) -> Path:
    """Write a deflated zip whose ``member`` data is overwritten with junk.

    The central directory stays intact, so the archive opens and lists
    fine and only reading ``member`` fails.
    """
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(member, content)
        info = zf.getinfo(member)

    raw = bytearray(path.read_bytes())
    name_len, extra_len = struct.unpack_from("<HH", raw, info.header_offset + 26)
    start = info.header_offset + 30 + name_len + extra_len
    raw[start : start + info.compress_size] = b"\xff" * info.compress_size
    path.write_bytes(bytes(raw))
    return path


def toc_text(title: str, version: str = "1.0.0", **extra: str) -> str:
    lines = ["## Interface: 110002", f"## Title: {title}", f"## Version: {version}"]
    lines += [f"## {key}: {value}" for key, value in extra.items()]
    lines.append("core.lua")
    return "\n".join(lines) + "\n"


@pytest.fixture
def dirs(tmp_path):
    """Return (download_dir, addon_dir) as fresh tmp_path subdirectories."""
    downloads = tmp_path / "downloads"
    addons = tmp_path / "Interface" / "AddOns"
    downloads.mkdir()
    addons.mkdir(parents=True)
    return downloads, addons
