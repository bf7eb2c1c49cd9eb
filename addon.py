"""
Addon records shared by the installer, the manifest parser and the manager.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(order=True)
class AddonFolder:
    """One top-level directory under the AddOns root.

    Only ``id`` and ``path`` take part in equality and ordering, so folders
    parsed from several manifests in the same directory collapse to one.
    """

    id: str
    path: Path
    title: str | None = field(default=None, compare=False)
    interface: str | None = field(default=None, compare=False)
    version: str | None = field(default=None, compare=False)
    author: str | None = field(default=None, compare=False)
    notes: str | None = field(default=None, compare=False)
    dependencies: list[str] = field(default_factory=list, compare=False)
    optional_dependencies: list[str] = field(default_factory=list, compare=False)
    repository_ids: dict[str, str] = field(default_factory=dict, compare=False)
    # repository_ids: "curse" / "wago" / "wowi" / "tukui" -> project id


@dataclass
class Addon:
    """A logical addon: one downloaded archive, one or more folders on disk."""

    primary_folder_id: str  # Also the archive filename inside the download dir
    folders: list[AddonFolder] = field(default_factory=list)

    @property
    def primary_folder(self) -> AddonFolder | None:
        for folder in self.folders:
            if folder.id == self.primary_folder_id:
                return folder
        return None

    @property
    def title(self) -> str:
        primary = self.primary_folder
        if primary is not None and primary.title:
            return primary.title
        return self.primary_folder_id
