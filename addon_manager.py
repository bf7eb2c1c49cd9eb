"""
Addon Manager - Core Logic

Wraps the on-disk install/uninstall operations for the application layer:
progress goes to a log callback and results come back as (ok, message).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

from addon import Addon, AddonFolder
from addon_fs import delete_addons, delete_saved_variables, install_addon
from archive_reader import ArchiveOpenError
from toc_parser import scan_addon_folders

_log = logging.getLogger(__name__)


class AddonManager:
    """
    Main addon manager controller.

    Workflow:
        1. scan_installed() to see which addon folders are on disk
        2. install_addon() once an archive has been downloaded
        3. uninstall_addon() to remove an addon and, optionally, its saved variables

    Installs are not serialized here; run one at a time per AddOns root.
    """

    def __init__(
        self,
        addon_dir: str | Path,
        download_dir: str | Path,
        wtf_dir: str | Path | None = None,
        log_callback: Optional[Callable[[str], None]] = None,
        delete_saved_variables: bool = False,
    ):
        self.addon_dir = Path(addon_dir)
        self.download_dir = Path(download_dir)
        self.wtf_dir = Path(wtf_dir) if wtf_dir is not None else None
        self.delete_saved_variables = delete_saved_variables
        self._log_cb = log_callback or print

        # Runtime state; persisting it is the application's job
        self.installed: dict[str, Addon] = {}  # key = primary_folder_id

    # ── Logging ───────────────────────────────────────────────────────

    def log(self, msg: str):
        _log.info(msg)
        self._log_cb(msg)

    # ── Installed Addons ──────────────────────────────────────────────

    def scan_installed(self) -> list[AddonFolder]:
        folders = scan_addon_folders(self.addon_dir)
        self.log(f"Found {len(folders)} addon folder(s) in {self.addon_dir}")
        return folders

    def check_installed_status(self) -> list[str]:
        """Forget addons that lost a folder on disk. Returns their ids."""
        stale_keys = []
        for key, addon in self.installed.items():
            missing = [folder.id for folder in addon.folders if not folder.path.exists()]
            if missing or not addon.folders:
                self.log(f"  Addon '{addon.title}': folder(s) missing {missing}, marking as not installed")
                stale_keys.append(key)

        for key in stale_keys:
            del self.installed[key]

        self.log(f"Verified {len(self.installed)} addon(s) currently installed")
        return stale_keys

    def is_installed(self, primary_folder_id: str) -> bool:
        return primary_folder_id in self.installed

    # ── Install ───────────────────────────────────────────────────────

    def install_addon(self, addon: Addon) -> tuple[bool, str]:
        self.log(f"Installing '{addon.title}' from {addon.primary_folder_id}...")

        try:
            folders = install_addon(addon, self.download_dir, self.addon_dir)
        except ArchiveOpenError as exc:
            return False, f"Could not open archive: {exc}"
        except OSError as exc:
            self.log("  Install failed part-way; previous folders may already be gone")
            return False, f"Install failed: {exc}"

        if not folders:
            self.installed.pop(addon.primary_folder_id, None)
            return False, "Archive did not contain any addon folders"

        addon.folders = folders
        self.installed[addon.primary_folder_id] = addon
        for folder in folders:
            version = f" {folder.version}" if folder.version else ""
            self.log(f"  Installed folder: {folder.id}{version}")

        self.log(f"  Successfully installed '{addon.title}' ({len(folders)} folder(s))")
        return True, f"Installed {len(folders)} folder(s)"

    # ── Uninstall ─────────────────────────────────────────────────────

    def uninstall_addon(self, addon: Addon) -> tuple[bool, str]:
        self.log(f"Uninstalling '{addon.title}'...")

        try:
            delete_addons(addon.folders)
        except OSError as exc:
            return False, f"Uninstall failed: {exc}"

        for folder in addon.folders:
            self.log(f"  Removed: {folder.id}")

        self.installed.pop(addon.primary_folder_id, None)

        if self.delete_saved_variables:
            ok, msg = self.clean_saved_variables(addon)
            if not ok:
                return False, f"Addon removed, but {msg}"

        self.log(f"  Successfully uninstalled '{addon.title}'")
        return True, f"Removed {len(addon.folders)} folder(s)"

    def clean_saved_variables(self, addon: Addon) -> tuple[bool, str]:
        if self.wtf_dir is None or not self.wtf_dir.exists():
            self.log("  WARNING: WTF directory not found, saved variables kept")
            return True, "No WTF directory, nothing to clean"

        try:
            delete_saved_variables(addon.folders, self.wtf_dir)
        except OSError as exc:
            return False, f"saved variables cleanup failed: {exc}"

        self.log(f"  Removed saved variables for {len(addon.folders)} folder(s)")
        return True, "Saved variables removed"

    # ── Validation ────────────────────────────────────────────────────

    def validate_paths(self) -> list[str]:
        issues = []
        if not self.addon_dir.exists():
            issues.append(f"AddOns directory does not exist: {self.addon_dir}")
        if not self.download_dir.exists():
            issues.append(f"Download directory does not exist: {self.download_dir}")
        if self.delete_saved_variables and (self.wtf_dir is None or not self.wtf_dir.exists()):
            issues.append(f"WTF directory not found: {self.wtf_dir}")
        return issues
