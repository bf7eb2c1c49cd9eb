"""
Persisted settings for the addon manager.

Stored as JSON:

{
    "addon_dir": "C:/Games/World of Warcraft/_retail_/Interface/AddOns",
    "download_dir": "C:/Games/World of Warcraft/_retail_/Interface/AddOns/.downloads",
    "wtf_dir": "C:/Games/World of Warcraft/_retail_/WTF",
    "delete_saved_variables": false
}

Only ``addon_dir`` is required. The WTF directory defaults to the one that
sits two levels above Interface/AddOns.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

from pydantic import BaseModel, field_validator, model_validator

SETTINGS_ENV_VAR = "ADDON_MANAGER_SETTINGS"
DOWNLOAD_DIR_NAME = ".downloads"


class ManagerSettings(BaseModel):
    addon_dir: Path
    download_dir: Path | None = None
    wtf_dir: Path | None = None
    delete_saved_variables: bool = False

    @field_validator("addon_dir", "download_dir", "wtf_dir", mode="before")
    @classmethod
    def _expand(cls, v):
        if v is None or v == "":
            return None
        return Path(os.path.expanduser(str(v)))

    @model_validator(mode="after")
    def _fill_defaults(self) -> ManagerSettings:
        if self.download_dir is None:
            self.download_dir = self.addon_dir / DOWNLOAD_DIR_NAME
        if self.wtf_dir is None:
            self.wtf_dir = self.addon_dir.parent.parent / "WTF"
        return self


def default_settings_path() -> Path:
    env = os.environ.get(SETTINGS_ENV_VAR)
    if env:
        return Path(env)
    return Path(os.environ.get("APPDATA", "~")).expanduser() / "AddonManager" / "settings.json"


def load_settings_data(path: str | Path) -> dict:
    """Raw settings dict as stored, before defaults are derived."""
    return json.loads(Path(path).read_text(encoding="utf-8"))


def load_settings(path: str | Path) -> ManagerSettings:
    """Read settings from ``path``.

    Raises ``pydantic.ValidationError`` if the data is invalid.
    Raises ``json.JSONDecodeError`` if the file is not valid JSON.
    """
    return ManagerSettings.model_validate(load_settings_data(path))


def save_settings(settings: ManagerSettings, path: str | Path):
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(settings.model_dump_json(indent=2), encoding="utf-8")
