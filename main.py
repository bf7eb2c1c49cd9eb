#!/usr/bin/env python3
"""Addon Manager - Entry Point"""

import argparse
import faulthandler
import logging
import os
import sys
import traceback
from logging.handlers import RotatingFileHandler
from pathlib import Path

from addon import Addon, AddonFolder
from addon_manager import AddonManager
from settings import ManagerSettings, default_settings_path, load_settings_data
from toc_parser import scan_addon_folders


def setup_logging() -> tuple[logging.Logger, Path]:
    log_dir = Path(os.environ.get("APPDATA", "~")).expanduser() / "AddonManager"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "addonmanager.log"

    handler = RotatingFileHandler(
        log_file,
        maxBytes=1 * 1024 * 1024,  # 1 MB
        backupCount=2,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"))

    # Module loggers (addon_fs, toc_parser, ...) propagate here
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)
    return logging.getLogger("addonmanager"), log_dir


def install_crash_handler(logger: logging.Logger, log_dir: Path):
    def handle_exception(exc_type, exc_value, exc_tb):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_tb)
            return
        logger.critical(
            "Unhandled exception:\n%s",
            "".join(traceback.format_exception(exc_type, exc_value, exc_tb)),
        )

    sys.excepthook = handle_exception

    # faulthandler can't go through logging after a hard crash
    crash_file = log_dir / "crash.log"
    faulthandler.enable(open(crash_file, "w"), all_threads=True)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Addon Manager")
    parser.add_argument("--settings", help="settings JSON file")
    parser.add_argument("--addon-dir")
    parser.add_argument("--download-dir")
    parser.add_argument("--wtf-dir")
    sub = parser.add_subparsers(dest="command", required=True)

    p_install = sub.add_parser("install", help="install a downloaded archive")
    p_install.add_argument("archive", help="archive filename inside the download directory")
    p_install.add_argument(
        "--replace", nargs="*", default=[], metavar="FOLDER",
        help="installed folders the archive replaces",
    )

    p_uninstall = sub.add_parser("uninstall", help="delete addon folders")
    p_uninstall.add_argument("folders", nargs="+")
    p_uninstall.add_argument("--delete-saved-variables", action="store_true")

    p_clean = sub.add_parser("clean-saved-variables", help="delete saved variables of addons")
    p_clean.add_argument("folders", nargs="+")

    sub.add_parser("scan", help="list installed addon folders")
    return parser.parse_args(argv)


def resolve_settings(args: argparse.Namespace) -> ManagerSettings:
    data: dict = {}
    settings_path = Path(args.settings) if args.settings else default_settings_path()
    if settings_path.exists():
        # Raw values, so directories derived from addon_dir follow a CLI override
        data = load_settings_data(settings_path)
    for key in ("addon_dir", "download_dir", "wtf_dir"):
        value = getattr(args, key)
        if value:
            data[key] = value
    if getattr(args, "delete_saved_variables", False):
        data["delete_saved_variables"] = True
    if not data.get("addon_dir"):
        raise SystemExit("No AddOns directory configured (use --addon-dir or --settings)")
    return ManagerSettings.model_validate(data)


def _named_folders(addon_dir: Path, names: list[str]) -> list[AddonFolder]:
    return [AddonFolder(id=name, path=addon_dir / name) for name in names]


def run(args: argparse.Namespace, logger: logging.Logger) -> int:
    settings = resolve_settings(args)
    manager = AddonManager(
        settings.addon_dir,
        settings.download_dir,
        wtf_dir=settings.wtf_dir,
        delete_saved_variables=settings.delete_saved_variables,
    )

    if args.command == "scan":
        for folder in scan_addon_folders(settings.addon_dir):
            print(f"{folder.id}\t{folder.version or '-'}\t{folder.title or ''}")
        return 0

    if args.command == "install":
        addon = Addon(
            primary_folder_id=args.archive,
            folders=_named_folders(settings.addon_dir, args.replace),
        )
        ok, msg = manager.install_addon(addon)
    elif args.command == "uninstall":
        addon = Addon(
            primary_folder_id=args.folders[0],
            folders=_named_folders(settings.addon_dir, args.folders),
        )
        ok, msg = manager.uninstall_addon(addon)
    else:
        addon = Addon(
            primary_folder_id=args.folders[0],
            folders=_named_folders(settings.addon_dir, args.folders),
        )
        ok, msg = manager.clean_saved_variables(addon)

    logger.info("%s: %s", args.command, msg)
    print(msg)
    return 0 if ok else 1


if __name__ == "__main__":
    args = parse_args()
    logger, log_dir = setup_logging()
    install_crash_handler(logger, log_dir)
    logger.info("Starting Addon Manager")
    sys.exit(run(args, logger))
