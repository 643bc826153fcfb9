#!/usr/bin/env python3
"""Elden Ring Seamless Co-op Manager - Entry Point"""

import argparse
import faulthandler
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from version import __version__

LOG_DIR_NAME = "ERSCoopManager"


def default_log_dir() -> Path:
    return Path(os.environ.get("APPDATA", "~")).expanduser() / LOG_DIR_NAME


def setup_logging(log_dir: Path) -> logging.Logger:
    """Log to ``erscom.log`` in ``log_dir`` and record crashes there too.

    Unhandled Python exceptions go through the log at CRITICAL.  Native
    crashes can't use logging, so faulthandler writes them to ``crash.log``.
    """
    log_dir.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(
        log_dir / "erscom.log",
        maxBytes=1024 * 1024,
        backupCount=2,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))

    # Core modules log under their own names, so the handler sits on the root logger
    root = logging.getLogger()
    root.setLevel(logging.INFO)
    root.addHandler(handler)

    logger = logging.getLogger("erscom")
    logger.setLevel(logging.DEBUG)

    def log_unhandled(exc_type, exc_value, exc_tb):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_tb)
            return
        logger.critical("Unhandled exception", exc_info=(exc_type, exc_value, exc_tb))

    sys.excepthook = log_unhandled
    faulthandler.enable(open(log_dir / "crash.log", "w", encoding="utf-8"), all_threads=True)
    return logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Elden Ring Seamless Co-op Manager")
    parser.add_argument("--install-dir", help="ELDEN RING directory (skips autodetection)")
    parser.add_argument("--cache-dir", help="where downloaded releases are kept")
    parser.add_argument("--log-dir", type=Path, default=None, help="where erscom.log is written")
    parser.add_argument("--settings-org", default="ERSCoopManager")
    parser.add_argument("--settings-app", default="ERSCoopManager")
    parser.add_argument("--no-persist-settings", action="store_true")
    parser.add_argument("--no-update-check", action="store_true")
    parser.add_argument("--version", action="version", version=__version__)
    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()

    logger = setup_logging(args.log_dir or default_log_dir())
    logger.info("Starting Elden Ring Seamless Co-op Manager %s", __version__)

    from gui import main
    main(
        logger,
        install_dir_override=args.install_dir,
        cache_dir=args.cache_dir,
        settings_org=args.settings_org,
        settings_app=args.settings_app,
        persist_settings=not args.no_persist_settings,
        check_updates=not args.no_update_check,
    )
