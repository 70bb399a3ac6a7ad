#!/usr/bin/env python3
# Script: cli.py
#
# keymatic --roster /etc/keymatic/roster.json [--interval 300]
#
# Preflight (python version, root, logging, run lock), pick the account
# command family once, then run reconciliation passes.

import argparse
import fcntl
import logging
import os
import re
import sys
import time

from . import VERSION
from .accounts import AccountDatabase
from .commands import CommandSet, fncSelectCommands
from .config import Settings, fncLoadSettings
from .console import fncPrintMessage, fncSetColorMode, fncSetupLogging
from .errors import KeymaticError
from .keystore import KeyStore
from .roster import fncLoadRoster
from .runner import CommandRunner
from .sync import SyncReport, fncReconcile

MIN_PYTHON_VERSION = (3, 10)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_PARTIAL = 2

# Lockfile so two runs don't stampede the account database
_LOCK_FH = None


def fncAcquireLock(lock_path: str):
    """Acquire an exclusive lock to prevent concurrent runs."""
    global _LOCK_FH
    os.makedirs(os.path.dirname(lock_path), exist_ok=True)
    try:
        _LOCK_FH = open(lock_path, "w")
        os.chmod(lock_path, 0o600)
        fcntl.lockf(_LOCK_FH, fcntl.LOCK_EX | fcntl.LOCK_NB)
        logging.debug("Acquired lock: %s", lock_path)
    except BlockingIOError:
        fncPrintMessage("Another instance of keymatic is already running.", "warning")
        sys.exit(EXIT_FATAL)
    except OSError as e:
        fncPrintMessage(f"Failed to acquire lock ({lock_path}): {e}", "error")
        sys.exit(EXIT_FATAL)


# Function: fncCheckPyVersion
# Purpose : Fail fast on unsupported Python versions.
def fncCheckPyVersion():
    if sys.version_info < MIN_PYTHON_VERSION:
        fncPrintMessage("keymatic requires Python %d.%d or higher." % MIN_PYTHON_VERSION, "error")
        sys.exit(EXIT_FATAL)


# Function: fncAdminCheck
# Purpose : Account tools and chown need root.
def fncAdminCheck():
    if os.geteuid() != 0:
        fncPrintMessage("This needs root. Try sudo.", "error")
        sys.exit(EXIT_FATAL)


def _split_names(value: str) -> set[str]:
    return {p for p in re.split(r"[,\s]+", value or "") if p}


def fncBuildParser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="keymatic",
        description="Sync local users and SSH authorized_keys to a desired roster",
    )
    parser.add_argument("--roster", required=True, help="Roster JSON file ('-' for stdin)")
    parser.add_argument("--ignore", default="", help="Extra usernames never to delete (comma/space separated)")
    parser.add_argument("--group", help="Default primary group for roster users")
    parser.add_argument("--sudo-group", help="Default privileged group for new users")
    parser.add_argument("--interval", type=int, default=0,
                        help="Seconds between passes; 0 runs a single pass")
    parser.add_argument("--platform", choices=["auto", "container", "host"],
                        help="Skip container detection and use this command family")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--no-color", action="store_true", help="Plain console output")
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    return parser


# Function: fncParseArgs
# Purpose : Parse argv and reject combinations that cannot work.
# Notes   : stdin is drained by the first pass, so "-" only makes sense for a single pass.
def fncParseArgs(argv=None) -> argparse.Namespace:
    parser = fncBuildParser()
    args = parser.parse_args(argv)
    if args.roster == "-" and args.interval > 0:
        parser.error("--roster - (stdin) cannot be combined with --interval")
    if args.interval < 0:
        parser.error("--interval must be 0 or more")
    return args


# Function: fncRunPass
# Purpose : Load the roster and run one reconciliation pass.
# Notes   : The roster is re-read every pass; nothing is carried between passes.
def fncRunPass(args, settings: Settings, commands: CommandSet, runner,
               accounts: AccountDatabase | None = None, keystore: KeyStore | None = None) -> SyncReport:
    identities, roster_ignored = fncLoadRoster(
        args.roster,
        args.group or settings.group,
        args.sudo_group or settings.sudo_group,
    )
    ignored = set(settings.ignored_users) | roster_ignored | _split_names(args.ignore)
    return fncReconcile(
        identities, ignored, commands,
        accounts or AccountDatabase(settings.passwd_file),
        keystore or KeyStore(),
        runner,
    )


def _fncReportExit(report: SyncReport) -> int:
    for username, err in report.failed.items():
        fncPrintMessage(f"{username}: {err}", "error")
    if report.failed:
        fncPrintMessage(f"{len(report.failed)} user(s) failed; re-run to retry.", "warning")
        return EXIT_PARTIAL
    fncPrintMessage(
        f"In sync: created={len(report.created)} deleted={len(report.deleted)} "
        f"keys_written={len(report.keys_written)}", "success")
    return EXIT_OK


# Function: fncMain
# Purpose : Program entrypoint.
# Notes   : Exit 0 = in sync, 1 = fatal (detection/inventory/cleanup), 2 = some users failed.
def fncMain(argv=None) -> int:
    fncCheckPyVersion()
    args = fncParseArgs(argv)
    try:
        settings = fncLoadSettings()
    except ValueError as e:
        fncPrintMessage(str(e), "error")
        return EXIT_FATAL
    fncSetColorMode(args.no_color or settings.monochrome)

    try:
        os.umask(0o077)
        fncAdminCheck()
        fncSetupLogging(settings, args.verbose)
        fncAcquireLock(settings.lock_path)

        commands = fncSelectCommands(
            args.platform or settings.platform,
            settings.cgroup_file,
            settings.container_markers,
            settings.shell,
        )
        runner = CommandRunner(settings.command_timeout)

        while True:
            try:
                rc = _fncReportExit(fncRunPass(args, settings, commands, runner))
            except KeymaticError as e:
                if args.interval <= 0:
                    raise
                # daemon mode: the next pass re-derives everything from the host
                logging.error("Pass failed: %s", e)
            if args.interval <= 0:
                return rc
            logging.info("Sleeping %ds until next pass", args.interval)
            time.sleep(args.interval)
    except KeymaticError as e:
        logging.error("Fatal: %s", e)
        fncPrintMessage(f"Fatal: {e}", "error")
        return EXIT_FATAL
    except KeyboardInterrupt:
        fncPrintMessage("Bye then...", "error")
        return EXIT_OK
    except Exception as e:
        logging.exception("Unhandled exception: %s", e)
        return EXIT_FATAL


if __name__ == "__main__":
    sys.exit(fncMain())
