# Script: console.py
#
# Two outputs: the log (file + stdout, for the audit trail) and a handful of
# coloured console lines for whoever is watching a manual run.

import logging
import os
import sys

from colorama import Fore, Style, init as _cinit

from .config import Settings

_cinit()

_COLOR_MONO = False


def fncSetColorMode(monochrome: bool):
    """Call once after parsing args to disable colours when needed."""
    global _COLOR_MONO
    _COLOR_MONO = bool(monochrome)


def fncWantColor(stream=None) -> bool:
    stream = stream or sys.stdout
    if _COLOR_MONO or os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("FORCE_COLOR"):
        return True
    try:
        return stream.isatty()
    except (AttributeError, ValueError):
        return False


# Function: fncPrintMessage
# Purpose : Human-friendly coloured console messages.
# Notes   : Used for user-facing prints (not logs).
def fncPrintMessage(message, msg_type="info"):
    styles = {
        "info":    (Fore.CYAN,  "{~} "),
        "warning": (Fore.YELLOW, "{!} "),
        "success": (Fore.GREEN, "{=]} "),
        "error":   (Fore.RED,   "{!} "),
    }
    colour, prefix = styles.get(msg_type, (Fore.WHITE, ""))
    if fncWantColor():
        print(f"{colour}{prefix}{message}{Style.RESET_ALL}")
    else:
        print(f"{prefix}{message}")


# Function: fncBootstrapPaths
# Purpose : Create log + state dirs with conservative permissions.
# Notes   : Safe to call multiple times.
def fncBootstrapPaths(settings: Settings):
    for d in (os.path.dirname(settings.log_file), settings.state_dir):
        if d:
            os.makedirs(d, exist_ok=True)
            os.chmod(d, 0o750)


# Function: fncEnsureLogrotate
# Purpose : Drop a logrotate file so the log doesn't grow forever.
# Notes   : Creates once; warns only on failure.
def fncEnsureLogrotate(settings: Settings):
    path = settings.logrotate_file
    content = f"""{settings.log_file} {{
  weekly
  rotate 8
  compress
  missingok
  notifempty
  create 0640 root root
}}
"""
    try:
        if os.path.isdir(os.path.dirname(path)) and not os.path.exists(path):
            with open(path, "w") as f:
                f.write(content)
            os.chmod(path, 0o644)
    except OSError as e:
        logging.warning("Couldn't write logrotate file (%s): %s", path, e)


# Function: fncSetupLogging
# Purpose : Log to file and stdout.
# Notes   : INFO for changes; DEBUG (verbose) for inventories and no-ops.
def fncSetupLogging(settings: Settings, verbose: bool = False):
    fncBootstrapPaths(settings)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        handlers=[logging.FileHandler(settings.log_file), logging.StreamHandler(sys.stdout)],
        force=True,
    )
    logging.info("---- keymatic start ----")
    fncEnsureLogrotate(settings)
