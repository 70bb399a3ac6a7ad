# Script: roster.py
#
# Host-side input: the desired roster as a JSON document, written by whatever
# talks to the identity provider.
#
#   {"ignored": ["root"],
#    "users": [{"name": "bob", "group": "staff", "sudo_group": "wheel",
#               "keys": ["ssh-ed25519 AAAA... bob@laptop"]}]}

import json
import logging
import re
import sys

from .errors import InventoryError
from .sync import Identity

USERNAME_RE = re.compile(r"^[a-z_][a-z0-9_.-]*\$?$")
USERNAME_MAXLEN = 32


def fncValidUsername(name: str) -> bool:
    return bool(name) and len(name) <= USERNAME_MAXLEN and bool(USERNAME_RE.match(name))


# Function: fncParseRoster
# Purpose : Turn a decoded roster document into (identities, ignored usernames).
# Notes   : group/sudo_group fall back to the given defaults. Bad shape -> InventoryError.
def fncParseRoster(doc, default_group: str, default_sudo_group: str) -> tuple[list[Identity], set[str]]:
    if not isinstance(doc, dict):
        raise InventoryError("roster must be a JSON object", "roster")
    users = doc.get("users", [])
    ignored = doc.get("ignored", [])
    if not isinstance(users, list) or not isinstance(ignored, list):
        raise InventoryError("roster 'users' and 'ignored' must be lists", "roster")

    identities: list[Identity] = []
    seen: set[str] = set()
    for n, entry in enumerate(users):
        if not isinstance(entry, dict):
            raise InventoryError(f"roster users[{n}] is not an object", "roster")
        name = str(entry.get("name") or "").strip()
        if not fncValidUsername(name):
            raise InventoryError(f"roster users[{n}]: invalid username {name!r}", "roster", name or None)
        if name in seen:
            raise InventoryError(f"roster lists {name} more than once", "roster", name)
        seen.add(name)
        keys = entry.get("keys") or []
        if not isinstance(keys, list) or not all(isinstance(k, str) for k in keys):
            raise InventoryError(f"roster keys for {name} must be a list of strings", "roster", name)
        # authorized_keys is line-delimited: one key, one line
        if any("\n" in k.strip() or "\r" in k.strip() for k in keys):
            raise InventoryError(f"roster key for {name} spans more than one line", "roster", name)
        identities.append(Identity(
            username=name,
            group=str(entry.get("group") or default_group),
            sudo_group=str(entry.get("sudo_group") or default_sudo_group),
            keys=tuple(keys),
        ))
    return identities, {str(u).strip() for u in ignored if str(u).strip()}


# Function: fncLoadRoster
# Purpose : Read + parse a roster file ("-" = stdin).
def fncLoadRoster(path: str, default_group: str, default_sudo_group: str) -> tuple[list[Identity], set[str]]:
    try:
        if path == "-":
            doc = json.load(sys.stdin)
        else:
            with open(path, "r", encoding="utf-8") as f:
                doc = json.load(f)
    except OSError as e:
        logging.error("Failed to read roster %s: %s", path, e)
        raise InventoryError(f"cannot read roster {path}: {e}", "roster") from e
    except ValueError as e:
        logging.error("Bad JSON in roster %s: %s", path, e)
        raise InventoryError(f"bad JSON in roster {path}: {e}", "roster") from e
    identities, ignored = fncParseRoster(doc, default_group, default_sudo_group)
    logging.info("Roster %s: %d users, %d ignored", path, len(identities), len(ignored))
    return identities, ignored
