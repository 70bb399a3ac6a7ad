# Script: accounts.py
#
# Read side of the OS account database. keymatic never builds a LocalAccount
# itself; creation goes through the platform tools and is followed by a lookup.

import logging
import os
import pwd
from dataclasses import dataclass

from .errors import AccountNotFound, InventoryError

PASSWD_FILE = "/etc/passwd"
SSH_DIR = ".ssh"
AUTHORIZED_KEYS_FILE = "authorized_keys"


@dataclass(frozen=True)
class LocalAccount:
    username: str
    uid: int
    gid: int
    home: str

    @property
    def ssh_dir(self) -> str:
        return os.path.join(self.home, SSH_DIR)

    @property
    def authorized_keys(self) -> str:
        return os.path.join(self.ssh_dir, AUTHORIZED_KEYS_FILE)


class AccountDatabase:
    """Local account lookup and listing backed by pwd and the passwd file."""

    def __init__(self, passwd_path: str = PASSWD_FILE):
        self.passwd_path = passwd_path

    def lookup(self, username: str) -> LocalAccount:
        try:
            pw = pwd.getpwnam(username)
        except KeyError as e:
            raise AccountNotFound(username) from e
        return LocalAccount(pw.pw_name, pw.pw_uid, pw.pw_gid, pw.pw_dir)

    def usernames(self) -> list[str]:
        return fncGetAllUsers(self.passwd_path)


# Function: fncParsePasswd
# Purpose : Pull the login name (first colon field) out of each passwd line.
# Notes   : Blank lines are skipped; a line with no name field is a scan error.
def fncParsePasswd(lines, source: str = PASSWD_FILE) -> list[str]:
    users: list[str] = []
    seen: set[str] = set()
    for lineno, raw in enumerate(lines, 1):
        line = raw.rstrip("\r\n")
        if not line.strip():
            continue
        name = line.split(":", 1)[0].strip()
        if not name:
            raise InventoryError(f"{source}:{lineno}: no username field", "inventory")
        if name not in seen:
            seen.add(name)
            users.append(name)
    return users


# Function: fncGetAllUsers
# Purpose : Every local username, in file order.
# Notes   : Unreadable file -> InventoryError (fatal to the run).
def fncGetAllUsers(passwd_path: str = PASSWD_FILE) -> list[str]:
    try:
        with open(passwd_path, "r", encoding="utf-8", errors="replace") as f:
            users = fncParsePasswd(f, passwd_path)
    except OSError as e:
        logging.error("Failed to read account database %s: %s", passwd_path, e)
        raise InventoryError(f"cannot read {passwd_path}: {e}", "inventory") from e
    logging.debug("Got a list of local users: %s", users)
    return users
