# Script: keystore.py
#
# authorized_keys handling. The file is always rewritten whole (never patched)
# and ownership is re-applied on every rewrite.

import logging
import os
import stat
import tempfile

from .accounts import LocalAccount
from .diff import fncArrayDiff

SSH_DIR_MODE = 0o700
KEYS_FILE_MODE = 0o600
KEY_LOG_CHARS = 20


# Function: fncKeyLabel
# Purpose : Short form of a key for logs (type + start of the blob).
def fncKeyLabel(key: str) -> str:
    return key[:KEY_LOG_CHARS]


def _assert_regular_or_missing(p: str):
    try:
        st = os.lstat(p)
    except FileNotFoundError:
        return
    if not stat.S_ISREG(st.st_mode):
        raise RuntimeError(f"{p} is not a regular file")


def _assert_real_dir(p: str):
    st = os.lstat(p)
    if not stat.S_ISDIR(st.st_mode):
        raise RuntimeError(f"{p} is not a directory (symlink?)")


class KeyStore:
    """Reads and rewrites <home>/.ssh/authorized_keys for a LocalAccount.

    `chown` is os.chown unless a caller (tests, mostly) supplies its own.
    """

    def __init__(self, chown=None):
        self.chown = chown or os.chown

    def read_keys(self, account: LocalAccount) -> list[str] | None:
        path = account.authorized_keys
        try:
            with open(path, "r", encoding="utf-8", errors="replace") as f:
                keys = [line.strip() for line in f if line.strip()]
        except FileNotFoundError:
            logging.debug("No %s for %s yet", path, account.username)
            return None
        logging.debug("Current keys on host for %s: %d", path, len(keys))
        return keys

    def ensure_ssh_dir(self, account: LocalAccount):
        d = account.ssh_dir
        if not os.path.lexists(d):
            # only .ssh; a missing home is not ours to create (it would be root-owned)
            if not os.path.isdir(account.home):
                raise RuntimeError(f"home directory {account.home} for {account.username} does not exist")
            os.mkdir(d, SSH_DIR_MODE)
            os.chmod(d, SSH_DIR_MODE)
            self.chown(d, account.uid, account.gid)
            logging.info("Created %s for %s", d, account.username)
            return
        _assert_real_dir(d)

    # Function: write_keys
    # Purpose : Replace authorized_keys with `keys`, one per line, in the given order.
    # Notes   : temp file in .ssh -> fsync -> 0600 -> chown -> os.replace. Refuses symlinks.
    def write_keys(self, account: LocalAccount, keys: list[str]):
        self.ensure_ssh_dir(account)
        path = account.authorized_keys
        _assert_regular_or_missing(path)

        data = "".join(f"{k}\n" for k in keys)
        fd, tmp = tempfile.mkstemp(prefix=".tmp-", dir=account.ssh_dir)
        try:
            try:
                os.write(fd, data.encode())
                os.fsync(fd)
            finally:
                os.close(fd)
            os.chmod(tmp, KEYS_FILE_MODE)
            self.chown(tmp, account.uid, account.gid)
            _assert_regular_or_missing(path)
            os.replace(tmp, path)
        except Exception:
            if os.path.lexists(tmp):
                os.remove(tmp)
            raise
        for k in keys:
            logging.info("Updating key %s for user %s", fncKeyLabel(k), account.username)


# Function: fncKeysNeedWrite
# Purpose : Decide whether authorized_keys must be rewritten.
# Notes   : None (no file) -> write. Same size and empty symmetric diff -> no-op.
#           Anything else, including same size with different members -> write.
def fncKeysNeedWrite(current: list[str] | None, desired: list[str]) -> bool:
    if current is None:
        return True
    if len(current) != len(desired):
        return True
    return len(fncArrayDiff(current, desired)) != 0


# Function: fncSyncKeys
# Purpose : Converge one account's authorized_keys onto `desired`.
# Notes   : Returns True when the file was rewritten.
def fncSyncKeys(store: KeyStore, account: LocalAccount, desired: list[str]) -> bool:
    current = store.read_keys(account)
    if not fncKeysNeedWrite(current, desired):
        logging.debug("No new keys for %s, nothing to do", account.username)
        return False
    store.write_keys(account, list(desired))
    logging.debug("Wrote %d keys for %s", len(desired), account.username)
    return True
