import os

import pytest

from keymatic.accounts import LocalAccount
from keymatic.commands import fncHostCommands
from keymatic.errors import AccountNotFound, CommandError
from keymatic.keystore import KeyStore

K1 = "ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIK1k1k1k1k1k1k1 one@example"
K2 = "ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIK2k2k2k2k2k2k2 two@example"
K3 = "ssh-rsa AAAAB3NzaC1yc2EAAAADAQABAAABAQk3k3k3k3 three@example"


class FakeAccounts:
    """In-memory account database. Homes live under `root`."""

    def __init__(self, root, names=()):
        self.root = str(root)
        self.accounts = {}
        self.next_uid = 1000
        for n in names:
            self.add(n)

    def add(self, username):
        home = os.path.join(self.root, username)
        os.makedirs(home, exist_ok=True)
        uid = 0 if username == "root" else self.next_uid
        if username != "root":
            self.next_uid += 1
        self.accounts[username] = LocalAccount(username, uid, uid, home)
        return self.accounts[username]

    def remove(self, username):
        self.accounts.pop(username)

    def lookup(self, username):
        try:
            return self.accounts[username]
        except KeyError:
            raise AccountNotFound(username) from None

    def usernames(self):
        return list(self.accounts)


class FakeRunner:
    """Records calls; creates/deletes accounts in FakeAccounts like the real tools would."""

    def __init__(self, accounts, events=None):
        self.accounts = accounts
        self.calls = []
        self.events = events if events is not None else []
        self.fail = set()
        self.create_without_account = False

    def run(self, program, args):
        self.calls.append((program, list(args)))
        self.events.append(program)
        if program in self.fail:
            raise CommandError(program, args, 1, "simulated failure")
        if program in ("useradd", "adduser") and not self.create_without_account:
            self.accounts.add(args[-1])
        elif program in ("userdel", "deluser"):
            self.accounts.remove(args[-1])
        return ""

    def programs(self):
        return [p for p, _ in self.calls]


class RecordingChown:
    def __init__(self):
        self.calls = []

    def __call__(self, path, uid, gid):
        self.calls.append((os.path.basename(path), uid, gid))


class RecordingKeyStore(KeyStore):
    def __init__(self, chown, events):
        super().__init__(chown=chown)
        self.events = events
        self.writes = 0

    def read_keys(self, account):
        self.events.append("keys")
        return super().read_keys(account)

    def write_keys(self, account, keys):
        self.writes += 1
        super().write_keys(account, keys)


@pytest.fixture
def events():
    return []


@pytest.fixture
def accounts(tmp_path):
    return FakeAccounts(tmp_path / "home")


@pytest.fixture
def runner(accounts, events):
    return FakeRunner(accounts, events)


@pytest.fixture
def chown():
    return RecordingChown()


@pytest.fixture
def keystore(chown, events):
    return RecordingKeyStore(chown, events)


@pytest.fixture
def commands():
    return fncHostCommands()


def read_lines(path):
    with open(path) as f:
        return f.read().splitlines()
