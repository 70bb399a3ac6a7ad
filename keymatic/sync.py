# Script: sync.py
#
# What a pass does (in this order):
# - list local accounts, compare against the desired roster
# - delete local accounts nobody asked for (unless ignored)
# - per desired identity: look up -> create + privileged group if missing -> keys
#
# Everything is re-derived from the live system each pass, so a failed pass is
# simply re-run. Nothing here runs concurrently.

import enum
import logging
from dataclasses import dataclass, field

from .accounts import AccountDatabase, LocalAccount
from .commands import CommandSet
from .diff import fncArrayDiff
from .errors import AccountNotFound, DeletionError, KeymaticError, LifecycleError
from .keystore import KeyStore, fncSyncKeys


class IdentityState(enum.Enum):
    UNRESOLVED = "unresolved"
    LOCAL_EXISTS = "local-exists"
    CREATED = "created"
    GROUP_ASSIGNED = "group-assigned"
    KEYS_SYNCED = "keys-synced"


@dataclass
class Identity:
    """One desired roster entry. Built fresh each pass; only `local` changes."""

    username: str
    group: str
    sudo_group: str
    keys: tuple[str, ...] = ()
    local: LocalAccount | None = None

    def __post_init__(self):
        # ordered set: keep first occurrence
        self.keys = tuple(dict.fromkeys(k.strip() for k in self.keys if k and k.strip()))


@dataclass
class IdentityResult:
    username: str
    state: IdentityState
    created: bool = False
    keys_written: bool = False


@dataclass(frozen=True)
class RosterComparison:
    """Snapshot of ignored, desired and local usernames for one pass."""

    ignored: frozenset[str]
    desired: tuple[str, ...]
    local: tuple[str, ...]

    @classmethod
    def from_inventory(cls, desired, ignored, accounts: AccountDatabase) -> "RosterComparison":
        return cls(frozenset(ignored), tuple(desired), tuple(accounts.usernames()))

    # Function: deletion_candidates
    # Purpose : Local usernames absent from the desired roster.
    # Notes   : The symmetric diff also yields desired-but-missing users; those are
    #           creation work for the lifecycle, not cleanup, so only local ones are kept.
    def deletion_candidates(self) -> list[str]:
        local = set(self.local)
        return [u for u in fncArrayDiff(self.desired, self.local) if u in local]


@dataclass
class SyncReport:
    created: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    keys_written: list[str] = field(default_factory=list)
    failed: dict[str, LifecycleError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


#====================#
# Cleanup            #
#====================#

# Function: fncRemoveUser
# Purpose : Delete a local account and its home (and with it, its authorized_keys).
def fncRemoveUser(username: str, commands: CommandSet, accounts: AccountDatabase, runner):
    try:
        account = accounts.lookup(username)
        runner.run(commands.user_del, commands.delete_argv(account.username))
    except (KeymaticError, OSError) as e:
        logging.error("Error deleting user %s: %s", username, e)
        raise DeletionError(username, e) from e
    logging.info("Deleted user (and home): %s", username)


# Function: fncCleanup
# Purpose : Remove every local account not in the desired roster, skipping ignored ones.
# Notes   : First failure raises DeletionError and the rest of the batch is not attempted.
def fncCleanup(comparison: RosterComparison, commands: CommandSet,
               accounts: AccountDatabase, runner) -> tuple[list[str], list[str]]:
    deleted: list[str] = []
    skipped: list[str] = []
    for user in comparison.deletion_candidates():
        if user in comparison.ignored:
            logging.debug("User %s is in ignored users, not deleting", user)
            skipped.append(user)
            continue
        logging.info("Deleting user %s from host", user)
        fncRemoveUser(user, commands, accounts, runner)
        deleted.append(user)
    return deleted, skipped


#====================#
# Account lifecycle  #
#====================#

def _fncCreateUser(identity: Identity, commands: CommandSet, accounts: AccountDatabase, runner):
    logging.info("Creating user %s (group %s)", identity.username, identity.group)
    runner.run(commands.user_add, commands.create_argv(identity.username))
    identity.local = accounts.lookup(identity.username)
    logging.info("Created local user: %s (uid=%d)", identity.username, identity.local.uid)


def _fncAddUserToSudoGroup(identity: Identity, commands: CommandSet, runner):
    logging.info("Adding user %s to %s group", identity.local.username, identity.sudo_group)
    runner.run(commands.group_add, commands.group_argv(identity.local.username, identity.sudo_group))


# Function: fncSyncIdentity
# Purpose : Converge one identity: lookup -> (create -> group) -> keys.
# Notes   : Steps run in order and the first failure stops the rest for this
#           identity, raised as LifecycleError(operation, username). No retries.
#           The group step only runs for accounts created in this pass.
def fncSyncIdentity(identity: Identity, commands: CommandSet, accounts: AccountDatabase,
                    keystore: KeyStore, runner) -> IdentityResult:
    result = IdentityResult(identity.username, IdentityState.UNRESOLVED)
    steps = []
    try:
        identity.local = accounts.lookup(identity.username)
        result.state = IdentityState.LOCAL_EXISTS
    except AccountNotFound:
        steps.append(("create", IdentityState.CREATED,
                      lambda: _fncCreateUser(identity, commands, accounts, runner)))
        steps.append(("group", IdentityState.GROUP_ASSIGNED,
                      lambda: _fncAddUserToSudoGroup(identity, commands, runner)))

    def _keys():
        result.keys_written = fncSyncKeys(keystore, identity.local, list(identity.keys))

    steps.append(("keys", IdentityState.KEYS_SYNCED, _keys))

    for operation, reached, step in steps:
        try:
            step()
        except (OSError, RuntimeError) as e:
            logging.error("Failed trying to %s for user %s: %s", operation, identity.username, e)
            raise LifecycleError(operation, identity.username, e) from e
        result.state = reached
        if reached is IdentityState.CREATED:
            result.created = True
    return result


#====================#
# Pass driver        #
#====================#

# Function: fncReconcile
# Purpose : One full pass: inventory -> cleanup -> per-identity lifecycle.
# Notes   : Inventory and cleanup errors propagate (fatal to the pass).
def fncReconcile(identities: list[Identity], ignored, commands: CommandSet,
                 accounts: AccountDatabase, keystore: KeyStore, runner) -> SyncReport:
    report = SyncReport()
    comparison = RosterComparison.from_inventory([i.username for i in identities], ignored, accounts)
    logging.debug("Desired=%s Local=%s Ignored=%s",
                  list(comparison.desired), list(comparison.local), sorted(comparison.ignored))

    report.deleted, report.skipped = fncCleanup(comparison, commands, accounts, runner)

    # One identity failing must not hold the others hostage: record it and carry on.
    # The caller decides what a partial pass means (exit code).
    for identity in identities:
        try:
            res = fncSyncIdentity(identity, commands, accounts, keystore, runner)
        except LifecycleError as e:
            report.failed[identity.username] = e
            continue
        if res.created:
            report.created.append(res.username)
        if res.keys_written:
            report.keys_written.append(res.username)

    logging.info("Sync complete. Desired=%d Created=%d Deleted=%d KeysWritten=%d Failed=%d",
                 len(identities), len(report.created), len(report.deleted),
                 len(report.keys_written), len(report.failed))
    return report
