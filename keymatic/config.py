# Script: config.py
#
# Defaults live here as constants; every one of them can be overridden from the
# environment (handy for systemd EnvironmentFile= or a container's -e flags).

import os
import re
from dataclasses import dataclass

from .accounts import PASSWD_FILE
from .commands import CGROUP_FILE, CONTAINER_MARKERS, DEFAULT_SHELL

#-----------------------------#
# Defaults (env-overridable)  #
#-----------------------------#
PLATFORM = "auto"                   # auto / container / host
DEFAULT_GROUP = "users"             # Primary group when the roster doesn't say
DEFAULT_SUDO_GROUP = "sudo"         # Privileged group for newly created users
COMMAND_TIMEOUT = 60                # Seconds per account command; 0 = wait forever

LOG_FILE = "/var/log/keymatic/keymatic.log"
LOGROTATE_FILE = "/etc/logrotate.d/keymatic"
STATE_DIR = "/var/lib/keymatic"

# System/builtin users we never delete. Cleanup removes every other local
# account missing from the roster, so hosts with extra service accounts must
# add them via KEYMATIC_IGNORED_USERS, the roster's "ignored" list or --ignore.
RESERVED_USERS = {
    # base-passwd / shadow
    "root","daemon","bin","sys","sync","games","man","lp","mail","news",
    "uucp","proxy","www-data","backup","list","irc","gnats","nobody","nogroup",
    "_apt","operator","halt","shutdown","adm","ftp","postfix","chrony","ntp",
    # systemd
    "systemd-network","systemd-resolve","systemd-timesync","systemd-coredump",
    "systemd-oom","systemd-journal","systemd-journal-remote","systemd-bus-proxy",
    # common daemons
    "sshd","messagebus","syslog","uuidd","polkitd","dbus","tss","tcpdump",
    "landscape","pollinate","lxd","dnsmasq","avahi","rtkit","colord","usbmux",
    "fwupd-refresh","tpm","rpc","rpcuser","nscd","unbound","_chrony",
}


# Function: _env_bool
# Purpose : Read boolean-like env vars with a default.
# Notes   : Accepts 1/true/yes/y/on (case-insensitive).
def _env_bool(env, name: str, default: bool) -> bool:
    v = env.get(name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")

# Function: _env_list
# Purpose : Parse a list from env using commas/spaces as separators.
def _env_list(env, name: str, default: list[str]) -> list[str]:
    v = env.get(name, "")
    if not v.strip():
        return default
    parts = [p.strip() for p in re.split(r"[,\s]+", v) if p.strip()]
    return parts or default

# Function: _env_set
# Purpose : Same as _env_list but returns a set.
def _env_set(env, name: str, default: set[str]) -> set[str]:
    return set(_env_list(env, name, sorted(default)))

def _env_str(env, name: str, default: str) -> str:
    v = env.get(name)
    return (v.strip() if v is not None and v.strip() else default)

# Function: _env_int
# Purpose : Integer env var; garbage raises ValueError naming the variable.
def _env_int(env, name: str, default: int) -> int:
    v = env.get(name, "").strip()
    if not v:
        return default
    try:
        return int(v)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {v!r}") from None


@dataclass(frozen=True)
class Settings:
    passwd_file: str = PASSWD_FILE
    cgroup_file: str = CGROUP_FILE
    container_markers: tuple[str, ...] = CONTAINER_MARKERS
    platform: str = PLATFORM
    shell: str = DEFAULT_SHELL
    ignored_users: frozenset[str] = frozenset(RESERVED_USERS)
    group: str = DEFAULT_GROUP
    sudo_group: str = DEFAULT_SUDO_GROUP
    command_timeout: int = COMMAND_TIMEOUT
    log_file: str = LOG_FILE
    logrotate_file: str = LOGROTATE_FILE
    state_dir: str = STATE_DIR
    monochrome: bool = False

    @property
    def lock_path(self) -> str:
        return os.path.join(self.state_dir, ".lock")


# Function: fncLoadSettings
# Purpose : Defaults overlaid with KEYMATIC_* environment variables.
def fncLoadSettings(environ=None) -> Settings:
    env = os.environ if environ is None else environ
    return Settings(
        passwd_file=_env_str(env, "KEYMATIC_PASSWD_FILE", PASSWD_FILE),
        cgroup_file=_env_str(env, "KEYMATIC_CGROUP_FILE", CGROUP_FILE),
        container_markers=tuple(_env_list(env, "KEYMATIC_CONTAINER_MARKERS", list(CONTAINER_MARKERS))),
        platform=_env_str(env, "KEYMATIC_PLATFORM", PLATFORM).lower(),
        shell=_env_str(env, "KEYMATIC_SHELL", DEFAULT_SHELL),
        ignored_users=frozenset(_env_set(env, "KEYMATIC_IGNORED_USERS", RESERVED_USERS)),
        group=_env_str(env, "KEYMATIC_GROUP", DEFAULT_GROUP),
        sudo_group=_env_str(env, "KEYMATIC_SUDO_GROUP", DEFAULT_SUDO_GROUP),
        command_timeout=_env_int(env, "KEYMATIC_COMMAND_TIMEOUT", COMMAND_TIMEOUT),
        log_file=_env_str(env, "KEYMATIC_LOG_FILE", LOG_FILE),
        logrotate_file=_env_str(env, "KEYMATIC_LOGROTATE_FILE", LOGROTATE_FILE),
        state_dir=_env_str(env, "KEYMATIC_STATE_DIR", STATE_DIR),
        monochrome=_env_bool(env, "NO_COLOR", False),
    )
