# Script: commands.py
#
# Alpine's busybox account tools take different flags to shadow-utils, so work
# out once at startup which family this host has and hand the result around.

import logging
from dataclasses import dataclass

from .errors import DetectionError

CGROUP_FILE = "/proc/1/cgroup"
CONTAINER_MARKERS = ("docker",)
DEFAULT_SHELL = "/bin/bash"


@dataclass(frozen=True)
class CommandSet:
    user_add: str
    user_add_args: tuple[str, ...]
    group_add: str
    group_add_args: tuple[str, ...]
    user_del: str
    user_del_args: tuple[str, ...]
    container: bool = False

    def create_argv(self, username: str) -> list[str]:
        return [*self.user_add_args, username]

    def group_argv(self, username: str, group: str) -> list[str]:
        return [username, *self.group_add_args, group]

    def delete_argv(self, username: str) -> list[str]:
        return [*self.user_del_args, username]


# Function: fncContainerCommands
# Purpose : busybox adduser/addgroup/deluser.
# Notes   : -D = no password, login shell set explicitly since busybox defaults to /bin/sh.
def fncContainerCommands(shell: str = DEFAULT_SHELL) -> CommandSet:
    return CommandSet(
        user_add="adduser", user_add_args=("-D", "-s", shell),
        group_add="addgroup", group_add_args=(),
        user_del="deluser", user_del_args=("--remove-home",),
        container=True,
    )


# Function: fncHostCommands
# Purpose : shadow-utils useradd/usermod/userdel.
# Notes   : -U creates the user's own group, -m the home dir. No password is set.
def fncHostCommands() -> CommandSet:
    return CommandSet(
        user_add="useradd", user_add_args=("-U", "-m"),
        group_add="usermod", group_add_args=("-a", "-G"),
        user_del="userdel", user_del_args=("-r",),
        container=False,
    )


# Function: fncDetectContainer
# Purpose : True if PID 1's cgroup file mentions any container marker.
# Notes   : A readable file without a marker means host. Failing to read it at all is fatal.
def fncDetectContainer(path: str = CGROUP_FILE, markers=CONTAINER_MARKERS) -> bool:
    try:
        with open(path, "r", errors="replace") as f:
            content = f.read()
    except OSError as e:
        logging.error("Could not determine if running inside a container (%s): %s", path, e)
        raise DetectionError(f"cannot read {path}: {e}", "detect") from e
    return any(m and m in content for m in markers)


# Function: fncSelectCommands
# Purpose : Build the process-wide CommandSet.
# Notes   : mode "container"/"host" skips detection; "auto" reads the cgroup file.
def fncSelectCommands(mode: str = "auto", cgroup_file: str = CGROUP_FILE,
                      markers=CONTAINER_MARKERS, shell: str = DEFAULT_SHELL) -> CommandSet:
    mode = (mode or "auto").strip().lower()
    if mode == "container":
        container = True
    elif mode == "host":
        container = False
    elif mode == "auto":
        container = fncDetectContainer(cgroup_file, markers)
    else:
        raise DetectionError(f"unknown platform mode: {mode}", "detect")

    if container:
        logging.debug("Running in a container, using busybox account commands")
        return fncContainerCommands(shell)
    logging.debug("Not running in a container, using shadow-utils account commands")
    return fncHostCommands()
