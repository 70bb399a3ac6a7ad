import pytest

from keymatic.commands import (
    fncContainerCommands, fncDetectContainer, fncHostCommands, fncSelectCommands,
)
from keymatic.errors import DetectionError

DOCKER_CGROUP = "12:pids:/docker/4f1c0c3e\n11:memory:/docker/4f1c0c3e\n"
HOST_CGROUP = "0::/init.scope\n"


def test_detects_docker_marker(tmp_path):
    p = tmp_path / "cgroup"
    p.write_text(DOCKER_CGROUP)
    assert fncDetectContainer(str(p)) is True


def test_marker_absent_means_host(tmp_path):
    p = tmp_path / "cgroup"
    p.write_text(HOST_CGROUP)
    assert fncDetectContainer(str(p)) is False


def test_custom_markers(tmp_path):
    p = tmp_path / "cgroup"
    p.write_text("0::/kubepods/besteffort/pod1234\n")
    assert fncDetectContainer(str(p), ("docker", "kubepods")) is True


def test_unreadable_indicator_is_fatal(tmp_path):
    with pytest.raises(DetectionError):
        fncDetectContainer(str(tmp_path / "missing"))
    with pytest.raises(DetectionError):
        fncSelectCommands("auto", str(tmp_path / "missing"))


def test_select_container_family(tmp_path):
    p = tmp_path / "cgroup"
    p.write_text(DOCKER_CGROUP)
    cmds = fncSelectCommands("auto", str(p), shell="/bin/ash")
    assert cmds.container
    assert cmds.create_argv("alice") == ["-D", "-s", "/bin/ash", "alice"]
    assert (cmds.group_add, cmds.group_argv("alice", "wheel")) == ("addgroup", ["alice", "wheel"])
    assert (cmds.user_del, cmds.delete_argv("alice")) == ("deluser", ["--remove-home", "alice"])


def test_select_host_family(tmp_path):
    p = tmp_path / "cgroup"
    p.write_text(HOST_CGROUP)
    cmds = fncSelectCommands("auto", str(p))
    assert not cmds.container
    assert (cmds.user_add, cmds.create_argv("alice")) == ("useradd", ["-U", "-m", "alice"])
    assert (cmds.group_add, cmds.group_argv("alice", "sudo")) == ("usermod", ["alice", "-a", "-G", "sudo"])
    assert (cmds.user_del, cmds.delete_argv("alice")) == ("userdel", ["-r", "alice"])


def test_override_skips_detection(tmp_path):
    missing = str(tmp_path / "missing")
    assert fncSelectCommands("container", missing) == fncContainerCommands()
    assert fncSelectCommands("HOST", missing) == fncHostCommands()


def test_unknown_mode_is_fatal():
    with pytest.raises(DetectionError):
        fncSelectCommands("bsd")


def test_command_set_is_immutable():
    cmds = fncHostCommands()
    with pytest.raises(AttributeError):
        cmds.user_add = "adduser"
