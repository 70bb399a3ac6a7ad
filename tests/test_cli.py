import json
import os
import stat
import subprocess
import sys

import pytest

from conftest import K1
from keymatic import cli
from keymatic.config import Settings
from keymatic.errors import LifecycleError
from keymatic.sync import SyncReport


@pytest.fixture
def roster_file(tmp_path):
    p = tmp_path / "roster.json"
    p.write_text(json.dumps({"ignored": ["svc"], "users": [{"name": "bob", "keys": [K1]}]}))
    return str(p)


def test_parser_defaults(roster_file):
    args = cli.fncBuildParser().parse_args(["--roster", roster_file])
    assert (args.interval, args.platform, args.verbose) == (0, None, False)


def test_run_pass_merges_ignore_sources(roster_file, commands, accounts, keystore, runner):
    for n in ("root", "svc", "ops", "eve"):
        accounts.add(n)
    args = cli.fncBuildParser().parse_args(["--roster", roster_file, "--ignore", "ops", "--sudo-group", "wheel"])
    settings = Settings(ignored_users=frozenset({"root"}))

    report = cli.fncRunPass(args, settings, commands, runner, accounts, keystore)

    assert report.deleted == ["eve"]
    assert sorted(report.skipped) == ["ops", "root", "svc"]
    assert report.created == ["bob"]
    assert ("usermod", ["bob", "-a", "-G", "wheel"]) in runner.calls


@pytest.fixture
def quiet_preflight(monkeypatch, tmp_path):
    monkeypatch.setattr(cli, "fncAdminCheck", lambda: None)
    monkeypatch.setattr(cli, "fncSetupLogging", lambda settings, verbose=False: None)
    monkeypatch.setattr(cli, "fncAcquireLock", lambda path: None)
    monkeypatch.setattr(cli.os, "umask", lambda mask: 0)
    monkeypatch.setenv("KEYMATIC_CGROUP_FILE", str(tmp_path / "no-cgroup"))


def test_detection_failure_is_fatal(quiet_preflight, roster_file, monkeypatch):
    called = []
    monkeypatch.setattr(cli, "fncRunPass", lambda *a, **kw: called.append(a))
    assert cli.fncMain(["--roster", roster_file, "--no-color"]) == cli.EXIT_FATAL
    assert called == []


def test_partial_failure_exit_code(quiet_preflight, roster_file, monkeypatch):
    report = SyncReport()
    report.failed["bob"] = LifecycleError("group", "bob", RuntimeError("boom"))
    monkeypatch.setattr(cli, "fncRunPass", lambda *a, **kw: report)
    assert cli.fncMain(["--roster", roster_file, "--platform", "host", "--no-color"]) == cli.EXIT_PARTIAL


def test_clean_pass_exit_code(quiet_preflight, roster_file, monkeypatch):
    monkeypatch.setattr(cli, "fncRunPass", lambda *a, **kw: SyncReport(created=["bob"]))
    assert cli.fncMain(["--roster", roster_file, "--platform", "container", "--no-color"]) == cli.EXIT_OK


@pytest.fixture
def lock_path(tmp_path, monkeypatch):
    monkeypatch.setattr(cli, "_LOCK_FH", None)
    yield str(tmp_path / "state" / ".lock")
    if cli._LOCK_FH is not None:
        cli._LOCK_FH.close()


def test_lock_is_taken_and_private(lock_path):
    cli.fncAcquireLock(lock_path)
    assert cli._LOCK_FH is not None
    assert stat.S_IMODE(os.stat(lock_path).st_mode) == 0o600


def test_second_instance_exits_1(lock_path):
    # lockf locks belong to a process, so the holder has to be another one
    os.makedirs(os.path.dirname(lock_path))
    holder = subprocess.Popen(
        [sys.executable, "-c",
         "import fcntl, sys, time\n"
         "f = open(sys.argv[1], 'w')\n"
         "fcntl.lockf(f, fcntl.LOCK_EX)\n"
         "print('locked', flush=True)\n"
         "time.sleep(60)\n",
         lock_path],
        stdout=subprocess.PIPE, text=True,
    )
    try:
        assert holder.stdout.readline().strip() == "locked"
        with pytest.raises(SystemExit) as exc:
            cli.fncAcquireLock(lock_path)
        assert exc.value.code == cli.EXIT_FATAL
    finally:
        holder.kill()
        holder.wait()
        holder.stdout.close()


def test_stdin_roster_rejected_in_interval_mode(capsys):
    with pytest.raises(SystemExit) as exc:
        cli.fncParseArgs(["--roster", "-", "--interval", "300"])
    assert exc.value.code == 2
    assert "--interval" in capsys.readouterr().err


def test_stdin_roster_allowed_for_one_pass():
    assert cli.fncParseArgs(["--roster", "-"]).roster == "-"


def test_negative_interval_rejected():
    with pytest.raises(SystemExit):
        cli.fncParseArgs(["--roster", "r.json", "--interval", "-5"])
