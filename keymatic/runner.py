# Script: runner.py
#
# The one place keymatic talks to privileged account tools. Anything with a
# matching run(program, args) method can stand in for CommandRunner.

import logging
import shutil
import subprocess

from .errors import CommandError


class CommandRunner:
    def __init__(self, timeout: int | None = None):
        self.timeout = timeout or None

    # Function: run
    # Purpose : Execute `program` with `args`; return stripped stdout.
    # Notes   : Missing binary -> rc 127, timeout -> rc 124, like the shell would report.
    def run(self, program: str, args: list[str]) -> str:
        exe = shutil.which(program)
        if not exe:
            raise CommandError(program, args, 127, f"binary not found: {program}")
        logging.debug("exec: %s %s", exe, args)
        try:
            p = subprocess.run([exe] + list(args), capture_output=True, text=True,
                               check=False, timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            raise CommandError(program, args, 124, f"timed out after {self.timeout}s") from e
        except OSError as e:
            raise CommandError(program, args, 126, str(e)) from e
        if p.returncode != 0:
            raise CommandError(program, args, p.returncode, p.stderr.strip())
        return p.stdout.strip()
