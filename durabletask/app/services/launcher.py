from __future__ import annotations

"""Local process launching and environment-scoped killing.

`LocalLauncher` is the capability handed to launch collaborators. It spawns
commands detached from the caller (new session, no inherited stdio), so the
command keeps running if the controlling process goes away, and it can later
find a process tree again purely by an environment variable it carries.
"""

import logging
import os
import shlex
import string
import subprocess
import typing
from pathlib import Path

import psutil

from ..exceptions import StopFailedError

logger = logging.getLogger(__name__)


def expand_env_overrides(base: typing.Mapping[str, str], overrides: typing.Mapping[str, str]) -> dict[str, str]:
    """Apply `overrides` on top of `base`, expanding `$VAR` / `${VAR}` references.

    References resolve against the environment built so far; unknown names are
    left as-is. `$$` yields a literal `$`, which is how callers protect values
    that must not be expanded (see `FileMonitoringTask.escape`).
    """

    merged = dict(base)
    for key, value in overrides.items():
        merged[key] = string.Template(value).safe_substitute(merged)
    return merged


def process_env_matches(proc: psutil.Process, model_env: typing.Mapping[str, str]) -> bool:
    try:
        env = proc.environ()
    except (psutil.AccessDenied, psutil.NoSuchProcess, psutil.ZombieProcess):
        # Not ours to inspect (or already gone): cannot be a match.
        return False
    return all(env.get(key) == value for key, value in model_env.items())


class LocalLauncher:
    """Launch and kill processes on the local node."""

    def __init__(self, *, quiet: bool = False):
        self.quiet = quiet

    def launch(
        self,
        cmd: list[str],
        *,
        env: typing.Mapping[str, str],
        cwd: Path,
        listener: typing.TextIO | None = None,
    ) -> subprocess.Popen[bytes]:
        if listener is not None and not self.quiet:
            listener.write(f"$ {shlex.join(cmd)}\n")
            listener.flush()

        merged_env = expand_env_overrides(os.environ, env)
        try:
            return subprocess.Popen(
                cmd,
                cwd=str(cwd),
                env=merged_env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as exc:
            raise RuntimeError(f"launch_failed: {type(exc).__name__}: {exc}") from exc

    def kill(self, model_env: typing.Mapping[str, str]) -> int:
        """Terminate every process whose environment contains all of `model_env`.

        Returns:
            Number of processes signalled.
        """

        if not model_env:
            raise ValueError("model_env must not be empty")

        own_pid = os.getpid()
        killed = 0
        for proc in psutil.process_iter():
            if proc.pid == own_pid or not process_env_matches(proc, model_env):
                continue
            try:
                proc.terminate()
            except psutil.NoSuchProcess:
                continue
            except psutil.Error as exc:
                raise StopFailedError(f"failed to kill pid {proc.pid}: {exc}") from exc
            killed += 1
        logger.debug("killed %d process(es) matching %s", killed, sorted(model_env))
        return killed
