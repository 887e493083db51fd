from __future__ import annotations

"""Launch side of the protocol.

A `FileMonitoringTask` starts an external command that writes its output to
the control directory's log file and, as its very last action, its exit code
to the result file. It returns a `FileMonitoringController` through which
anybody holding the workspace path can observe the command later.
"""

import typing
from pathlib import Path

from ..settings import SETTINGS
from .control_dir import cookie_for
from .controller import FileMonitoringController
from .launcher import LocalLauncher


class FileMonitoringTask:
    """Base class for tasks that fork a command and monitor its control files.

    Subclasses override `do_launch` (or `launch_with_cookie` when they need
    control over the cookie).
    """

    def __init__(self) -> None:
        self.capturing_output = False

    def capture_output(self) -> None:
        """Send stdout to `output.txt` instead of the log (stderr still goes to the log)."""
        self.capturing_output = True

    def launch(
        self,
        env: typing.Mapping[str, str],
        workspace: Path,
        launcher: LocalLauncher | None = None,
        listener: typing.TextIO | None = None,
    ) -> FileMonitoringController:
        return self.launch_with_cookie(
            workspace=workspace,
            launcher=launcher or LocalLauncher(),
            listener=listener,
            env=dict(env),
            cookie_variable=SETTINGS.cookie_variable,
            cookie_value=cookie_for(workspace),
        )

    def launch_with_cookie(
        self,
        *,
        workspace: Path,
        launcher: LocalLauncher,
        listener: typing.TextIO | None,
        env: dict[str, str],
        cookie_variable: str,
        cookie_value: str,
    ) -> FileMonitoringController:
        # `stop` finds the process tree again through this variable.
        env[cookie_variable] = cookie_value
        return self.do_launch(workspace=workspace, launcher=launcher, listener=listener, env=env)

    def do_launch(
        self,
        *,
        workspace: Path,
        launcher: LocalLauncher,
        listener: typing.TextIO | None,
        env: dict[str, str],
    ) -> FileMonitoringController:
        raise NotImplementedError("override either do_launch or launch_with_cookie")

    @staticmethod
    def escape(env: typing.Mapping[str, str]) -> dict[str, str]:
        # The launcher expands `$VAR` in overrides; `$$` keeps a literal `$`.
        return {key: value.replace("$", "$$") for key, value in sorted(env.items())}
