from __future__ import annotations

"""POSIX shell implementation of `FileMonitoringTask`."""

import shlex
import typing
from pathlib import Path

from ..settings import SETTINGS
from .controller import FileMonitoringController
from .launcher import LocalLauncher
from .task import FileMonitoringTask

SCRIPT_FILE_NAME = "script.sh"


class ShellController(FileMonitoringController):
    def get_script_file(self, workspace: Path) -> Path:
        return self.resolve(workspace) / SCRIPT_FILE_NAME


def build_wrapper(*, interpreter: str, capturing_output: bool) -> str:
    """Shell snippet that runs `$0` and records its exit code in `$2`.

    Positional arguments: `$0` script, `$1` log file, `$2` result file,
    `$3` output file. The result is renamed into place so readers never see
    a partially written exit code.

    The wrapper carries the stop cookie too. It catches SIGTERM (children
    still get the default action) so that after `stop` it survives long
    enough to record the script's exit code.
    """

    if capturing_output:
        redirect = '>"$3" 2>"$1"'
    else:
        redirect = '>"$1" 2>&1'
    return (
        f'trap : TERM; {shlex.quote(interpreter)} "$0" {redirect} </dev/null; '
        'echo $? >"$2.tmp"; mv "$2.tmp" "$2"'
    )


class ShellScript(FileMonitoringTask):
    def __init__(self, script: str, *, interpreter: str | None = None):
        super().__init__()
        if not str(script or "").strip():
            raise ValueError("empty_script")
        self.script = script
        self.interpreter = interpreter or SETTINGS.shell_binary

    def do_launch(
        self,
        *,
        workspace: Path,
        launcher: LocalLauncher,
        listener: typing.TextIO | None,
        env: dict[str, str],
    ) -> ShellController:
        controller = ShellController.create(workspace)
        paths = controller.control_paths(workspace)
        script_file = controller.get_script_file(workspace)
        script_file.write_text(self.script, encoding="utf-8")

        cmd = [
            self.interpreter,
            "-c",
            build_wrapper(interpreter=self.interpreter, capturing_output=self.capturing_output),
            str(script_file),
            str(paths.log_file),
            str(paths.result_file),
            str(paths.output_file),
        ]
        launcher.launch(cmd, env=self.escape(env), cwd=workspace, listener=listener)
        return controller
