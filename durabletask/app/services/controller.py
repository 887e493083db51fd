from __future__ import annotations

"""Serializable handle on a launched process.

A controller carries only the control directory path and a couple of scalars,
never an open file or process handle, so it can be dumped to JSON, shipped to
another process or machine, and loaded again after a restart. All state about
the running process is re-read from the control directory on every call.

There are two ways to observe a task and callers must pick one per task:

- pull: call `write_log` / `exit_status` repeatedly on the same instance; the
  delivered offset lives in `last_location` on that instance
- push: call `watch` once; the delivered offset lives in `last-location.txt`

Both paths keep their own offsets, so mixing them delivers bytes twice.
"""

import logging
import re
import socket
import typing
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import CorruptedResultError, DurableTaskError, LargeReadNotImplemented
from ..settings import SETTINGS
from ..utils import fs
from .control_dir import ControlDirPaths, cookie_for, create_control_dir, get_control_paths, legacy_control_dir
from .handler import Handler
from .launcher import LocalLauncher
from .watch_service import watch_service
from .watcher import Watcher

logger = logging.getLogger(__name__)

_EXIT_CODE_RE = re.compile(r"[+-]?[0-9]+")
_EXIT_CODE_MIN = -(2**31)
_EXIT_CODE_MAX = 2**31 - 1

ControllerT = typing.TypeVar("ControllerT", bound="FileMonitoringController")


class FileMonitoringController(BaseModel):
    """Tails a log file and watches for an exit status file."""

    # Absolute path of the control directory.
    control_dir: str | None = None
    # Deprecated: pre-migration controllers stored only this id.
    legacy_id: str | None = Field(default=None, alias="id")
    # Log offset reported so far by `write_log` (not used by `watch`).
    last_location: int = 0

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def create(cls: type[ControllerT], workspace: Path, **fields: typing.Any) -> ControllerT:
        """Create a controller together with a fresh control directory."""

        control_dir = create_control_dir(workspace)
        return cls(control_dir=str(control_dir), **fields)

    def dumps(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def loads(cls: type[ControllerT], data: str | bytes, *, workspace: Path | None = None) -> ControllerT:
        controller = cls.model_validate_json(data)
        if workspace is not None:
            controller.resolve(workspace)
        return controller

    def resolve(self, workspace: Path) -> Path:
        """Return the control directory, migrating a legacy layout on first use.

        Idempotent: once `control_dir` is set, legacy names are never probed again.
        """

        if self.control_dir is not None:
            # Absolute in practice; relative values resolve against the workspace.
            return workspace / self.control_dir
        if not self.legacy_id:
            raise DurableTaskError("controller has neither a control directory nor a legacy id")
        control_dir = legacy_control_dir(workspace, self.legacy_id)
        self.control_dir = str(control_dir)
        self.legacy_id = None
        logger.info("using migrated control directory %s for remainder of this task", self.control_dir)
        return control_dir

    def control_paths(self, workspace: Path) -> ControlDirPaths:
        return get_control_paths(self.resolve(workspace))

    def get_log_file(self, workspace: Path) -> Path:
        # stdout+stderr, or only stderr when output is being captured
        return self.control_paths(workspace).log_file

    def get_result_file(self, workspace: Path) -> Path:
        return self.control_paths(workspace).result_file

    def get_output_file(self, workspace: Path) -> Path:
        return self.control_paths(workspace).output_file

    def get_last_location_file(self, workspace: Path) -> Path:
        return self.control_paths(workspace).last_location_file

    def write_log(self, workspace: Path, sink: typing.BinaryIO) -> bool:
        """Copy log bytes written since the previous call into `sink`.

        Returns:
            True when new bytes were written, False when the log did not grow.
        """

        log_file = self.get_log_file(workspace)
        length = fs.file_length(log_file)
        if length <= self.last_location:
            return False

        to_read = length - self.last_location
        if to_read > SETTINGS.max_log_read_bytes:
            raise LargeReadNotImplemented("large reads not yet implemented")
        with log_file.open("rb") as fp:
            fp.seek(self.last_location)
            buf = fp.read(to_read)
        if len(buf) != to_read:
            raise DurableTaskError(f"short read from {log_file}: expected {to_read} bytes, got {len(buf)}")

        sink.write(buf)
        logger.debug("copied %d bytes from %s", to_read, log_file)
        self.last_location = length
        return True

    def exit_status(self, workspace: Path) -> int | None:
        """Exit code of the process, or None while it has not finished."""

        result_file = self.get_result_file(workspace)
        if fs.file_length(result_file) <= 0:
            return None
        try:
            line = fs.read_first_line(result_file)
        except FileNotFoundError:
            return None
        text = (line or "").strip()
        if not text:
            return None
        if not _EXIT_CODE_RE.fullmatch(text):
            raise CorruptedResultError(result_file, f"not an integer: {text!r}")
        code = int(text)
        if not _EXIT_CODE_MIN <= code <= _EXIT_CODE_MAX:
            raise CorruptedResultError(result_file, f"exit code out of range: {text!r}")
        return code

    def get_output(self, workspace: Path) -> bytes:
        # Only meaningful once the process exited with output capture on.
        return self.get_output_file(workspace).read_bytes()

    def stop(self, workspace: Path, launcher: LocalLauncher | None = None) -> None:
        """Ask every process carrying this workspace's cookie to terminate.

        Does not wait; poll `exit_status` to observe the effect.
        """

        launcher = launcher or LocalLauncher()
        launcher.kill({SETTINGS.cookie_variable: cookie_for(workspace)})

    def cleanup(self, workspace: Path) -> None:
        fs.delete_recursive(self.resolve(workspace))

    def get_diagnostics(self, workspace: Path) -> str:
        control_dir = self.resolve(workspace)
        node = str(SETTINGS.node_name or "").strip() or socket.gethostname()
        location = f"{control_dir} on {node}"
        code = self.exit_status(workspace)
        if code is not None:
            return f"completed process (code {code}) in {location}"
        return f"awaiting process completion in {location}"

    def watch(self, workspace: Path, handler: Handler) -> None:
        """Deliver output and the exit status to `handler` asynchronously."""

        self.resolve(workspace)
        service = watch_service()
        service.submit(Watcher(controller=self, workspace=workspace, handler=handler, service=service))
        logger.debug("started asynchronous watch in %s", self.control_dir)
