from __future__ import annotations

"""Asynchronous completion watcher.

A `Watcher` performs one poll per `run()`:

1. read the exit status (first, so output written just before exit is not
   skipped by a step that already sees the result file)
2. hand log bytes past `last-location.txt` to the handler and persist the new
   offset; this happens on the final step too
3. on exit: deliver captured output, call `handler.exited`, delete the control
   directory and stop; otherwise schedule the next step

Any error abandons the watch after logging a warning. The handler is not
notified, so callers that need liveness guarantees must add their own timeout.
"""

import io
import logging
import typing
from pathlib import Path

from ..settings import SETTINGS
from ..utils import fs
from .handler import Handler
from .watch_service import WatchService, watch_service

if typing.TYPE_CHECKING:
    from .controller import FileMonitoringController

logger = logging.getLogger(__name__)


class CountingReader(io.RawIOBase):
    """Read at most `limit` bytes from `raw`, counting what was consumed."""

    def __init__(self, raw: typing.BinaryIO, *, limit: int):
        super().__init__()
        self._raw = raw
        self._remaining = max(0, int(limit))
        self.count = 0

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: typing.Any) -> int:
        if self._remaining <= 0:
            return 0
        view = memoryview(buffer).cast("B")[: self._remaining]
        n = self._raw.readinto(view) or 0
        self._remaining -= n
        self.count += n
        return n


class Watcher:
    def __init__(
        self,
        *,
        controller: FileMonitoringController,
        workspace: Path,
        handler: Handler,
        service: WatchService | None = None,
    ):
        self.controller = controller
        self.workspace = workspace
        self.handler = handler
        self._service = service

    def read_last_location(self) -> int:
        last_location_file = self.controller.get_last_location_file(self.workspace)
        if not last_location_file.exists():
            return 0
        return int(last_location_file.read_text(encoding="utf-8"))

    def deliver_output(self) -> None:
        last_location = self.read_last_location()
        log_file = self.controller.get_log_file(self.workspace)
        length = fs.file_length(log_file)
        if length <= last_location:
            return
        with log_file.open("rb") as fp:
            fp.seek(last_location)
            # Bounded to the current length: the process may still be appending.
            reader = CountingReader(fp, limit=length - last_location)
            self.handler.output(typing.cast(typing.BinaryIO, reader))
            fs.write_text(
                self.controller.get_last_location_file(self.workspace),
                str(last_location + reader.count),
            )

    def step(self) -> bool:
        """Run one poll; return True while the process is still running."""

        exit_status = self.controller.exit_status(self.workspace)
        self.deliver_output()
        if exit_status is None:
            return True

        output_file = self.controller.get_output_file(self.workspace)
        output = self.controller.get_output(self.workspace) if output_file.exists() else None
        self.handler.exited(exit_status, output)
        self.controller.cleanup(self.workspace)
        return False

    def run(self) -> None:
        try:
            if self.step():
                service = self._service or watch_service()
                service.schedule(self, SETTINGS.watch_interval_seconds())
        except Exception:
            logger.warning("giving up on watching %s", self.controller.control_dir, exc_info=True)

    def __call__(self) -> None:
        self.run()
