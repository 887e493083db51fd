from __future__ import annotations

"""Callbacks a caller supplies to `FileMonitoringController.watch`."""

import abc
import typing


class Handler(abc.ABC):
    """Receives output and the final exit status of a watched process.

    One handler instance serves one watch session. `output` may be called any
    number of times with consecutive, non-overlapping log ranges; `exited` is
    called exactly once, after the last `output` call, and the control
    directory is deleted right after it returns.
    """

    @abc.abstractmethod
    def output(self, stream: typing.BinaryIO) -> None:
        """Consume newly available log bytes.

        `stream` ends where the log ended when the step started. Only bytes
        actually read count as delivered; unread bytes are offered again on
        the next step.
        """

    @abc.abstractmethod
    def exited(self, code: int, output: bytes | None) -> None:
        """Process finished with `code`; `output` is captured stdout, if any."""
