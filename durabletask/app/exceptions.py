from __future__ import annotations


class DurableTaskError(RuntimeError):
    pass


class CorruptedResultError(DurableTaskError):
    """The result file holds something other than a decimal exit code."""

    def __init__(self, path: object, detail: str):
        super().__init__(f"corrupted content in {path}: {detail}")
        self.path = path
        self.detail = detail


class LargeReadNotImplemented(DurableTaskError, NotImplementedError):
    pass


class StopFailedError(DurableTaskError):
    pass
