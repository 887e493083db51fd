from __future__ import annotations

"""Operator CLI for a serialized controller (`durable-ctl`).

The controller JSON file is the handle returned at launch time, dumped with
`FileMonitoringController.dumps()`. `tail` writes the advanced log offset
back into that file so the next `tail` only prints new output.

Exit status: 0 success, 1 the followed process exited non-zero (its exact
code goes to stderr), 2 the CLI itself failed.
"""

import argparse
import codecs
import sys
import time
import typing
from pathlib import Path

from .exceptions import DurableTaskError
from .services.controller import FileMonitoringController
from .settings import SETTINGS
from .utils import fs

EXIT_OK = 0
EXIT_PROCESS_FAILED = 1
EXIT_CLI_ERROR = 2


class TextSink:
    """Binary sink that decodes log bytes onto a text stream without a `.buffer`."""

    def __init__(self, out: typing.TextIO):
        self._out = out
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def write(self, data: bytes) -> int:
        self._out.write(self._decoder.decode(data))
        return len(data)

    def flush(self) -> None:
        # A multi-byte character split across log chunks stays in the decoder.
        self._out.flush()


def byte_sink(out: typing.TextIO) -> typing.Any:
    buffer = getattr(out, "buffer", None)
    if buffer is not None:
        return buffer
    return TextSink(out)


def load_controller(path: Path, *, workspace: Path) -> FileMonitoringController:
    return FileMonitoringController.loads(path.read_text(encoding="utf-8"), workspace=workspace)


def save_controller(path: Path, controller: FileMonitoringController) -> None:
    fs.write_text(path, controller.dumps() + "\n")


def cmd_status(controller: FileMonitoringController, args: argparse.Namespace, out: typing.TextIO) -> int:
    out.write(controller.get_diagnostics(args.workspace) + "\n")
    return EXIT_OK


def cmd_tail(controller: FileMonitoringController, args: argparse.Namespace, out: typing.TextIO) -> int:
    sink = byte_sink(out)
    poll_seconds = max(0, int(SETTINGS.cli_poll_interval_ms)) / 1000.0
    try:
        while True:
            # Status before log, so the last bytes are copied on the final pass.
            code = controller.exit_status(args.workspace)
            if controller.write_log(args.workspace, sink):
                sink.flush()
            if code is not None:
                sys.stderr.write(f"process exited with code {code}\n")
                return EXIT_OK if code == 0 else EXIT_PROCESS_FAILED
            if not args.follow:
                return EXIT_OK
            time.sleep(poll_seconds)
    finally:
        save_controller(args.controller, controller)


def cmd_stop(controller: FileMonitoringController, args: argparse.Namespace, out: typing.TextIO) -> int:
    controller.stop(args.workspace)
    return EXIT_OK


def cmd_cleanup(controller: FileMonitoringController, args: argparse.Namespace, out: typing.TextIO) -> int:
    controller.cleanup(args.workspace)
    return EXIT_OK


COMMANDS: dict[str, typing.Callable[[FileMonitoringController, argparse.Namespace, typing.TextIO], int]] = {
    "status": cmd_status,
    "tail": cmd_tail,
    "stop": cmd_stop,
    "cleanup": cmd_cleanup,
}


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="durable-ctl")
    sub = ap.add_subparsers(dest="command", required=True)
    for name in COMMANDS:
        p = sub.add_parser(name)
        p.add_argument("controller", type=Path, help="controller JSON file")
        p.add_argument("workspace", type=Path)
        if name == "tail":
            p.add_argument("--follow", action="store_true", help="poll until the process exits")
    return ap


def main(argv: list[str] | None = None, *, out: typing.TextIO | None = None) -> int:
    args = build_parser().parse_args(argv)
    out = out or sys.stdout
    try:
        controller = load_controller(args.controller, workspace=args.workspace)
        return COMMANDS[args.command](controller, args, out)
    except DurableTaskError as exc:
        sys.stderr.write(f"error: {exc}\n")
        return EXIT_CLI_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
