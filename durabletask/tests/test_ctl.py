from __future__ import annotations

import io
import json
from pathlib import Path

import pytest

from durabletask.app import ctl
from durabletask.app.services.controller import FileMonitoringController
from durabletask.app.services.launcher import LocalLauncher
from durabletask.app.settings import SETTINGS


def _setup(workspace: Path, tmp_path: Path) -> tuple[FileMonitoringController, Path]:
    c = FileMonitoringController.create(workspace)
    handle = tmp_path / "controller.json"
    handle.write_text(c.dumps(), encoding="utf-8")
    return c, handle


def _out() -> io.TextIOWrapper:
    return io.TextIOWrapper(io.BytesIO(), encoding="utf-8", write_through=True)


def _bytes(out: io.TextIOWrapper) -> bytes:
    return out.buffer.getvalue()  # type: ignore[attr-defined]


def test_status_prints_diagnostics(monkeypatch, workspace: Path, tmp_path: Path) -> None:
    monkeypatch.setattr(SETTINGS, "node_name", "node-1")
    c, handle = _setup(workspace, tmp_path)
    out = _out()

    assert ctl.main(["status", str(handle), str(workspace)], out=out) == 0
    assert _bytes(out).decode("utf-8") == f"awaiting process completion in {c.control_dir} on node-1\n"


def test_tail_prints_only_new_output(workspace: Path, tmp_path: Path) -> None:
    c, handle = _setup(workspace, tmp_path)
    c.get_log_file(workspace).write_bytes(b"first\n")

    out = _out()
    assert ctl.main(["tail", str(handle), str(workspace)], out=out) == 0
    assert _bytes(out) == b"first\n"
    assert json.loads(handle.read_text(encoding="utf-8"))["last_location"] == 6

    with c.get_log_file(workspace).open("ab") as fp:
        fp.write(b"second\n")
    out = _out()
    assert ctl.main(["tail", str(handle), str(workspace)], out=out) == 0
    assert _bytes(out) == b"second\n"


def test_tail_follow_reports_failed_process_apart_from_cli_errors(
    monkeypatch, capsys, workspace: Path, tmp_path: Path
) -> None:
    monkeypatch.setattr(SETTINGS, "cli_poll_interval_ms", 10)
    c, handle = _setup(workspace, tmp_path)
    c.get_log_file(workspace).write_bytes(b"bye\n")
    c.get_result_file(workspace).write_text("2\n", encoding="utf-8")

    out = _out()
    assert ctl.main(["tail", str(handle), str(workspace), "--follow"], out=out) == ctl.EXIT_PROCESS_FAILED
    assert _bytes(out) == b"bye\n"
    assert "process exited with code 2" in capsys.readouterr().err


@pytest.mark.parametrize(("code", "expected"), [("0", ctl.EXIT_OK), ("256", ctl.EXIT_PROCESS_FAILED)])
def test_tail_follow_exit_status_does_not_wrap(monkeypatch, workspace: Path, tmp_path: Path, code: str, expected: int) -> None:
    monkeypatch.setattr(SETTINGS, "cli_poll_interval_ms", 10)
    c, handle = _setup(workspace, tmp_path)
    c.get_result_file(workspace).write_text(code, encoding="utf-8")

    assert ctl.main(["tail", str(handle), str(workspace), "--follow"], out=_out()) == expected


def test_tail_writes_to_text_stream_without_buffer(workspace: Path, tmp_path: Path) -> None:
    c, handle = _setup(workspace, tmp_path)
    c.get_log_file(workspace).write_bytes("caf\u00e9\n".encode("utf-8"))
    out = io.StringIO()

    assert ctl.main(["tail", str(handle), str(workspace)], out=out) == ctl.EXIT_OK
    assert out.getvalue() == "caf\u00e9\n"


def test_text_sink_keeps_split_characters_pending() -> None:
    out = io.StringIO()
    sink = ctl.byte_sink(out)
    data = "\u00e9".encode("utf-8")

    sink.write(data[:1])
    sink.flush()
    assert out.getvalue() == ""
    sink.write(data[1:])
    assert out.getvalue() == "\u00e9"


def test_corrupted_result_maps_to_exit_status_2(capsys, workspace: Path, tmp_path: Path) -> None:
    c, handle = _setup(workspace, tmp_path)
    c.get_result_file(workspace).write_text("abc", encoding="utf-8")

    assert ctl.main(["status", str(handle), str(workspace)], out=_out()) == ctl.EXIT_CLI_ERROR
    assert "corrupted content" in capsys.readouterr().err


def test_stop_uses_cookie_kill(monkeypatch, workspace: Path, tmp_path: Path) -> None:
    calls: list[dict[str, str]] = []
    monkeypatch.setattr(LocalLauncher, "kill", lambda self, model_env: calls.append(dict(model_env)) or 0)
    _c, handle = _setup(workspace, tmp_path)

    assert ctl.main(["stop", str(handle), str(workspace)], out=_out()) == 0
    assert list(calls[0]) == [SETTINGS.cookie_variable]


def test_cleanup_removes_control_dir(workspace: Path, tmp_path: Path) -> None:
    c, handle = _setup(workspace, tmp_path)

    assert ctl.main(["cleanup", str(handle), str(workspace)], out=_out()) == 0
    assert not Path(c.control_dir).exists()
    assert ctl.main(["cleanup", str(handle), str(workspace)], out=_out()) == 0
