#
# Control directory helpers (filesystem layout).
#
from __future__ import annotations

"""Layout of the per-task control directory.

The directory is the only coordination medium between a launched process and
whoever observes it later, so names here are part of the on-disk contract:

- `jenkins-log.txt`: append-only output stream written by the process
- `jenkins-result.txt`: exit code, written once as the process' last action
- `output.txt`: captured stdout (only when output capture was requested)
- `last-location.txt`: byte offset already delivered by a watcher
"""

import hashlib
import uuid
from dataclasses import dataclass
from pathlib import Path

from ..settings import SETTINGS

CONTROL_DIR_PREFIX = "durable-"
LOG_FILE_NAME = "jenkins-log.txt"
RESULT_FILE_NAME = "jenkins-result.txt"
OUTPUT_FILE_NAME = "output.txt"
LAST_LOCATION_FILE_NAME = "last-location.txt"


@dataclass(frozen=True)
class ControlDirPaths:
    root: Path
    log_file: Path
    result_file: Path
    output_file: Path
    last_location_file: Path


def get_control_paths(control_dir: Path) -> ControlDirPaths:
    return ControlDirPaths(
        root=control_dir,
        log_file=control_dir / LOG_FILE_NAME,
        result_file=control_dir / RESULT_FILE_NAME,
        output_file=control_dir / OUTPUT_FILE_NAME,
        last_location_file=control_dir / LAST_LOCATION_FILE_NAME,
    )


def get_digest_of(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def cookie_for(workspace: Path) -> str:
    """Stop cookie for processes launched in `workspace`."""
    return CONTROL_DIR_PREFIX + get_digest_of(str(workspace.absolute()))


def workspace_tmp_dir(workspace: Path) -> Path:
    # Sibling of the workspace so that wiping the workspace keeps control files.
    return workspace.with_name(f"{workspace.name}{SETTINGS.workspace_tmp_separator}tmp")


def create_control_dir(workspace: Path) -> Path:
    """Create a fresh, uniquely named control directory for `workspace`.

    Returns:
        Absolute path of the created directory.
    """

    workspace.mkdir(parents=True, exist_ok=True)
    name = CONTROL_DIR_PREFIX + get_digest_of(str(uuid.uuid4()))[:8]
    control_dir = workspace_tmp_dir(workspace.absolute()) / name
    control_dir.mkdir(parents=True, exist_ok=True)
    return control_dir


def legacy_control_dir(workspace: Path, legacy_id: str) -> Path:
    # Oldest layout used `.<id>`; the next one `.jenkins-<id>`.
    candidate = workspace / f".{legacy_id}"
    if not candidate.is_dir():
        candidate = workspace / f".jenkins-{legacy_id}"
    return candidate.absolute()
