"""JSON persistence for the workspace list."""

from __future__ import annotations

import json
import logging as py_logging
from pathlib import Path

from treehouse.constants import WORKSPACES_FILE_NAME
from treehouse.workspace.models import Workspace

logger = py_logging.getLogger(__name__)


def workspaces_file(root_directory: str | Path) -> Path:
    return Path(root_directory).expanduser() / WORKSPACES_FILE_NAME


def load_workspaces(root_directory: str | Path) -> list[Workspace]:
    path = workspaces_file(root_directory)
    if not path.exists():
        return []
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError, UnicodeDecodeError) as exc:
        logger.warning("Workspace list unreadable path=%s error=%s", path, exc)
        return []
    if not isinstance(raw, list):
        return []

    workspaces: list[Workspace] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        try:
            workspaces.append(Workspace.from_dict(item))
        except (KeyError, ValueError, TypeError) as exc:
            logger.warning("Skipping malformed workspace entry error=%s", exc)
    logger.debug("Loaded %s workspaces path=%s", len(workspaces), path)
    return workspaces


def save_workspaces(workspaces: list[Workspace], root_directory: str | Path) -> Path | None:
    path = workspaces_file(root_directory)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps([item.to_dict() for item in workspaces], indent=2)
        path.write_text(payload + "\n", encoding="utf-8")
    except OSError as exc:
        logger.error("Failed to save workspace list path=%s error=%s", path, exc)
        return None
    return path
