"""Assistant CLI session discovery and launch target construction."""

from __future__ import annotations

import json
import logging as py_logging
import uuid
from pathlib import Path

from treehouse.constants import DEFAULT_ASSISTANT_BINARY, DEFAULT_ASSISTANT_HOME

logger = py_logging.getLogger(__name__)

SESSIONS_INDEX_FILE = "sessions-index.json"


def project_dir_name(root_path: str | Path) -> str:
    """Map a workspace path to the assistant's per-project directory name.

    ``/Users/me/.treehouse/helsinki`` becomes ``-Users-me-treehouse-helsinki``.
    """
    return str(Path(root_path).expanduser().absolute()).replace("/", "-").replace(".", "")


def session_id_text(session_id: uuid.UUID | str) -> str:
    return str(session_id).lower()


class AssistantSessions:
    def __init__(
        self,
        home: str | Path = DEFAULT_ASSISTANT_HOME,
        binary: str = DEFAULT_ASSISTANT_BINARY,
    ) -> None:
        self.home = Path(home).expanduser()
        self.binary = binary

    @property
    def projects_dir(self) -> Path:
        return self.home / "projects"

    def session_exists(self, session_id: uuid.UUID | str) -> bool:
        """Search ``projects/*/<id>.jsonl`` and ``projects/<id>.jsonl``, never deeper."""
        projects = self.projects_dir
        if not projects.is_dir():
            return False
        file_name = f"{session_id_text(session_id)}.jsonl"
        if (projects / file_name).is_file():
            return True
        try:
            return any((child / file_name).is_file() for child in projects.iterdir() if child.is_dir())
        except OSError as exc:
            logger.debug("Assistant projects unreadable path=%s error=%s", projects, exc)
            return False

    def target_command(self, session_id: uuid.UUID | str) -> str:
        sid = session_id_text(session_id)
        if self.session_exists(sid):
            return f"{self.binary} --resume {sid}"
        return f"{self.binary} --session-id {sid}"

    def sessions_index_path(self, root_path: str | Path) -> Path:
        return self.projects_dir / project_dir_name(root_path) / SESSIONS_INDEX_FILE

    def session_summary(self, session_id: uuid.UUID | str, root_path: str | Path) -> str | None:
        path = self.sessions_index_path(root_path)
        if not path.is_file():
            return None
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as exc:
            logger.debug("Sessions index unreadable path=%s error=%s", path, exc)
            return None
        entries = document.get("entries") if isinstance(document, dict) else None
        if not isinstance(entries, list):
            return None
        wanted = session_id_text(session_id)
        for entry in entries:
            if isinstance(entry, dict) and entry.get("sessionId") == wanted:
                summary = entry.get("summary")
                return summary if isinstance(summary, str) and summary else None
        return None
