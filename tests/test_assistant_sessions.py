from __future__ import annotations

import json
import uuid
from pathlib import Path

from treehouse.terminal.assistant import AssistantSessions, project_dir_name


def test_project_dir_name_flattens_path() -> None:
    assert project_dir_name("/Users/me/.treehouse/helsinki") == "-Users-me-treehouse-helsinki"


def test_session_lookup_checks_top_level_and_project_dirs(tmp_path: Path) -> None:
    sessions = AssistantSessions(home=tmp_path)
    top, nested, deep = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    projects = tmp_path / "projects"
    (projects / "-proj" / "sub").mkdir(parents=True)
    (projects / f"{top}.jsonl").write_text("", encoding="utf-8")
    (projects / "-proj" / f"{nested}.jsonl").write_text("", encoding="utf-8")
    (projects / "-proj" / "sub" / f"{deep}.jsonl").write_text("", encoding="utf-8")

    assert sessions.session_exists(top)
    assert sessions.session_exists(str(nested).upper())
    assert not sessions.session_exists(deep)


def test_missing_projects_dir_means_new_session(tmp_path: Path) -> None:
    sessions = AssistantSessions(home=tmp_path / "nothing", binary="assistant")
    session_id = uuid.uuid4()

    assert sessions.target_command(session_id) == f"assistant --session-id {session_id}"


def test_session_summary_reads_index(tmp_path: Path) -> None:
    sessions = AssistantSessions(home=tmp_path)
    session_id = uuid.uuid4()
    index = sessions.sessions_index_path("/trees/tokyo")
    index.parent.mkdir(parents=True)
    index.write_text(
        json.dumps({"entries": [{"sessionId": str(session_id), "summary": "Fix login flow"}, {"sessionId": "x"}]}),
        encoding="utf-8",
    )

    assert index.parent.name == "-trees-tokyo"
    assert sessions.session_summary(session_id, "/trees/tokyo") == "Fix login flow"
    assert sessions.session_summary(uuid.uuid4(), "/trees/tokyo") is None


def test_session_summary_tolerates_corrupt_index(tmp_path: Path) -> None:
    sessions = AssistantSessions(home=tmp_path)
    index = sessions.sessions_index_path("/trees/tokyo")
    index.parent.mkdir(parents=True)
    index.write_text("{oops", encoding="utf-8")

    assert sessions.session_summary(uuid.uuid4(), "/trees/tokyo") is None
