from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from edit_bridge.core.contracts import EditFact
from edit_bridge.emitter.handler import EditEventHandler, FactSender
from edit_bridge.mode import Mode
from edit_bridge.state.side_log import SideLog
from edit_bridge.transport.sender import SendOutcome


class _RecordingSender:
    def __init__(self) -> None:
        self.facts: List[EditFact] = []

    async def send(self, fact: EditFact) -> SendOutcome:
        self.facts.append(fact)
        return SendOutcome(ok=True, attempts=1)


def _write_completed(path: str, content: str) -> Dict[str, Any]:
    return {
        "type": "message.part.updated",
        "properties": {
            "part": {
                "id": "prt_1",
                "type": "tool",
                "tool": "write",
                "sessionID": "ses_1",
                "state": {"status": "completed", "input": {"filePath": path, "content": content}},
            }
        },
    }


def _edit_running(path: str, old: str, new: str, *, replace_all: bool = False) -> Dict[str, Any]:
    return {
        "type": "message.part.updated",
        "properties": {
            "part": {
                "type": "tool",
                "tool": "edit",
                "state": {
                    "status": "running",
                    "input": {"filePath": path, "oldString": old, "newString": new, "replaceAll": replace_all},
                },
            }
        },
    }


def _asked(request_id: str, diff: str) -> Dict[str, Any]:
    return {
        "type": "permission.asked",
        "properties": {"id": request_id, "sessionID": "ses_1", "metadata": {"diff": diff}},
    }


def _replied(request_id: str, reply: str) -> Dict[str, Any]:
    return {"type": "permission.replied", "properties": {"requestID": request_id, "reply": reply, "sessionID": "ses_1"}}


def _diff_for(path: Path, body: str) -> str:
    return f"Index: {path}\n===\n--- {path}\n+++ {path}\n{body}"


def _run(handler: EditEventHandler, *events: Dict[str, Any]) -> None:
    async def _main() -> None:
        for ev in events:
            await handler.handle(ev)

    asyncio.run(_main())


def _side_log_entries(log: SideLog) -> List[Any]:
    if not log.path.exists():
        return []
    return [json.loads(line.split(" ", 1)[1]) for line in log.path.read_text(encoding="utf-8").splitlines()]


def _handler(mode: Mode, tmp_path: Path, sender: Optional[_RecordingSender] = None) -> EditEventHandler:
    return EditEventHandler(
        mode=mode,
        sender=sender or _RecordingSender(),
        side_log=SideLog(tmp_path / "logs" / "plugin.log"),
    )


def test_recording_sender_satisfies_protocol() -> None:
    assert isinstance(_RecordingSender(), FactSender)


def test_direct_write_completed_sends_one_fact(tmp_path: Path) -> None:
    sender = _RecordingSender()
    handler = _handler(Mode.DIRECT, tmp_path, sender)
    _run(handler, _write_completed("/tmp/x.ts", "hello\n"))

    assert sender.facts == [EditFact(file_path="/tmp/x.ts", content_new="hello\n")]


def test_gated_mode_ignores_part_updates(tmp_path: Path) -> None:
    sender = _RecordingSender()
    handler = _handler(Mode.GATED, tmp_path, sender)
    _run(handler, _write_completed("/tmp/x.ts", "hello\n"))
    assert sender.facts == []


def test_direct_mode_ignores_permission_events(tmp_path: Path) -> None:
    target = tmp_path / "a.txt"
    target.write_text("a\n", encoding="utf-8")
    sender = _RecordingSender()
    handler = _handler(Mode.DIRECT, tmp_path, sender)
    _run(handler, _asked("per_1", _diff_for(target, "@@ -1 +1 @@\n-a\n+b\n")), _replied("per_1", "once"))
    assert sender.facts == []
    assert len(handler.store) == 0


def test_direct_ignores_non_terminal_write_and_other_tools(tmp_path: Path) -> None:
    sender = _RecordingSender()
    handler = _handler(Mode.DIRECT, tmp_path, sender)
    running_write = _write_completed("/tmp/x.ts", "x")
    running_write["properties"]["part"]["state"]["status"] = "running"
    bash = _write_completed("/tmp/x.ts", "x")
    bash["properties"]["part"]["tool"] = "bash"
    text_part = {"type": "message.part.updated", "properties": {"part": {"type": "text"}}}
    _run(handler, running_write, bash, text_part, {"type": "session.idle"}, {"nope": 1})
    assert sender.facts == []


def test_direct_edit_running_sends_reconstructed_content(tmp_path: Path) -> None:
    target = tmp_path / "src.py"
    target.write_text("x = 1\ny = 1\n", encoding="utf-8")
    sender = _RecordingSender()
    handler = _handler(Mode.DIRECT, tmp_path, sender)

    _run(
        handler,
        _edit_running(str(target), "= 1", "= 2"),
        _edit_running(str(target), "= 1", "= 3", replace_all=True),
    )

    assert [f.content_new for f in sender.facts] == ["x = 2\ny = 1\n", "x = 3\ny = 3\n"]


def test_direct_edit_with_empty_old_string_uses_new_string(tmp_path: Path) -> None:
    sender = _RecordingSender()
    handler = _handler(Mode.DIRECT, tmp_path, sender)
    _run(handler, _edit_running(str(tmp_path / "new.py"), "", "print('hi')\n"))
    assert [f.content_new for f in sender.facts] == ["print('hi')\n"]


def test_direct_edit_not_applicable_is_logged(tmp_path: Path) -> None:
    target = tmp_path / "src.py"
    target.write_text("x = 1\n", encoding="utf-8")
    sender = _RecordingSender()
    handler = _handler(Mode.DIRECT, tmp_path, sender)
    _run(handler, _edit_running(str(target), "missing", "y"))

    assert sender.facts == []
    assert _side_log_entries(handler._side_log) == [{"editNotApplicable": {"file": str(target)}}]  # type: ignore[arg-type]


def test_gated_asked_then_once_sends_patched_content(tmp_path: Path) -> None:
    target = tmp_path / "foo.ts"
    target.write_text("a\nb\nc\n", encoding="utf-8")
    sender = _RecordingSender()
    handler = _handler(Mode.GATED, tmp_path, sender)

    _run(handler, _asked("per_1", _diff_for(target, "@@ -1,3 +1,3 @@\n a\n-b\n+B\n c\n")))
    assert sender.facts == []
    assert handler.store.peek("per_1") is not None

    _run(handler, _replied("per_1", "once"))
    assert sender.facts == [EditFact(file_path=str(target), content_new="a\nB\nc\n")]
    assert "per_1" not in handler.store

    _run(handler, _replied("per_1", "once"))
    assert len(sender.facts) == 1

    entries = _side_log_entries(handler._side_log)  # type: ignore[arg-type]
    assert entries == [{"requestId": "per_1", "file": str(target), "contentNew": "a\nB\nc\n"}]


def test_gated_non_once_reply_keeps_pending_edit(tmp_path: Path) -> None:
    target = tmp_path / "foo.ts"
    target.write_text("a\n", encoding="utf-8")
    sender = _RecordingSender()
    handler = _handler(Mode.GATED, tmp_path, sender)

    _run(
        handler,
        _asked("per_1", _diff_for(target, "@@ -1 +1 @@\n-a\n+z\n")),
        _replied("per_1", "reject"),
        _replied("per_1", "always"),
    )
    assert sender.facts == []
    assert "per_1" in handler.store

    _run(handler, _replied("per_1", "once"))
    assert [f.content_new for f in sender.facts] == ["z\n"]


def test_gated_reasked_request_overwrites_pending_edit(tmp_path: Path) -> None:
    target = tmp_path / "foo.ts"
    target.write_text("a\n", encoding="utf-8")
    sender = _RecordingSender()
    handler = _handler(Mode.GATED, tmp_path, sender)

    _run(
        handler,
        _asked("per_1", _diff_for(target, "@@ -1 +1 @@\n-a\n+first\n")),
        _asked("per_1", _diff_for(target, "@@ -1 +1 @@\n-a\n+second\n")),
        _replied("per_1", "once"),
    )
    assert [f.content_new for f in sender.facts] == ["second\n"]


def test_gated_patch_failure_creates_no_pending_edit(tmp_path: Path) -> None:
    target = tmp_path / "foo.ts"
    target.write_text("totally different\n", encoding="utf-8")
    sender = _RecordingSender()
    handler = _handler(Mode.GATED, tmp_path, sender)

    _run(
        handler,
        _asked("per_1", _diff_for(target, "@@ -1,3 +1,3 @@\n a\n-b\n+B\n c\n")),
        _replied("per_1", "once"),
    )
    assert len(handler.store) == 0
    assert sender.facts == []


def test_gated_unresolved_diff_path_is_ignored(tmp_path: Path) -> None:
    sender = _RecordingSender()
    handler = _handler(Mode.GATED, tmp_path, sender)
    _run(handler, _asked("per_1", "@@ -1 +1 @@\n-a\n+b\n"), _asked("per_2", ""))
    assert len(handler.store) == 0


def test_gated_missing_base_is_logged_and_file_created_on_once(tmp_path: Path) -> None:
    target = tmp_path / "sub" / "new.ts"
    sender = _RecordingSender()
    handler = _handler(Mode.GATED, tmp_path, sender)

    _run(handler, _asked("per_1", f"--- /dev/null\n+++ {target}\n@@ -0,0 +1,2 @@\n+one\n+two\n"))
    assert handler.store.peek("per_1") is not None
    assert not target.exists()

    _run(handler, _replied("per_1", "once"))
    assert target.exists()
    assert sender.facts == [EditFact(file_path=str(target), content_new="one\ntwo\n")]

    entries = _side_log_entries(handler._side_log)  # type: ignore[arg-type]
    assert entries[0] == {"missingFile": str(target)}
    assert entries[1]["requestId"] == "per_1"


class _ExplodingSender:
    async def send(self, fact: EditFact) -> SendOutcome:
        raise RuntimeError("sender bug")


def test_direct_edit_with_nul_in_path_does_not_raise(tmp_path: Path) -> None:
    sender = _RecordingSender()
    handler = _handler(Mode.DIRECT, tmp_path, sender)
    _run(handler, _edit_running("/tmp/a\x00b", "old", "new"), _write_completed("/tmp/ok.ts", "ok"))

    assert [f.file_path for f in sender.facts] == ["/tmp/ok.ts"]


def test_gated_diff_with_nul_in_path_does_not_raise(tmp_path: Path) -> None:
    sender = _RecordingSender()
    handler = _handler(Mode.GATED, tmp_path, sender)
    modify = "--- /tmp/a\x00b\n+++ /tmp/a\x00b\n@@ -1 +1 @@\n-a\n+b\n"
    create = "--- /dev/null\n+++ /tmp/c\x00d\n@@ -0,0 +1 @@\n+new\n"

    _run(handler, _asked("per_1", modify), _asked("per_2", create), _replied("per_2", "once"))

    assert "per_1" not in handler.store
    assert sender.facts == [EditFact(file_path="/tmp/c\x00d", content_new="new\n")]


def test_unexpected_sender_failure_is_contained(tmp_path: Path) -> None:
    handler = EditEventHandler(mode=Mode.DIRECT, sender=_ExplodingSender())
    _run(handler, _write_completed("/tmp/x.ts", "x"))


def test_gated_base_with_invalid_utf8_is_read_leniently(tmp_path: Path) -> None:
    target = tmp_path / "latin1.txt"
    target.write_bytes(b"a\nb\n\xff\n")
    sender = _RecordingSender()
    handler = _handler(Mode.GATED, tmp_path, sender)

    _run(handler, _asked("per_1", _diff_for(target, "@@ -1,2 +1,2 @@\n-a\n+A\n b\n")), _replied("per_1", "once"))

    assert [f.content_new for f in sender.facts] == ["A\nb\n\ufffd\n"]
    entries = _side_log_entries(handler._side_log)  # type: ignore[arg-type]
    assert all("missingFile" not in e for e in entries)
