from __future__ import annotations

import json
from pathlib import Path

import pytest

from edit_bridge.mode import Mode, mode_from_permission, resolve_mode


@pytest.mark.parametrize(
    ("value", "expected"),
    [("ask", Mode.GATED), ("allow", Mode.DIRECT), ("deny", Mode.DIRECT), (None, Mode.DIRECT), (True, Mode.DIRECT)],
)
def test_mode_from_permission(value, expected) -> None:  # type: ignore[no-untyped-def]
    assert mode_from_permission(value) is expected


def test_resolve_mode_gated_when_edit_permission_is_ask(tmp_path: Path) -> None:
    cfg = tmp_path / "opencode.json"
    cfg.write_text(json.dumps({"permission": {"edit": "ask"}}), encoding="utf-8")
    assert resolve_mode(cfg) is Mode.GATED


def test_resolve_mode_direct_on_missing_or_invalid_config(tmp_path: Path) -> None:
    assert resolve_mode(tmp_path / "missing.json") is Mode.DIRECT

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    assert resolve_mode(broken) is Mode.DIRECT

    wrong_shape = tmp_path / "shape.json"
    wrong_shape.write_text(json.dumps({"permission": "ask"}), encoding="utf-8")
    assert resolve_mode(wrong_shape) is Mode.DIRECT
