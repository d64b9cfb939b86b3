from __future__ import annotations

from pathlib import Path

import pytest

from tilekit.settings import get_settings


@pytest.fixture(autouse=True)
def event_log_path(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    log_path = tmp_path / "ops" / "events.jsonl"
    monkeypatch.setattr(get_settings().logging, "event_log_path", log_path)
    return log_path
