"""Helpers to append degraded-insertion events to the ops log."""

from __future__ import annotations

import json
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

from tilekit.settings import get_settings


def _strategy_summary(strategy: Any) -> dict[str, Any] | None:
    if strategy is None:
        return None
    if hasattr(strategy, "to_payload"):
        return strategy.to_payload()
    if is_dataclass(strategy):
        return asdict(strategy)
    if isinstance(strategy, Mapping):
        return dict(strategy)
    return {"description": str(strategy)}


def append_event_log(
    *,
    image_name: str,
    width: int,
    height: int,
    result: Any,
) -> bool:
    """Append a JSON line for a degraded or partial pipeline result.

    A result is logged when it fell back to a placeholder or when fewer tiles
    were placed than planned. Returns whether a record was written.
    """

    reason = getattr(result, "reason", None)
    expected = int(getattr(result, "tiles_expected", 0) or 0)
    placed = int(getattr(result, "tiles_placed", 0) or 0)
    partial = expected > 0 and placed < expected
    if not reason and not partial:
        return False

    state = getattr(result, "state", None)
    record: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "image_name": image_name,
        "width": width,
        "height": height,
        "state": getattr(state, "value", state),
        "reason": reason,
        "tiles_expected": expected,
        "tiles_placed": placed,
    }
    strategy = _strategy_summary(getattr(result, "strategy", None))
    if strategy:
        record["strategy"] = strategy
    timings = getattr(result, "timings", None)
    if timings:
        record["timings_ms"] = dict(timings)

    log_path = get_settings().logging.event_log_path
    log_path.parent.mkdir(parents=True, exist_ok=True)
    with log_path.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(record))
        handle.write("\n")
    return True


def read_event_log(path: Path | None = None, *, limit: int | None = None) -> list[dict[str, Any]]:
    """Return parsed records, newest last; unparsable lines are skipped."""

    log_path = path or get_settings().logging.event_log_path
    if not log_path.exists():
        return []
    records: list[dict[str, Any]] = []
    with log_path.open("r", encoding="utf-8") as handle:
        for line in handle:
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(entry, dict):
                records.append(entry)
    if limit is not None and limit >= 0:
        records = records[-limit:] if limit else []
    return records
