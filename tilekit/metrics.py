"""Prometheus metrics for the slicing pipeline."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Iterator

from prometheus_client import Counter, Histogram, start_http_server

LOGGER = logging.getLogger(__name__)

PIPELINE_RUNS = Counter(
    "tilekit_pipeline_runs_total",
    "Images inserted by the pipeline, by outcome",
    labelnames=["outcome"],
)
BRIDGE_REQUESTS = Counter(
    "tilekit_bridge_requests_total",
    "Slice requests answered (or not) by the rendering context",
    labelnames=["result"],
)
TILES_SKIPPED = Counter(
    "tilekit_tiles_skipped_total",
    "Tiles dropped from a composite, by the stage that dropped them",
    labelnames=["stage"],
)
ROLLBACKS = Counter(
    "tilekit_rollbacks_total",
    "Composite assemblies rolled back after a grouping failure",
)
STAGE_LATENCY = Histogram(
    "tilekit_stage_seconds",
    "Time spent in each pipeline stage",
    labelnames=["stage"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0, 30.0],
)

_EXPORTER_STARTED = False


def record_run(outcome: str) -> None:
    PIPELINE_RUNS.labels(outcome=outcome).inc()


def record_bridge_result(result: str) -> None:
    BRIDGE_REQUESTS.labels(result=result).inc()


def record_skipped_tiles(stage: str, count: int = 1) -> None:
    if count > 0:
        TILES_SKIPPED.labels(stage=stage).inc(count)


def record_rollback() -> None:
    ROLLBACKS.inc()


@contextmanager
def track_stage(stage: str) -> Iterator[dict[str, int]]:
    """Time a block, feeding the histogram and yielding a dict with ``ms``."""

    timing = {"ms": 0}
    start = time.perf_counter()
    try:
        yield timing
    finally:
        elapsed = time.perf_counter() - start
        timing["ms"] = int(elapsed * 1000)
        STAGE_LATENCY.labels(stage=stage).observe(elapsed)


def start_exporter(port: int) -> bool:
    """Expose metrics on ``port``; returns False when disabled or unavailable."""

    global _EXPORTER_STARTED
    if _EXPORTER_STARTED:
        return True
    if port <= 0:
        return False
    try:
        start_http_server(port)
    except OSError as exc:  # pragma: no cover - system dependent
        LOGGER.warning("Prometheus exporter failed to bind on port %s: %s", port, exc)
        return False
    _EXPORTER_STARTED = True
    LOGGER.info("Prometheus exporter listening on port %s", port)
    return True
