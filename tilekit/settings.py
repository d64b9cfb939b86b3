"""Configuration helpers bound to python-decouple."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from decouple import Config as DecoupleConfig, RepositoryEmpty, RepositoryEnv


@dataclass(slots=True)
class PipelineSettings:
    """Limits and timers for the slicing pipeline."""

    max_dimension: int
    bridge_timeout_ms: int
    listener_cleanup_ms: int
    decode_timeout_ms: int
    encode_concurrency: int
    png_compression: int


@dataclass(slots=True)
class TelemetrySettings:
    prometheus_port: int


@dataclass(slots=True)
class LoggingSettings:
    level: str
    event_log_path: Path


@dataclass(slots=True)
class Settings:
    env_path: str
    pipeline: PipelineSettings
    telemetry: TelemetrySettings
    logging: LoggingSettings


def load_config(env_path: str = ".env") -> DecoupleConfig:
    """Return a decouple config object anchored to the repository .env file.

    Falls back to process environment variables only when the file is absent.
    """

    if Path(env_path).exists():
        return DecoupleConfig(RepositoryEnv(env_path))
    return DecoupleConfig(RepositoryEmpty())


def build_settings(env_path: str = ".env") -> Settings:
    config = load_config(env_path)
    pipeline = PipelineSettings(
        max_dimension=config("TILEKIT_MAX_DIMENSION", default=4096, cast=int),
        bridge_timeout_ms=config("TILEKIT_BRIDGE_TIMEOUT_MS", default=15000, cast=int),
        listener_cleanup_ms=config("TILEKIT_LISTENER_CLEANUP_MS", default=16000, cast=int),
        decode_timeout_ms=config("TILEKIT_DECODE_TIMEOUT_MS", default=30000, cast=int),
        encode_concurrency=config("TILEKIT_ENCODE_CONCURRENCY", default=4, cast=int),
        png_compression=config("TILEKIT_PNG_COMPRESSION", default=6, cast=int),
    )
    if pipeline.listener_cleanup_ms <= pipeline.bridge_timeout_ms:
        msg = (
            "TILEKIT_LISTENER_CLEANUP_MS must exceed TILEKIT_BRIDGE_TIMEOUT_MS "
            f"({pipeline.listener_cleanup_ms} <= {pipeline.bridge_timeout_ms})"
        )
        raise ValueError(msg)
    telemetry = TelemetrySettings(
        prometheus_port=config("TILEKIT_PROMETHEUS_PORT", default=0, cast=int),
    )
    logging_settings = LoggingSettings(
        level=config("TILEKIT_LOG_LEVEL", default="INFO"),
        event_log_path=Path(config("TILEKIT_EVENT_LOG_PATH", default="ops/tilekit-events.jsonl")),
    )
    return Settings(
        env_path=env_path,
        pipeline=pipeline,
        telemetry=telemetry,
        logging=logging_settings,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings singleton."""

    return build_settings()


def configure_logging(level: str | None = None) -> None:
    """Install a basic stderr handler for CLI runs."""

    resolved = (level or get_settings().logging.level).upper()
    logging.basicConfig(
        level=getattr(logging, resolved, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


settings = get_settings()
