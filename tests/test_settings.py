from pathlib import Path

import pytest

from tilekit.settings import build_settings


def test_build_settings_reads_env_file(tmp_path: Path):
    env_file = tmp_path / ".env"
    env_file.write_text(
        "\n".join(
            [
                "TILEKIT_MAX_DIMENSION=2048",
                "TILEKIT_BRIDGE_TIMEOUT_MS=500",
                "TILEKIT_LISTENER_CLEANUP_MS=900",
                "TILEKIT_ENCODE_CONCURRENCY=2",
                "TILEKIT_EVENT_LOG_PATH=var/events.jsonl",
            ]
        ),
        encoding="utf-8",
    )

    settings = build_settings(str(env_file))

    assert settings.pipeline.max_dimension == 2048
    assert settings.pipeline.bridge_timeout_ms == 500
    assert settings.pipeline.listener_cleanup_ms == 900
    assert settings.pipeline.encode_concurrency == 2
    assert settings.pipeline.decode_timeout_ms == 30000
    assert settings.logging.event_log_path == Path("var/events.jsonl")


def test_build_settings_defaults_without_env_file(tmp_path: Path, monkeypatch):
    for key in ("TILEKIT_MAX_DIMENSION", "TILEKIT_BRIDGE_TIMEOUT_MS", "TILEKIT_LISTENER_CLEANUP_MS"):
        monkeypatch.delenv(key, raising=False)

    settings = build_settings(str(tmp_path / "missing.env"))

    assert settings.pipeline.max_dimension == 4096
    assert settings.pipeline.bridge_timeout_ms == 15000
    assert settings.pipeline.listener_cleanup_ms == 16000
    assert settings.telemetry.prometheus_port == 0


def test_cleanup_must_trail_timeout(tmp_path: Path):
    env_file = tmp_path / ".env"
    env_file.write_text("TILEKIT_BRIDGE_TIMEOUT_MS=1000\nTILEKIT_LISTENER_CLEANUP_MS=1000\n", encoding="utf-8")

    with pytest.raises(ValueError, match="must exceed"):
        build_settings(str(env_file))
