import json

from tilekit.event_log import append_event_log, read_event_log
from tilekit.pipeline import PipelineResult, PipelineState
from tilekit.planner import plan_slices
from tilekit.scene import RectangleNode


def _result(*, reason=None, expected=0, placed=0, strategy=None):
    return PipelineResult(
        node=RectangleNode(id="0:1", name="poster"),
        reason=reason,
        state=PipelineState.DEGRADED if reason else PipelineState.DONE,
        strategy=strategy,
        tiles_expected=expected,
        tiles_placed=placed,
        timings={"plan": 0, "slice": 15001},
    )


def test_append_event_log_writes_degraded_result(monkeypatch, tmp_path):
    log_path = tmp_path / "events.jsonl"

    class DummyLogging:
        event_log_path = log_path

    class DummySettings:
        logging = DummyLogging()

    monkeypatch.setattr("tilekit.event_log.get_settings", lambda: DummySettings())

    written = append_event_log(
        image_name="poster",
        width=8200,
        height=8200,
        result=_result(reason="image too large (slicing timed out)", expected=9, strategy=plan_slices(8200, 8200)),
    )

    assert written
    record = json.loads(log_path.read_text().strip())
    assert record["image_name"] == "poster"
    assert record["state"] == "DEGRADED"
    assert record["reason"] == "image too large (slicing timed out)"
    assert record["strategy"]["total_tiles"] == 9
    assert record["timings_ms"]["slice"] == 15001


def test_append_event_log_records_partial_composites(event_log_path):
    written = append_event_log(image_name="poster", width=8200, height=8200, result=_result(expected=9, placed=8))

    assert written
    records = read_event_log()
    assert records[0]["tiles_placed"] == 8
    assert records[0]["reason"] is None


def test_append_event_log_skips_complete_results(event_log_path):
    written = append_event_log(image_name="poster", width=8200, height=8200, result=_result(expected=9, placed=9))

    assert not written
    assert not event_log_path.exists()


def test_read_event_log_skips_garbage_and_limits(event_log_path):
    event_log_path.parent.mkdir(parents=True)
    lines = [json.dumps({"image_name": f"img{index}"}) for index in range(5)]
    lines.insert(2, "{not json")
    lines.insert(3, "")
    event_log_path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    assert [record["image_name"] for record in read_event_log()] == [f"img{index}" for index in range(5)]
    assert [record["image_name"] for record in read_event_log(limit=2)] == ["img3", "img4"]
    assert read_event_log(limit=0) == []


def test_read_event_log_missing_file(tmp_path):
    assert read_event_log(tmp_path / "absent.jsonl") == []
