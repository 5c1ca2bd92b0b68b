import json
from pathlib import Path

import numpy as np

from textool.instrumentation import ArtifactSaver, MetricsLogger, StructuredLogger


def _read_jsonl(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_metrics_logger_writes_expected_schema(tmp_path: Path) -> None:
    metrics = MetricsLogger(tmp_path / "metrics.jsonl")

    metrics.log(step=1, metric_name="nodes_computed", value=3, metadata={"pass": 1})

    records = _read_jsonl(tmp_path / "metrics.jsonl")
    assert len(records) == 1
    assert records[0]["step"] == 1
    assert records[0]["metric_name"] == "nodes_computed"
    assert records[0]["value"] == 3
    assert records[0]["metadata"] == {"pass": 1}


def test_graph_events_are_logged_with_levels(tmp_path: Path) -> None:
    events = StructuredLogger(tmp_path / "events.log", tmp_path / "events.jsonl")

    events.graph_event({"type": "NODE_UPDATED", "node_id": "noise", "state": "CLEAN"})
    events.graph_event({"type": "NODE_FAILED", "node_id": "levels", "error": "bad gamma"})

    text_log = (tmp_path / "events.log").read_text(encoding="utf-8")
    assert "NODE_UPDATED noise" in text_log
    assert "[WARNING] NODE_FAILED bad gamma" in text_log

    records = _read_jsonl(tmp_path / "events.jsonl")
    assert [record["event"] for record in records] == ["NODE_UPDATED", "NODE_FAILED"]
    assert records[1]["payload"]["node_id"] == "levels"


def test_artifact_helpers_save_text_and_numpy(tmp_path: Path) -> None:
    saver = ArtifactSaver(tmp_path / "outputs")

    text_path = saver.save_text("note.txt", "rendered")
    array_path = saver.save_numpy("texture.npy", np.ones((2, 2, 4), dtype=np.float32))

    assert text_path.read_text(encoding="utf-8") == "rendered"
    assert np.array_equal(np.load(array_path), np.ones((2, 2, 4), dtype=np.float32))
