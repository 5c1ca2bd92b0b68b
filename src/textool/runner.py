"""Render execution helpers."""

from __future__ import annotations

import asyncio
import json
import re
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from textool.backend import NumpyBackend, ThreadedBackend
from textool.config import EngineSettings
from textool.graph import WorkingGraph
from textool.graph.scheduler import EventCallback
from textool.instrumentation import ArtifactSaver, MetricsLogger, StructuredLogger
from textool.registry import TypeRegistry, builtin_registry

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


def build_run_dir(name: str, runs_root: Path) -> Path:
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    run_dir = runs_root / f"{timestamp}_{_UNSAFE_CHARS.sub('_', name)}"
    run_dir.mkdir(parents=True, exist_ok=False)
    (run_dir / "outputs").mkdir(parents=True, exist_ok=True)
    return run_dir


def build_graph(
    settings: EngineSettings,
    *,
    registry: TypeRegistry | None = None,
    event_cb: EventCallback | None = None,
) -> WorkingGraph:
    backend: Any = NumpyBackend(size=settings.texture_size)
    if settings.threaded_backend:
        backend = ThreadedBackend(backend)
    return WorkingGraph(
        registry or builtin_registry(),
        backend,
        event_cb=event_cb,
        auto_flush=settings.auto_flush,
    )


def render_state(
    state_path: Path,
    settings: EngineSettings,
    registry: TypeRegistry | None = None,
) -> Path:
    """Load a state document, flush it once and write every output to a run folder."""
    payload = json.loads(state_path.read_text(encoding="utf-8"))

    run_dir = build_run_dir(state_path.stem, settings.runs_root)
    events = StructuredLogger(
        text_log_path=run_dir / "events.log",
        json_log_path=run_dir / "events.jsonl",
    )
    metrics = MetricsLogger(path=run_dir / "metrics.jsonl")
    saver = ArtifactSaver(run_dir / "outputs")

    graph = build_graph(settings, registry=registry, event_cb=events.graph_event)
    graph.load_state(payload)
    (run_dir / "state.json").write_text(
        json.dumps(graph.export_state(), indent=2), encoding="utf-8"
    )
    events.log(level="info", event="render_start", message=str(state_path), nodes=len(graph.nodes))

    started = time.perf_counter()
    reports = asyncio.run(graph.flush())
    elapsed = time.perf_counter() - started

    for step, report in enumerate(reports, start=1):
        metrics.log(
            step=step,
            metric_name="nodes_computed",
            value=len(report.computed),
            metadata=report.to_dict(),
        )
    metrics.log(step=len(reports), metric_name="flush_seconds", value=elapsed)

    images = saver.can_save_images()
    summary: dict[str, Any] = {}
    for node in graph.nodes:
        view = node.view()
        summary[node.id] = {"type": view.type_id, "state": view.state.value, "error": view.error}
        if node.output is None:
            continue
        stem = _UNSAFE_CHARS.sub("_", node.id)
        saver.save_numpy(f"{stem}.npy", node.output)
        if images:
            saver.save_image(f"{stem}.png", node.output)

    (run_dir / "summary.json").write_text(json.dumps(summary, indent=2), encoding="utf-8")
    events.log(level="info", event="render_done", message=f"{elapsed:.3f}s", passes=len(reports))
    return run_dir
