"""CLI entrypoint for textool."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Optional

import typer

from textool.config import ConfigValidationError, load_engine_settings
from textool.graph import StateDocumentError, UnknownTypeError, validate_state_document
from textool.registry import TypeRegistry, builtin_registry
from textool.runner import render_state

app = typer.Typer(help="Texture graph engine command-line interface.")


STARTER_STATE = {
    "version": 1,
    "nodes": {
        "noise": {"type": "value-noise", "params": {"seed": 7, "scale": 6}},
        "gradient": {
            "type": "linear-gradient",
            "params": {"color_a": [0.1, 0.2, 0.6, 1.0], "color_b": [1.0, 0.8, 0.3, 1.0], "angle": 45},
        },
        "mix": {"type": "blend", "params": {"amount": 0.6, "mode": "multiply"}},
        "levels": {"type": "levels", "params": {"gamma": 1.4}},
    },
    "connections": {
        "c_noise_mix": {"fromNodeId": "noise", "fromSlot": "out", "toNodeId": "mix", "toSlot": "a"},
        "c_grad_mix": {"fromNodeId": "gradient", "fromSlot": "out", "toNodeId": "mix", "toSlot": "b"},
        "c_mix_levels": {"fromNodeId": "mix", "fromSlot": "out", "toNodeId": "levels", "toSlot": "source"},
    },
}


def _load_registry() -> TypeRegistry:
    return builtin_registry()


@app.command("types")
def list_types() -> None:
    """List available node types."""
    registry = _load_registry()
    for type_id in registry.list_types():
        typer.echo(type_id)


@app.command("describe")
def describe_type(type_id: str) -> None:
    """Describe a node type: its input slots, defaults and output."""
    registry = _load_registry()
    try:
        description = registry.describe(type_id)
    except UnknownTypeError as err:
        raise typer.BadParameter(str(err)) from err
    typer.echo(json.dumps(description, indent=2))


@app.command("validate")
def validate(
    state: Annotated[list[Path], typer.Option("--state", exists=True, dir_okay=False)],
) -> None:
    """Validate one or more state JSON files against the registered types."""
    registry = _load_registry()
    for state_file in state:
        payload = json.loads(state_file.read_text(encoding="utf-8"))
        try:
            validate_state_document(payload, registry=registry)
        except StateDocumentError as err:
            raise typer.BadParameter(f"{state_file}: {err}") from err
        typer.echo(f"valid state: {state_file}")


@app.command("init")
def init(output: Path = Path("states/starter_state.json")) -> None:
    """Write a starter state document."""
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(STARTER_STATE, indent=2), encoding="utf-8")
    typer.echo(f"starter state written: {output}")


@app.command("render")
def render(
    state: Annotated[Path, typer.Argument(exists=True, dir_okay=False)],
    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", exists=True, dir_okay=False),
    ] = None,
    size: Annotated[Optional[int], typer.Option("--size", min=1)] = None,
    runs_root: Annotated[Optional[Path], typer.Option("--runs-root", file_okay=False)] = None,
) -> None:
    """Load a state document, compute every node and save the outputs."""
    try:
        settings = load_engine_settings(config)
    except ConfigValidationError as err:
        raise typer.BadParameter(str(err)) from err
    overrides = {}
    if size is not None:
        overrides["texture_size"] = size
    if runs_root is not None:
        overrides["runs_root"] = runs_root
    if overrides:
        settings = settings.model_copy(update=overrides)

    try:
        run_dir = render_state(state, settings)
    except StateDocumentError as err:
        raise typer.BadParameter(f"{state}: {err}") from err
    typer.echo(f"Render completed: {run_dir}")


@app.command("serve")
def serve(host: str = "127.0.0.1", port: int = 8000) -> None:
    """Run the editor websocket server."""
    try:
        import uvicorn
    except ImportError as err:
        raise typer.BadParameter(
            "uvicorn is required for `textool serve`. Install with `pip install textool[server]`."
        ) from err
    try:
        from textool.server import app as server_app
    except ImportError as err:
        raise typer.BadParameter(
            "fastapi is required for `textool serve`. Install with `pip install textool[server]`."
        ) from err

    uvicorn.run(server_app, host=host, port=port)


if __name__ == "__main__":
    app()
