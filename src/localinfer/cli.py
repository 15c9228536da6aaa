"""Typer CLI for inspecting installed models and running the chat proxy."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

from .chat_proxy.config import ProxyConfig
from .chat_proxy.config_loader import write_config
from .model_registry.registry import get_model, load_models

app = typer.Typer(help="Local model registry & inference proxy utilities")


def _registry_args(data_dir: Optional[Path]):
    cfg = ProxyConfig.load()
    return cfg.registry_configuration(), (data_dir or cfg.data_dir)


@app.command("list")
def cmd_list(
    data_dir: Optional[Path] = typer.Option(
        None, "--data-dir", help="Data root containing the models directory"
    ),
):  # noqa: D401 - CLI
    """List installed model descriptors as JSON."""
    configuration, root = _registry_args(data_dir)
    rows = [m.to_dict() for m in load_models(configuration, root)]
    typer.echo(json.dumps(rows, indent=2))


@app.command("show")
def cmd_show(
    model_id: str,
    data_dir: Optional[Path] = typer.Option(None, "--data-dir"),
):
    """Print one descriptor; exits 1 when the model is not installed."""
    configuration, root = _registry_args(data_dir)
    descriptor = get_model(configuration, model_id, root)
    if descriptor is None:
        typer.echo(f"The model {model_id} does not exist", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(descriptor.to_dict(), indent=2))


@app.command("serve")
def cmd_serve(
    host: Optional[str] = typer.Option(None, "--host"),
    port: Optional[int] = typer.Option(None, "--port"),
):
    """Run the chat proxy with uvicorn."""
    from .chat_proxy.app import main

    main(host=host, port=port)


@app.command("config-init")
def cmd_config_init(
    path: Optional[Path] = typer.Option(
        None, "--path", help="Target file (defaults to LOCALINFER_PROXY_CONFIG_FILE)"
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
):
    """Write a config file populated with the current effective settings."""
    cfg = ProxyConfig.load()
    target = Path(path or cfg.config_file_path).expanduser()
    if target.exists() and not force:
        typer.echo(f"{target} already exists (use --force to overwrite)", err=True)
        raise typer.Exit(code=1)
    written = write_config(cfg, target)
    typer.echo(str(written))


def main():  # pragma: no cover
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
