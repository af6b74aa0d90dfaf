"""
Typer CLI application for botzy2api.

Commands:
    serve    - Start the OpenAI-compatible API server
    ask      - Send a single prompt upstream and print the response
    models   - List the advertised model identifiers
    config   - Show or edit ~/.botzy2api/config.json

Usage:
    botzy2api serve --port 3000 --verbose
    botzy2api ask "What is the capital of France?"
    botzy2api ask "Tell me a story" --stream
    botzy2api config set api_master_key sk-local
"""

import asyncio
import json
import sys
from contextlib import aclosing
from typing import Optional

import typer
from loguru import logger

from .client import BotzyClient
from .config import DEFAULT_CONFIG, build_config, load_config, save_config
from .upstream import UpstreamError

# Disable loguru output by default for clean CLI output.
# Re-enabled per-command with --verbose flag.
logger.remove()

app = typer.Typer(help="botzy2api: OpenAI-compatible proxy for the Botzy chat service.")
config_app = typer.Typer(help="Show or edit the config file.")
app.add_typer(config_app, name="config")


def _enable_logging(verbose: bool):
    if verbose:
        logger.add(sys.stderr, level="DEBUG")


def _load_or_exit():
    try:
        return build_config()
    except ValueError as e:
        print(e)
        raise typer.Exit(1)


@app.command()
def serve(
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to listen on (default: from config)"),
    host: str = typer.Option("0.0.0.0", "--host", help="Host to bind to"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
):
    """Start the OpenAI-compatible API server.

    Endpoints:
        POST /v1/chat/completions  - Chat completion (streaming + non-streaming)
        GET  /v1/models            - List available models
        GET  /health               - Health check
    """
    _enable_logging(verbose)

    from .server import create_app
    import uvicorn

    config = _load_or_exit()
    port = port or config.port
    print(f"\n  {config.project_name} API server starting on http://{host}:{port}")
    print(f"  OpenAI endpoint: http://{host}:{port}/v1/chat/completions")
    print(f"  Upstream:        {config.upstream_url}\n")
    uvicorn.run(create_app(config), host=host, port=port, log_level="info" if verbose else "warning")


@app.command()
def ask(
    prompt: str,
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model name (default: from config)"),
    stream: bool = typer.Option(False, "--stream", help="Print the answer as it arrives"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
):
    """Send a prompt to the upstream and print the response."""
    _enable_logging(verbose)
    config = _load_or_exit()

    async def _ask():
        async with BotzyClient(config) as client:
            if stream:
                async with aclosing(client.stream(prompt, model=model)) as deltas:
                    async for delta in deltas:
                        print(delta, end="", flush=True)
                print()
            else:
                print(await client.ask(prompt, model=model))

    try:
        asyncio.run(_ask())
    except UpstreamError as e:
        print(f"Upstream error {e.status_code}: {e.body}")
        raise typer.Exit(1)


@app.command()
def models():
    """List the model identifiers advertised by /v1/models."""
    config = _load_or_exit()
    for model_id in config.models:
        marker = " (default)" if model_id == config.default_model else ""
        print(f"{model_id}{marker}")


@config_app.command("show")
def config_show():
    """Print the effective configuration (file + environment)."""
    config = _load_or_exit()
    print(json.dumps(config.model_dump(), indent=2, ensure_ascii=False))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Config key, e.g. port or default_model"),
    value: str = typer.Argument(help="New value. Use a comma separated list for 'models'."),
):
    """Save a setting to ~/.botzy2api/config.json."""
    if key not in DEFAULT_CONFIG:
        print(f"Unknown key '{key}'. Valid keys: {', '.join(DEFAULT_CONFIG)}")
        raise typer.Exit(1)

    config = load_config()
    if key == "models":
        config[key] = [m.strip() for m in value.split(",") if m.strip()]
    else:
        config[key] = value

    try:
        validated = build_config(config, environ={})
    except ValueError as e:
        print(e)
        raise typer.Exit(1)

    config[key] = validated.model_dump()[key]
    if key == "models":
        config[key] = list(config[key])
    save_config(config)
    print(f"Saved: {key} = {config[key]}")


@config_app.command("unset")
def config_unset(key: str = typer.Argument(help="Config key to reset to its default")):
    """Reset a setting to its built-in default."""
    config = load_config()
    if key not in DEFAULT_CONFIG:
        print(f"Unknown key '{key}'.")
        raise typer.Exit(1)
    config[key] = DEFAULT_CONFIG[key]
    save_config(config)
    print(f"Reset: {key} = {DEFAULT_CONFIG[key]}")


if __name__ == "__main__":
    app()
