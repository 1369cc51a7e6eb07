"""Command-line entry point for pero."""

import asyncio
import sys
from pathlib import Path

import typer
from dotenv import load_dotenv
from pydantic import ValidationError

from pero.config import Config, set_config
from pero.exceptions import PeroError
from pero.llm import GATEWAYS, create_provider
from pero.logging import configure_logging, log
from pero.run_chat import ChatRunOptions, run_chat

cli = typer.Typer(help="pero - converse with an LLM in a plain text document", no_args_is_help=True)


def _setup(config_path: str, verbose: bool) -> Config:
    load_dotenv()
    config = Config.load(config_path or None)
    set_config(config)
    configure_logging("DEBUG" if verbose else None)
    return config


@cli.command()
def chat(
    file: str = typer.Option("", "-f", "--file", help="File to read from (default: stdin)"),
    model: str = typer.Option("", "-m", "--model", help="Model to use"),
    gateway: str = typer.Option("", "-g", "--gateway", help=f"Gateway: {', '.join(GATEWAYS)}"),
    tools: list[str] = typer.Option([], "-t", "--tools", help="Tools config file(s)"),
    omit_tools: bool = typer.Option(False, "--omit-tools", help="Skip auto-discovered tools.yaml"),
    preamble: list[str] = typer.Option([], "-p", "--preamble", help="Files prepended to the prompt"),
    output_only: bool = typer.Option(False, "-o", "--output-only", help="Print only the answer"),
    include_reasoning: bool = typer.Option(
        False, "-r", "--include-reasoning", help="Include @@.think reasoning blocks"
    ),
    include_tool: str = typer.Option("", "--include-tool", help="none, call or result"),
    tools_placement: str = typer.Option("", "--tools-placement", help="top or bottom"),
    reasoning_effort: str = typer.Option("", "--reasoning-effort", help="low, medium or high"),
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
) -> None:
    """Read a conversation document and print it with the next answer."""
    cfg = _setup(config, verbose)
    try:
        text = Path(file).read_text(encoding="utf-8") if file else sys.stdin.read()
    except OSError as e:
        log.error("Cannot read document", file=file, error=str(e))
        typer.echo(f"Error: Cannot read '{file}': {e.strerror or e}", err=True)
        raise typer.Exit(1)

    try:
        options = ChatRunOptions.from_config(
            cfg,
            model=model or None,
            gateway=gateway or None,
            tools=[*cfg.tools.paths, *tools] if tools else None,
            omit_tools=omit_tools or None,
            preamble=preamble or None,
            output_only=output_only or None,
            include_reasoning=include_reasoning or None,
            include_tool=include_tool or None,
            tools_placement=tools_placement or None,
            reasoning_effort=reasoning_effort or None,
        )
    except ValidationError as e:
        typer.echo(f"Invalid options: {e}", err=True)
        raise typer.Exit(2)

    try:
        output = asyncio.run(run_chat(text, options))
    except PeroError as e:
        log.error("Chat run failed", error=str(e))
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    sys.stdout.write(output)


@cli.command()
def models(
    gateway: str = typer.Option("", "-g", "--gateway", help="Gateway to query"),
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
) -> None:
    """List the models a gateway offers."""
    cfg = _setup(config, False)

    async def _list() -> list[str]:
        provider = create_provider(
            gateway=gateway or cfg.model.gateway,
            model=cfg.model.model,
            api_key=cfg.model.api_key or None,
            base_url=None if gateway else cfg.model.base_url or None,
        )
        try:
            return await provider.list_models()
        finally:
            await provider.close()

    try:
        names = asyncio.run(_list())
    except PeroError as e:
        typer.echo(f"Error fetching models: {e}", err=True)
        raise typer.Exit(1)
    for name in names:
        typer.echo(f"  {name}")


@cli.command()
def version() -> None:
    """Show version information."""
    from pero import __version__
    typer.echo(f"pero v{__version__}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
