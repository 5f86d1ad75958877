"""
Command-line entry point for the chat filter engine.

Drives the same engine the host game uses, against the configured mod storage
database and list files:
- run: execute one `/filter` console command line
- check: evaluate a token with every host predicate
- shell: interactive console session
"""

import os
import sys
from pathlib import Path
from typing import Optional

import click
from loguru import logger
from rich.console import Console
from rich.table import Table

from chatfilter_API.app.core.config import clear_config_cache, load_filter_settings
from chatfilter_API.app.core.Filter.filter_engine import FilterEngine, create_filter_engine
from chatfilter_API.app.core.Logging.log_context import configure_logging

console = Console()


def print_result(success: bool, message: str) -> None:
    style = "green" if success else "red"
    if message:
        console.print(message, style=style, markup=False, highlight=False)
    elif success:
        console.print("OK", style=style)


class CLIContext:
    """Global CLI context for sharing configuration and the engine."""

    def __init__(self):
        self.quiet: bool = False
        self._engine: Optional[FilterEngine] = None

    def engine(self) -> FilterEngine:
        if self._engine is None:
            self._engine = create_filter_engine()
        return self._engine


@click.group(context_settings={'help_option_names': ['-h', '--help']})
@click.option(
    '--config',
    type=click.Path(exists=True, dir_okay=False, readable=True, path_type=Path),
    help='Path to config.txt (defaults to Config_Files/config.txt)'
)
@click.option(
    '--log-level',
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'], case_sensitive=False),
    default=None,
    help='Logging level (overrides config.txt)'
)
@click.option(
    '--quiet', '-q',
    is_flag=True,
    help='Suppress log output'
)
@click.version_option(version="0.3.0", prog_name="chatfilter")
@click.pass_context
def main(ctx, config, log_level, quiet):
    """
    chatfilter - manage and test the chat filter's pattern lists.

    Examples:
        chatfilter run admin add "bad\\s*word"     # Add a blacklist pattern
        chatfilter run admin dump                 # Show the blacklist
        chatfilter check "some chat message"      # Evaluate a token
        chatfilter shell admin                    # Interactive console
    """
    if config:
        os.environ["CHATFILTER_CONFIG_PATH"] = str(config)
        clear_config_cache()
    settings = load_filter_settings()
    configure_logging(
        level=(log_level or settings.log_level),
        audit_log_file=settings.audit_log_file,
        quiet=quiet,
    )

    cli_context = CLIContext()
    cli_context.quiet = quiet
    ctx.ensure_object(dict)
    ctx.obj['cli_context'] = cli_context


@main.command()
@click.argument('admin')
@click.argument('command', nargs=-1, required=True)
@click.pass_context
def run(ctx, admin, command):
    """Execute one console COMMAND line as ADMIN."""
    engine = ctx.obj['cli_context'].engine()
    success, message = engine.console(admin, " ".join(command))
    print_result(success, message)
    if not success:
        sys.exit(1)


@main.command()
@click.argument('token')
@click.pass_context
def check(ctx, token):
    """Evaluate TOKEN with every host predicate."""
    engine = ctx.obj['cli_context'].engine()
    table = Table(title="Filter verdict")
    table.add_column("Check", style="cyan")
    table.add_column("Result")
    table.add_column("Pattern", style="magenta")

    blacklisted = engine.is_blacklisted(token)
    whitelisted = engine.is_whitelisted(token)
    table.add_row("blacklist", str(blacklisted), engine.get_last_match("blacklist") if blacklisted else "")
    table.add_row("whitelist", str(whitelisted), engine.get_last_match("whitelist") if whitelisted else "")
    table.add_row(
        "too long",
        str(engine.is_message_too_long(token)),
        f"{len(token)} / {engine.get_max_len()}",
    )
    table.add_row("mode", "Enforcing" if engine.get_mode() else "Permissive", "")
    console.print(table)


@main.command()
@click.argument('admin')
@click.pass_context
def shell(ctx, admin):
    """Interactive console session as ADMIN; `quit` or EOF leaves."""
    cli_context = ctx.obj['cli_context']
    engine = cli_context.engine()
    if not cli_context.quiet:
        console.print(f"/{engine.command_definition()['name']} console - type 'help' for commands, 'quit' to leave")
    while True:
        try:
            line = click.prompt("filter", prompt_suffix="> ", default="", show_default=False)
        except (EOFError, click.Abort):
            break
        if line.strip() in ("quit", "exit"):
            break
        if not line.strip():
            continue
        success, message = engine.console(admin, line)
        print_result(success, message)
    logger.debug(f"Console session for {admin} closed")


if __name__ == '__main__':
    try:
        main()
    except KeyboardInterrupt:
        console.print("\nOperation cancelled.")
        sys.exit(130)  # Standard exit code for SIGINT
