#!/usr/bin/env python3
"""
RSS Converter - Release Title Normalizer
========================================

Main application entry point with CLI interface for serving and testing.

Usage:
    python main.py --help                          # Show all commands
    python main.py check-config                    # Validate configuration and rules
    python main.py convert-title "<title>"         # Try the rules on one title
    python main.py rewrite-file feed.xml -o out    # Convert a local feed file
    python main.py create-config                   # Write an example config.toml
    python main.py serve                           # Start the HTTP service
"""

import os
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from rssconverter.config.settings import (
    CONFIG_FILE_ENV,
    EXAMPLE_CONFIG_FILE,
    RSSConverterSettings,
    get_settings,
)
from rssconverter.conversion.rewriter import FeedRewriter
from rssconverter.server.app import run_server
from rssconverter.utils.exceptions import ConfigurationError, RSSConverterError
from rssconverter.utils.logging import configure_application_logging

console = Console()


def _setup_logging(settings: RSSConverterSettings, debug: bool) -> None:
    configure_application_logging(
        log_level="DEBUG" if debug else settings.get_effective_log_level(),
        log_file=settings.logging.file_path,
        enable_console=settings.logging.console_logging,
        structured_logging=settings.logging.structured_logging,
        max_file_size=settings.logging.max_file_size_mb * 1024 * 1024,
        backup_count=settings.logging.backup_count,
    )


def _load_settings_or_exit() -> RSSConverterSettings:
    try:
        return get_settings()
    except ConfigurationError as e:
        console.print(f"[bold red]❌ Configuration error: {e}[/bold red]")
        sys.exit(1)


@click.group(invoke_without_command=True)
@click.option('--config', '-c', type=click.Path(dir_okay=False), help='Configuration file path')
@click.option('--debug', is_flag=True, help='Enable debug mode')
@click.pass_context
def cli(ctx, config, debug):
    """RSS Converter - rewrites release titles of an RSS feed."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug
    if config:
        os.environ[CONFIG_FILE_ENV] = config

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.pass_context
def serve(ctx):
    """Start the HTTP service."""
    settings = _load_settings_or_exit()
    _setup_logging(settings, ctx.obj.get('debug'))

    console.print(f"[bold blue]🚀 Starting RSS converter for {settings.rss.source_url}[/bold blue]")
    try:
        converter = settings.build_converter()
    except ConfigurationError as e:
        console.print(f"[bold red]❌ Invalid conversion rules: {e}[/bold red]")
        sys.exit(1)

    run_server(settings, converter=converter)


@cli.command()
def check_config():
    """Validate configuration and show the compiled rules."""
    console.print("[bold blue]🔧 Checking RSS Converter Configuration[/bold blue]")
    settings = _load_settings_or_exit()

    table = Table(title="Configuration Status")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Application", settings.app_name)
    table.add_row("Listen address", f"{settings.server.host}:{settings.server.port}")
    table.add_row("Feed path", settings.server.feed_path)
    table.add_row("Source URL", settings.rss.source_url)
    table.add_row("Request timeout", f"{settings.rss.request_timeout}s")
    table.add_row("Log level", settings.get_effective_log_level())
    console.print(table)

    converter = settings.build_converter()
    rules_table = Table(title="Conversion Rules (evaluation order)")
    rules_table.add_column("Priority", style="cyan", justify="right")
    rules_table.add_column("Name", style="green")
    rules_table.add_column("Pattern")
    rules_table.add_column("Replacement")
    for rule in converter.rules:
        rules_table.add_row(
            str(rule.priority), escape(rule.name), escape(rule.regex.pattern), escape(repr(rule.replacement))
        )
    console.print(rules_table)

    console.print("[bold green]✅ All configuration checks passed![/bold green]")


@cli.command()
@click.argument('title')
def convert_title(title):
    """Show which rule applies to TITLE and the converted result."""
    settings = _load_settings_or_exit()
    converter = settings.build_converter()

    found = converter.find_rule(title)
    if found is None:
        console.print("[yellow]No rule matched; title is left unchanged[/yellow]")
    else:
        console.print(f"Matched rule: [cyan]{escape(found[0].name)}[/cyan]")
    console.print(f"Original:  {escape(repr(title))}")
    console.print(f"Converted: {escape(repr(converter.convert(title)))}")


@cli.command()
@click.argument('feed_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--output', '-o', type=click.Path(dir_okay=False, path_type=Path), help='Write to file instead of stdout')
@click.pass_context
def rewrite_file(ctx, feed_file, output):
    """Convert the titles of a local FEED_FILE."""
    settings = _load_settings_or_exit()
    _setup_logging(settings, ctx.obj.get('debug'))

    rewriter = FeedRewriter(
        settings.build_converter(),
        item_tag=settings.conversion.item_tag,
        title_tag=settings.conversion.title_tag,
    )
    try:
        result = rewriter.rewrite(feed_file.read_bytes())
    except RSSConverterError as e:
        console.print(f"[bold red]❌ {e}[/bold red]")
        sys.exit(1)

    if output:
        output.write_bytes(result)
        console.print(f"[bold green]✅ Wrote {output}[/bold green]")
    else:
        sys.stdout.buffer.write(result)


@cli.command()
def create_config():
    """Create example configuration file."""
    config_path = Path("config.toml")

    if config_path.exists():
        if not click.confirm(f"Config file {config_path} already exists. Overwrite?"):
            console.print("[yellow]Configuration creation cancelled[/yellow]")
            return

    config_path.write_text(EXAMPLE_CONFIG_FILE.read_text(encoding="utf-8"), encoding="utf-8")
    console.print(f"[bold green]✅ Example configuration written to {config_path}[/bold green]")


if __name__ == "__main__":
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]👋 RSS converter interrupted by user[/yellow]")
        sys.exit(130)
