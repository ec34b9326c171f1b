#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Command-line interface for remarkable2notion.

Provides commands for syncing reMarkable notebooks into Notion, testing the
individual components, authorizing Google Drive and managing configuration.
"""

import logging
import sys
from typing import Optional

import click
from dotenv import find_dotenv, load_dotenv

from .. import __version__
from ..core.errors import ConfigError, ExportToolError, Remarkable2NotionError
from ..core.remarkable_export import RemarkableExporter
from ..core.sync_engine import SyncEngine
from ..integrations.google_oauth import GoogleOAuthClient
from ..integrations.notion_sync import NotionDatabase
from ..processors.vision_ocr import VisionOCREngine
from ..utils.config import Config
from ..utils.secrets import KNOWN_SECRETS
from . import diagnostics

SECRET_FIELDS = {'token', 'password', 'vision_api_key', 'oauth_client_secret'}

PREREQUISITES_CHECKLIST = [
    "RemarkableSync is installed (brew install remarkablesync)",
    "Google Cloud Vision API key is set (GOOGLE_VISION_API_KEY)",
    "Notion token and database ID are correct",
    "reMarkable tablet is connected via USB",
]


# Configure logging
def setup_logging(config: Config):
    """Setup logging based on configuration."""
    level = getattr(logging, str(config.get('logging.level', 'INFO')).upper(), logging.INFO)
    format_str = config.get('logging.format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    log_file = config.get('logging.file')

    handlers = []

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(format_str))
    handlers.append(console_handler)

    # File handler if specified
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(format_str))
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    # Request-level chatter from the HTTP stack only at debug
    if level > logging.DEBUG:
        logging.getLogger('httpx').setLevel(logging.WARNING)


@click.group()
@click.option('--config', '-c', help='Path to configuration file')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.version_option(__version__, prog_name='remarkable2notion')
@click.pass_context
def cli(ctx, config: Optional[str], verbose: bool):
    """remarkable2notion - Sync reMarkable notebooks into a Notion database."""

    # .env values never override variables already set in the environment
    load_dotenv(find_dotenv(usecwd=True))

    ctx.ensure_object(dict)
    try:
        ctx.obj['config'] = Config(config)
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)

    # Override log level if verbose
    if verbose:
        ctx.obj['config'].set('logging.level', 'DEBUG')

    setup_logging(ctx.obj['config'])


@cli.command()
@click.option('--notion-token', help='Notion integration token (overrides NOTION_TOKEN)')
@click.option('--notion-database-id', help='Notion database ID (overrides NOTION_DATABASE_ID)')
@click.option('--dry-run', is_flag=True, help='List what would be synced without making changes')
@click.pass_context
def sync(ctx, notion_token: Optional[str], notion_database_id: Optional[str], dry_run: bool):
    """Export notebooks from the tablet and sync them into Notion."""

    config_obj = ctx.obj['config']
    if notion_token:
        config_obj.set('notion.token', notion_token)
    if notion_database_id:
        config_obj.set('notion.database_id', notion_database_id)
    if dry_run:
        config_obj.set('processing.dry_run', True)

    click.echo(f"remarkable2notion v{__version__}", err=True)

    try:
        engine = SyncEngine.from_config(config_obj)
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    except Remarkable2NotionError as e:
        click.echo(f"Failed to initialize sync engine: {e}", err=True)
        sys.exit(1)

    try:
        engine.verify_prerequisites()
    except Remarkable2NotionError as e:
        click.echo(f"Prerequisites check failed: {e}", err=True)
        click.echo("\nPlease ensure:", err=True)
        for number, item in enumerate(PREREQUISITES_CHECKLIST, 1):
            click.echo(f"  {number}. {item}", err=True)
        sys.exit(1)

    try:
        summary = engine.sync()
    except ExportToolError as e:
        click.echo(f"Sync failed: {e}", err=True)
        sys.exit(1)

    if summary.failed:
        click.echo(f"⚠️ {summary.failed} notebook(s) failed, see the log for details", err=True)


@cli.command('test')
@click.option('--remarkable', is_flag=True, help='Test RemarkableSync and list notebooks')
@click.option('--ocr', 'ocr_pdf', type=click.Path(exists=True, dir_okay=False),
              help='Test OCR on the given PDF')
@click.option('--notion', is_flag=True, help='Test the Notion connection')
@click.option('--backup-dir', help='RemarkableSync backup directory (overrides config)')
@click.option('--notion-token', help='Notion integration token (overrides NOTION_TOKEN)')
@click.option('--notion-database-id', help='Notion database ID (overrides NOTION_DATABASE_ID)')
@click.pass_context
def test_components(ctx, remarkable: bool, ocr_pdf: Optional[str], notion: bool,
                    backup_dir: Optional[str], notion_token: Optional[str],
                    notion_database_id: Optional[str]):
    """Test individual components (RemarkableSync, OCR, Notion)."""

    config_obj = ctx.obj['config']
    if backup_dir:
        config_obj.set('remarkable.backup_directory', backup_dir)
    if notion_token:
        config_obj.set('notion.token', notion_token)
    if notion_database_id:
        config_obj.set('notion.database_id', notion_database_id)

    if not (remarkable or ocr_pdf or notion):
        click.echo("Please specify at least one test: --remarkable, --ocr, or --notion", err=True)
        click.echo("Run with --help for more information", err=True)
        sys.exit(1)

    if remarkable:
        try:
            exporter = RemarkableExporter(
                config_obj.backup_directory,
                password=config_obj.get_secret('remarkable.password'),
                executable=config_obj.get('remarkable.executable', 'RemarkableSync'),
            )
            diagnostics.check_remarkable(exporter)
        except Remarkable2NotionError as e:
            click.echo(f"RemarkableSync test failed: {e}", err=True)
            sys.exit(1)

    if ocr_pdf:
        try:
            api_key = config_obj.require('google.vision_api_key', "Set GOOGLE_VISION_API_KEY.")
            engine = VisionOCREngine(api_key, image_dir=config_obj.temp_directory,
                                     dpi=config_obj.get('processing.dpi', 150))
            diagnostics.check_ocr(engine, ocr_pdf)
        except Remarkable2NotionError as e:
            click.echo(f"OCR test failed: {e}", err=True)
            sys.exit(1)

    if notion:
        try:
            token = config_obj.require('notion.token', "NOTION_TOKEN required for Notion test.")
            database_id = config_obj.require('notion.database_id', "NOTION_DATABASE_ID required for Notion test.")
            diagnostics.check_notion(NotionDatabase(token, database_id))
        except Remarkable2NotionError as e:
            click.echo(f"Notion test failed: {e}", err=True)
            sys.exit(1)


@cli.group()
def auth():
    """Authorization commands."""
    pass


@auth.command('google')
@click.option('--port', default=8085, show_default=True, help='Local port for the OAuth redirect')
@click.pass_context
def auth_google(ctx, port: int):
    """Authorize Google Drive uploads and store the token."""

    config_obj = ctx.obj['config']
    try:
        client_id = config_obj.require('google.oauth_client_id', "Set GOOGLE_OAUTH_CLIENT_ID.")
        client_secret = config_obj.require('google.oauth_client_secret', "Set GOOGLE_OAUTH_CLIENT_SECRET.")
        oauth_client = GoogleOAuthClient(client_id, client_secret,
                                         token_file=config_obj.get('google.token_file'),
                                         callback_port=port)
        oauth_client.authorize()
    except Remarkable2NotionError as e:
        click.echo(f"Google authorization failed: {e}", err=True)
        sys.exit(1)

    click.echo(f"✅ Token stored in {oauth_client.token_file}")


@cli.group()
@click.pass_context
def config(ctx):
    """Configuration management commands."""
    pass


@config.command('init')
@click.option('--output', '-o', default='config.yaml', help='Output configuration file path')
def config_init(output: str):
    """Initialize configuration file with example settings."""

    try:
        Config.create_example_config(output)
    except OSError as e:
        click.echo(f"Failed to create configuration: {e}", err=True)
        sys.exit(1)

    click.echo(f"Configuration template created: {output}")
    click.echo("\nNext steps:")
    click.echo(f"1. Edit {output} with your settings")
    click.echo("2. Store secrets with 'remarkable2notion config set-secret' or in .env")
    click.echo("3. Run 'remarkable2notion config check' to validate")


@config.command('check')
@click.pass_context
def config_check(ctx):
    """Check configuration for issues."""

    config_obj = ctx.obj['config']
    issues = config_obj.validate()

    if issues:
        click.echo("Configuration issues found:", err=True)
        for issue in issues:
            click.echo(f"  - {issue}", err=True)
        sys.exit(1)

    click.echo("Configuration is valid")

    click.echo("\nKey settings:")
    click.echo(f"  Backup directory: {config_obj.backup_directory}")
    click.echo(f"  Temp directory: {config_obj.temp_directory}")
    click.echo(f"  Notion database: {config_obj.get('notion.database_id')}")
    click.echo(f"  Google Drive: {'enabled' if config_obj.drive_enabled else 'disabled (local PDF links)'}")
    click.echo(f"  Log level: {config_obj.get('logging.level')}")
    click.echo(f"  Keyring backend: {config_obj.secrets.get_keyring_backend()}")

    click.echo("\nSecrets:")
    for key, present in config_obj.secrets.list_stored_secrets().items():
        click.echo(f"  {key}: {'set' if present else 'not set'}")


@config.command('show')
@click.option('--section', help='Show only specific configuration section')
@click.pass_context
def config_show(ctx, section: Optional[str]):
    """Show current configuration (secrets masked)."""

    config_obj = ctx.obj['config']

    if section:
        data = config_obj.get_section(section)
        if data:
            click.echo(f"Configuration section '{section}':")
            _print_config_section(data)
        else:
            click.echo(f"Configuration section '{section}' not found", err=True)
            sys.exit(1)
    else:
        click.echo(f"Configuration loaded from: {config_obj.config_path or 'defaults'}")
        click.echo("\nFull configuration:")
        _print_config_section(config_obj.config_data)


@config.command('set-secret')
@click.argument('key', type=click.Choice(sorted(KNOWN_SECRETS)))
@click.option('--value', help='Secret value (will prompt securely if not provided)')
@click.pass_context
def config_set_secret(ctx, key: str, value: Optional[str]):
    """Store a secret in the system keyring."""

    if not value:
        value = click.prompt(f"Enter {key}", hide_input=True).strip()

    if not ctx.obj['config'].secrets.set_secret(key, value):
        click.echo("Failed to store secret in keyring", err=True)
        sys.exit(1)

    click.echo(f"🔑 {key} stored in keyring")


@config.command('delete-secret')
@click.argument('key', type=click.Choice(sorted(KNOWN_SECRETS)))
@click.pass_context
def config_delete_secret(ctx, key: str):
    """Remove a secret from the system keyring."""

    if not ctx.obj['config'].secrets.delete_secret(key):
        click.echo(f"{key} could not be deleted from the keyring", err=True)
        sys.exit(1)

    click.echo(f"🗑️ {key} deleted from keyring")


def _mask(key, value):
    if key in SECRET_FIELDS and value:
        return '********'
    return value


def _print_config_section(data, indent=0):
    """Print configuration section with proper formatting."""
    for key, value in data.items():
        if isinstance(value, dict):
            click.echo("  " * indent + f"{key}:")
            _print_config_section(value, indent + 1)
        else:
            click.echo("  " * indent + f"{key}: {_mask(key, value)}")


def main():
    """Main entry point for the CLI."""
    try:
        cli()
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user")
        sys.exit(0)


if __name__ == '__main__':
    main()
