"""Command-line interface for Notion Clipper."""

import asyncio
import json
import sys
import click
from pathlib import Path
from loguru import logger
from rich.console import Console
from rich.table import Table

from notion_clipper.config import Config
from notion_clipper.document import Article
from notion_clipper.errors import ClipperError, WriteError
from notion_clipper.media import AssetPipeline
from notion_clipper.platforms.notion_client import NotionClient
from notion_clipper.properties import detect_field_mapping
from notion_clipper.reconcile import ReconciliationSweep
from notion_clipper.save_engine import SaveEngine
from notion_clipper.state import State

console = Console()

# Configure loguru with a rich console sink
logger.remove()  # Remove default handler

def custom_rich_sink(message):
    """Custom loguru sink with color-coded levels."""
    record = message.record
    level = record["level"].name
    time = record["time"].strftime("%H:%M:%S")
    msg = record["message"]

    # Color map for different levels
    level_colors = {
        "DEBUG": "dim",
        "INFO": "blue",
        "SUCCESS": "green",
        "WARNING": "yellow",
        "ERROR": "red bold",
    }

    color = level_colors.get(level, "white")
    formatted = f"[green]{time}[/green] | [{color}]{level: <8}[/{color}] | {msg}"
    console.print(formatted, highlight=False)

logger.add(custom_rich_sink, level="INFO")

# Add file logging
LOG_DIR = Path.home() / ".notion_clipper" / "logs"
LOG_DIR.mkdir(parents=True, exist_ok=True)
logger.add(
    LOG_DIR / "notion_clipper_{time:YYYY-MM-DD}.log",
    rotation="1 day",
    retention="7 days",
    level="DEBUG"
)


def _require_token(config: Config) -> str:
    creds = config.get_credentials()
    if not creds.notion_token:
        console.print("[red]✗ Notion token not configured. Run 'nclip init' first.[/red]")
        sys.exit(1)
    return creds.notion_token


def load_article(source: Path, title: str = None, url: str = None) -> Article:
    """Read an article from an extractor JSON file or a markdown file."""
    text = source.read_text(encoding='utf-8')
    if source.suffix.lower() == '.json':
        article = Article.from_dict(json.loads(text))
    else:
        first_heading = next(
            (line.lstrip('#').strip() for line in text.splitlines() if line.startswith('# ')), None
        )
        article = Article(title=first_heading or source.stem, content=text)
    if title:
        article.title = title
    if url:
        article.url = url
    return article


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
def cli(verbose):
    """nclip - Save articles to Notion databases"""
    if verbose:
        logger.remove()
        logger.add(
            sys.stderr,
            format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
            level="DEBUG"
        )
        logger.debug("Verbose logging enabled")


@cli.command()
def init():
    """Initialize configuration with credentials"""
    console.print("[bold cyan]Notion Clipper Setup[/bold cyan]\n")

    config = Config()
    notion_token = click.prompt("Notion API token", hide_input=True)
    config.save_credentials(notion_token=notion_token)

    default_db = click.prompt("Default database ID (optional)", default="", show_default=False)
    if default_db:
        config.set_default_database(default_db)

    console.print("\n[green]✓ Configuration saved to ~/.notion_clipper/config.toml[/green]")


@cli.command()
def databases():
    """List databases shared with the integration"""
    config = Config()
    token = _require_token(config)

    async def run():
        async with NotionClient(token, config.get_settings()) as notion:
            return await notion.list_databases()

    try:
        results = asyncio.run(run())
    except ClipperError as e:
        console.print(f"[red]✗ {e.message}[/red]")
        sys.exit(1)

    if not results:
        console.print("[yellow]No databases found. Share a database with your integration first.[/yellow]")
        return

    table = Table(title="Databases")
    table.add_column("Title", style="cyan")
    table.add_column("ID", style="blue")
    for db in results:
        table.add_row(db["title"], db["id"])
    console.print(table)


@cli.command()
@click.argument('database_id')
@click.option('--save', 'save_mapping', is_flag=True, help='Store the detected field mapping')
def schema(database_id, save_mapping):
    """Show database properties and the detected field mapping"""
    config = Config()
    token = _require_token(config)

    async def run():
        async with NotionClient(token, config.get_settings()) as notion:
            return await notion.get_database_schema(database_id)

    try:
        properties = asyncio.run(run())
    except ClipperError as e:
        console.print(f"[red]✗ {e.message}[/red]")
        sys.exit(1)

    mapping = detect_field_mapping(properties)

    table = Table(title=f"Database {database_id[:8]}")
    table.add_column("Property", style="cyan")
    table.add_column("Type")
    table.add_column("Article field", style="green")
    for name, prop_type in properties.items():
        source = mapping[name].source_field if name in mapping else ""
        table.add_row(name, prop_type, source)
    console.print(table)

    if save_mapping:
        config.save_field_mapping(database_id, mapping)
        console.print(f"[green]✓ Field mapping saved ({len(mapping)} fields)[/green]")


@cli.command()
@click.argument('source', type=click.Path(exists=True, dir_okay=False))
@click.option('--database', '-d', help='Database ID (uses default if not specified)')
@click.option('--title', help='Override the article title')
@click.option('--url', help='Source URL of the article')
@click.option('--no-images', is_flag=True, help='Keep images as external links')
@click.option('--no-migrate', is_flag=True, help='Skip the post-save image migration')
def save(source, database, title, url, no_images, no_migrate):
    """Save an article (.json from the extractor, or .md) to Notion"""
    config = Config()
    token = _require_token(config)
    settings = config.get_settings()
    state = State()

    database = database or config.get_default_database() or state.get_last_database()
    if not database:
        console.print("[red]✗ No database specified and no default set.[/red]")
        console.print("[yellow]Use --database or set default_database in the config[/yellow]")
        sys.exit(1)

    article = load_article(Path(source), title=title, url=url)
    download = settings.download_images and not no_images

    async def run():
        async with NotionClient(token, settings) as notion:
            engine = SaveEngine(notion, settings, state=state)
            try:
                result = await engine.save(
                    article, database, config.get_field_mapping(database),
                    should_download_images=download, timeout=settings.save_timeout,
                )
                sweep = None
                if not no_migrate and engine.needs_migration(result, download):
                    sweep = await engine.schedule_migration(result.page_id)
                return result, sweep
            finally:
                await engine.pipeline.aclose()

    try:
        result, sweep = asyncio.run(run())
    except WriteError as e:
        console.print(f"[yellow]⚠ Page created but incomplete: {e.message}[/yellow]")
        if e.page_url:
            console.print(f"  {e.page_url}")
        sys.exit(2)
    except asyncio.TimeoutError:
        console.print(f"[red]✗ Save timed out after {settings.save_timeout}s (partial content may exist)[/red]")
        sys.exit(1)
    except ClipperError as e:
        console.print(f"[red]✗ Save failed: {e.message}[/red]")
        sys.exit(1)

    console.print(f"\n[green]✓ Saved to Notion:[/green] {result.url}")
    console.print(f"  Blocks: {result.block_count}, images uploaded: {result.uploaded_images}, "
                  f"external: {result.external_images}")
    if sweep:
        console.print(f"  Image migration: {sweep.migrated}/{sweep.processed} migrated, {sweep.failed} failed")


@cli.command()
@click.argument('page_id')
def migrate(page_id):
    """Rehost external images of an existing page"""
    config = Config()
    token = _require_token(config)
    settings = config.get_settings()

    async def run():
        async with NotionClient(token, settings) as notion:
            pipeline = AssetPipeline(notion, settings)
            try:
                return await ReconciliationSweep(notion, pipeline).migrate_external_images(page_id)
            finally:
                await pipeline.aclose()

    result = asyncio.run(run())
    console.print(f"[green]✓ Processed {result.processed} external images:[/green] "
                  f"{result.migrated} migrated, {result.failed} failed")
    if result.stopped_early:
        console.print("[yellow]⚠ Sweep stopped early (rate limit or auth error)[/yellow]")


@cli.command()
def config_show():
    """Show current configuration"""
    config = Config()

    if not config.exists():
        console.print("[yellow]No configuration found. Run 'nclip init' first.[/yellow]")
        return

    creds = config.get_credentials()
    token = creds.notion_token
    masked = f"{token[:6]}...{token[-4:]}" if len(token) > 10 else ("(set)" if token else "(not set)")

    console.print("[bold]Configuration:[/bold]\n")
    console.print(f"Notion token: {masked}")
    console.print(f"Default database: {config.get_default_database() or '(none)'}")

    table = Table(title="Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in vars(config.get_settings()).items():
        table.add_row(key, str(value))
    console.print(table)


if __name__ == '__main__':
    cli()
