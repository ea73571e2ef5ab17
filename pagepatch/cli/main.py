"""
PagePatch CLI - manage overrides and run live sessions.
"""

import asyncio
import logging
from datetime import datetime

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from pagepatch.core.config import PagePatchConfig
from pagepatch.layers.storage.backends import JsonFileBackend, StorageError
from pagepatch.layers.storage.store import OverrideStore, get_page_key

console = Console()


def _store(ctx: click.Context) -> OverrideStore:
    config: PagePatchConfig = ctx.obj["config"]
    return OverrideStore(JsonFileBackend(config.resolved_store_path))


def _page_key_or_exit(url: str) -> str:
    key = get_page_key(url)
    if not key:
        console.print(f"[red]❌ Not a usable page URL: {escape(url)}[/red]")
        raise click.exceptions.Exit(1)
    return key


def _format_timestamp(ms: int) -> str:
    if not ms:
        return "-"
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


@click.group()
@click.option('--store', 'store_path', default=None, envvar='PAGEPATCH_STORE',
              help='Path of the JSON override store (default: ~/.pagepatch/overrides.json)')
@click.option('--verbose', '-v', is_flag=True, help='Show debug logging')
@click.pass_context
def cli(ctx, store_path, verbose):
    """✏️ PagePatch - durable text overrides for any web page.

    Click an element, replace its text, and see the replacement
    re-applied every time the page loads.
    """
    config = PagePatchConfig.from_env()
    if store_path:
        config.store_path = store_path
    ctx.ensure_object(dict)
    ctx.obj["config"] = config

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


@cli.command(name="list")
@click.argument('url')
@click.pass_context
def list_overrides(ctx, url):
    """
    List the overrides saved for a page.

    Example:

        pagepatch list "https://example.com/pricing?ref=nav"
    """
    key = _page_key_or_exit(url)
    overrides = asyncio.run(_store(ctx).load(key))

    console.print(f"[bold]Page:[/bold] {escape(key)}")
    if not overrides:
        console.print("[dim]No overrides saved for this page.[/dim]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Selector", style="yellow", max_width=50)
    table.add_column("Text", style="green", max_width=40)
    table.add_column("Saved", style="dim")
    for override in sorted(overrides, key=lambda o: o.timestamp, reverse=True):
        table.add_row(escape(override.selector), escape(override.text), _format_timestamp(override.timestamp))
    console.print(table)


@cli.command()
@click.argument('url')
@click.argument('selector')
@click.pass_context
def delete(ctx, url, selector):
    """Delete one override by selector."""
    key = _page_key_or_exit(url)
    store = _store(ctx)

    async def _delete():
        before = await store.load(key)
        await store.delete(key, selector)
        return any(o.selector == selector for o in before)

    if asyncio.run(_delete()):
        console.print(f"[green]✅ Deleted {escape(selector)}[/green]")
    else:
        console.print(f"[yellow]⚠️ No override for {escape(selector)} on {escape(key)}[/yellow]")


@cli.command()
@click.argument('url')
@click.option('--yes', is_flag=True, help='Do not ask for confirmation')
@click.pass_context
def clear(ctx, url, yes):
    """Remove every override saved for a page."""
    key = _page_key_or_exit(url)
    if not yes:
        click.confirm(f"Clear all overrides for {key}?", abort=True)
    asyncio.run(_store(ctx).clear(key))
    console.print(f"[green]✅ Cleared {escape(key)}[/green]")


@cli.command()
@click.pass_context
def pages(ctx):
    """List every page that has overrides."""
    store = _store(ctx)

    async def _collect():
        rows = []
        for key in sorted(await store.backend.keys()):
            overrides = await store.load(key)
            if overrides:
                rows.append((key, len(overrides)))
        return rows

    try:
        rows = asyncio.run(_collect())
    except StorageError as e:
        console.print(f"[red]❌ Cannot read override store: {escape(str(e))}[/red]")
        raise click.exceptions.Exit(1)
    if not rows:
        console.print("[dim]No overrides saved.[/dim]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Page", style="blue")
    table.add_column("Overrides", justify="right")
    for key, count in rows:
        table.add_row(escape(key), str(count))
    console.print(table)


@cli.command()
@click.argument('html_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--url', required=True, help='Address the snapshot was taken from')
@click.option('--output', '-o', type=click.Path(dir_okay=False), default=None,
              help='Where to write the patched HTML (default: stdout)')
@click.pass_context
def render(ctx, html_file, url, output):
    """
    Apply saved overrides to a static HTML snapshot.

    Example:

        pagepatch render page.html --url "https://example.com/" -o patched.html
    """
    from pagepatch.layers.action.reconciler import Reconciler
    from pagepatch.layers.sense.html_document import HtmlDocument

    config: PagePatchConfig = ctx.obj["config"]
    key = _page_key_or_exit(url)
    document = HtmlDocument.from_file(html_file)
    reconciler = Reconciler(document, _store(ctx), key, config=config)
    result = asyncio.run(reconciler.apply_all())
    document.reveal(config.reveal_class)

    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(document.to_html())
        console.print(
            f"[green]✅ Applied {result.applied}, skipped {result.skipped} → {output}[/green]"
        )
    else:
        click.echo(document.to_html())
        click.echo(f"applied={result.applied} skipped={result.skipped}", err=True)


@cli.command(name="open")
@click.argument('url')
@click.option('--edit/--view', default=True, help='Start with click-to-edit enabled')
@click.option('--headless/--headed', default=False, help='Run browser in headless mode')
@click.option('--profile', default=None, help='Chrome profile directory to reuse')
@click.pass_context
def open_page(ctx, url, edit, headless, profile):
    """
    Open a page in Chrome with overrides applied.

    In edit mode, click any element to replace its text. Ctrl+Enter
    saves, Escape cancels. Close the window or press Ctrl+C to stop.
    """
    from pagepatch.core.driver_factory import create_driver
    from pagepatch.core.session import PageSession

    config: PagePatchConfig = ctx.obj["config"]
    console.print(Panel.fit(
        f"[bold blue]✏️ PagePatch[/bold blue]\n"
        f"[dim]{'Edit' if edit else 'View'} mode[/dim]",
        border_style="blue"
    ))
    console.print(f"\n[bold]Target:[/bold] {escape(url)}")
    console.print(f"[bold]Page key:[/bold] {escape(get_page_key(url)) or '[red]none (not persisted)[/red]'}")
    console.print()

    driver = create_driver(headless=headless, profile_path=profile)
    session = PageSession(driver, _store(ctx), config=config)
    try:
        result = asyncio.run(session.run(url, edit=edit))
        console.print(
            f"\n[dim]Page loads: {result.page_loads}, events handled: {result.events}[/dim]"
        )
        if result.error:
            console.print(f"[red]Error: {result.error}[/red]")
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")
    finally:
        try:
            driver.quit()
        except Exception:
            pass


@cli.command()
def version():
    """Show version information."""
    from pagepatch import __version__
    console.print(f"PagePatch v{__version__}")


def main():
    """Entry point for the CLI."""
    cli()


if __name__ == '__main__':
    main()
