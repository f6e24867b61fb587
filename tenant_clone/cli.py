"""Command-line interface for tenant catalog cloning."""

import threading
from typing import Any

import click
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table

from tenant_clone.clone import (
    CloneProgress,
    ClonePreview,
    CloneRequest,
    CloneResult,
    MergeStrategy,
    preview_clone,
    quick_clone,
    run_clone,
)

console = Console()

VERSION = "1.0.0"


def make_client(debug: bool = False) -> Any:
    """Build a SupabaseClient from the environment, exiting on bad configuration."""
    from tenant_clone.api.client import SupabaseClient
    from tenant_clone.config import load_config

    try:
        config = load_config()
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(2)
    return SupabaseClient(config.supabase_url, config.service_key, bucket=config.bucket, debug=debug)


def default_max_products() -> int:
    from tenant_clone.config import DEFAULT_MAX_PRODUCTS, load_config

    try:
        return load_config().max_products
    except ValueError:
        return DEFAULT_MAX_PRODUCTS


def confirm_replace(source: str, target: str) -> bool:
    """Warn that replace deletes the target's catalog and ask to proceed."""
    summary = (
        "[bold yellow]Replace mode[/bold yellow]\n\n"
        f"  Source: [cyan]{source}[/cyan]\n"
        f"  Target: [cyan]{target}[/cyan]\n\n"
        "  All products, images and categories of the target will be deleted\n"
        "  before the copy starts. This cannot be undone."
    )
    console.print(Panel(summary, border_style="yellow"))
    return Confirm.ask("Delete the target catalog and continue?", default=False)


def show_preview(preview: ClonePreview) -> None:
    table = Table(title="Clone preview")
    table.add_column("")
    table.add_column("Source", justify="right")
    table.add_column("Target", justify="right")
    table.add_row(
        "Categories",
        str(preview.source_stats.get("categories", 0)),
        str(preview.target_stats.get("categories", 0)),
    )
    table.add_row(
        "Products",
        str(preview.source_stats.get("products", 0)),
        str(preview.target_stats.get("products", 0)),
    )
    table.add_row("Listing limit", "", str(preview.target_stats.get("limit", 0)))
    console.print(table)

    if preview.warnings:
        console.print("\n[bold yellow]Warnings:[/bold yellow]")
        for warning in preview.warnings:
            console.print(f"  • {warning}")
    status = "[green]Clone can proceed[/green]" if preview.valid else "[red]Clone would fail[/red]"
    console.print(f"\n{status}")


def show_result(result: CloneResult, log_file: str | None = None) -> None:
    """Display the final clone summary."""
    console.print()
    if result.cancelled:
        status = "[bold yellow]Clone cancelled[/bold yellow]"
        border_style = "yellow"
    elif not result.success:
        status = "[bold red]Clone failed[/bold red]"
        border_style = "red"
    elif result.errors:
        status = "[bold yellow]Clone complete (with errors)[/bold yellow]"
        border_style = "yellow"
    else:
        status = "[bold green]Clone complete![/bold green]"
        border_style = "green"

    summary = (
        f"{status}\n\n"
        f"  Categories cloned: [cyan]{result.categories_cloned}[/cyan]\n"
        f"  Products cloned:   [cyan]{result.products_cloned}[/cyan]\n"
        f"  Images cloned:     [cyan]{result.images_cloned}[/cyan]\n"
        f"  Skipped:           [cyan]{result.skipped}[/cyan]"
    )
    if log_file:
        summary += f"\n\n  Log file: [cyan]{log_file}[/cyan]"
    console.print(Panel(summary, border_style=border_style))

    if result.errors:
        console.print("\n[bold red]Errors:[/bold red]")
        for error in result.errors[:10]:
            console.print(f"  • {error}")
        if len(result.errors) > 10:
            console.print(f"  [dim]... and {len(result.errors) - 10} more[/dim]")


def execute(store: Any, request: CloneRequest, quick: bool = False) -> CloneResult:
    """Run a clone in a worker thread with a progress bar.

    Ctrl+C sets the cancel event; the worker stops at the next product or
    image boundary and the partial result is still reported.
    """
    from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

    from tenant_clone.output import CloneLogger

    clone_logger = CloneLogger(request.source_tenant_id, request.target_tenant_id)
    cancel = threading.Event()
    outcome: dict[str, CloneResult] = {}

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("[cyan]Starting clone...", total=100)

        def on_progress(update: CloneProgress) -> None:
            progress.update(
                task,
                completed=update.percentage,
                description=f"[cyan]{update.step}/{update.total_steps} {update.message}",
            )

        def work() -> None:
            if quick:
                outcome["result"] = quick_clone(
                    store,
                    request.source_tenant_id,
                    request.target_tenant_id,
                    progress=on_progress,
                    clone_logger=clone_logger,
                    cancel=cancel,
                )
            else:
                outcome["result"] = run_clone(
                    store,
                    request,
                    progress=on_progress,
                    clone_logger=clone_logger,
                    cancel=cancel,
                )

        worker = threading.Thread(target=work, name="tenant-clone", daemon=True)
        worker.start()
        while worker.is_alive():
            try:
                worker.join(timeout=0.2)
            except KeyboardInterrupt:
                progress.update(task, description="[yellow]Cancelling after the current item...")
                cancel.set()

    result = outcome.get("result") or CloneResult(errors=["Clone stopped unexpectedly"])
    show_result(result, str(clone_logger.filepath))
    return result


@click.group()
@click.version_option(VERSION)
def main() -> None:
    """Tenant catalog cloning and category settings synchronization."""


@main.command()
@click.option("--source", required=True, help="Source tenant id")
@click.option("--target", required=True, help="Target tenant id")
@click.option("--no-categories", is_flag=True, help="Do not copy categories")
@click.option("--no-products", is_flag=True, help="Do not copy products")
@click.option("--no-images", is_flag=True, help="Do not copy product images")
@click.option(
    "--strategy",
    type=click.Choice([s.value for s in MergeStrategy]),
    default=MergeStrategy.MERGE.value,
    show_default=True,
    help="merge adds to the target; replace deletes the target catalog first",
)
@click.option("--physical-copy", is_flag=True, help="Copy image files instead of reusing source URLs")
@click.option("--max-products", type=int, default=None, help="Maximum number of products to copy")
@click.option("--yes", is_flag=True, help="Skip the replace confirmation")
@click.option("--debug", is_flag=True, help="Enable debug logging of API requests/responses")
def clone(
    source: str,
    target: str,
    no_categories: bool,
    no_products: bool,
    no_images: bool,
    strategy: str,
    physical_copy: bool,
    max_products: int | None,
    yes: bool,
    debug: bool,
) -> None:
    """Copy categories, products and images from SOURCE into TARGET."""
    from tenant_clone.output import setup_logging

    request = CloneRequest(
        source_tenant_id=source,
        target_tenant_id=target,
        copy_categories=not no_categories,
        copy_products=not no_products,
        merge_strategy=MergeStrategy(strategy),
        copy_images=not no_images,
        physical_duplicate=physical_copy,
        max_products=max_products if max_products is not None else default_max_products(),
    )

    if request.merge_strategy == MergeStrategy.REPLACE and not yes:
        if not confirm_replace(source, target):
            console.print("\n[yellow]Aborted.[/yellow]")
            raise SystemExit(0)

    log_path = setup_logging(debug, target, "clone")
    if log_path:
        console.print(f"[dim]Debug log: {log_path}[/dim]")

    with make_client(debug) as store:
        result = execute(store, request)
    raise SystemExit(0 if result.success else 1)


@main.command(name="quick-clone")
@click.option("--source", required=True, help="Source tenant id")
@click.option("--target", required=True, help="Target tenant id")
@click.option("--debug", is_flag=True, help="Enable debug logging of API requests/responses")
def quick_clone_command(source: str, target: str, debug: bool) -> None:
    """Merge categories and up to 50 products, without images."""
    from tenant_clone.output import setup_logging

    setup_logging(debug, target, "quick-clone")
    request = CloneRequest(source_tenant_id=source, target_tenant_id=target)
    with make_client(debug) as store:
        result = execute(store, request, quick=True)
    raise SystemExit(0 if result.success else 1)


@main.command()
@click.option("--source", required=True, help="Source tenant id")
@click.option("--target", required=True, help="Target tenant id")
@click.option("--no-categories", is_flag=True, help="Do not copy categories")
@click.option("--no-products", is_flag=True, help="Do not copy products")
@click.option(
    "--strategy",
    type=click.Choice([s.value for s in MergeStrategy]),
    default=MergeStrategy.MERGE.value,
    show_default=True,
)
@click.option("--max-products", type=int, default=None, help="Maximum number of products to copy")
@click.option("--debug", is_flag=True, help="Enable debug logging of API requests/responses")
def preview(
    source: str,
    target: str,
    no_categories: bool,
    no_products: bool,
    strategy: str,
    max_products: int | None,
    debug: bool,
) -> None:
    """Show what a clone would do without writing anything."""
    request = CloneRequest(
        source_tenant_id=source,
        target_tenant_id=target,
        copy_categories=not no_categories,
        copy_products=not no_products,
        merge_strategy=MergeStrategy(strategy),
        max_products=max_products if max_products is not None else default_max_products(),
    )
    with make_client(debug) as store:
        show_preview(preview_clone(store, request))


@main.command()
@click.option("--tenant", required=True, help="Tenant id whose category settings to rebuild")
@click.option("--debug", is_flag=True, help="Enable debug logging of API requests/responses")
def reconcile(tenant: str, debug: bool) -> None:
    """Rebuild a tenant's category display settings from its visible products."""
    from tenant_clone.errors import SettingsStoreError
    from tenant_clone.output import setup_logging
    from tenant_clone.settings import SettingsReconciler

    setup_logging(debug, tenant, "reconcile")
    with make_client(debug) as store:
        try:
            entries = SettingsReconciler(store).reconcile(tenant)
        except SettingsStoreError as e:
            console.print(f"[red]✗ {e}[/red]")
            raise SystemExit(1)

    if not entries:
        console.print("[yellow]No visible categories; display settings cleared.[/yellow]")
        return

    table = Table(title=f"Category settings for {tenant}")
    table.add_column("Order", justify="right")
    table.add_column("Category")
    table.add_column("Enabled")
    for entry in entries:
        table.add_row(str(entry["order"]), entry["category"], "yes" if entry["enabled"] else "no")
    console.print(table)


def run() -> None:
    try:
        main()
    except KeyboardInterrupt:
        console.print("\n\n[yellow]Interrupted by user.[/yellow]")
        raise SystemExit(1)


if __name__ == "__main__":
    run()
