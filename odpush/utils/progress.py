"""Progress and report display utilities for odpush."""

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    FileSizeColumn,
    Progress,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
    TotalFileSizeColumn,
    TransferSpeedColumn,
)
from rich.table import Table

from odpush.utils.helpers import format_bytes, truncate_path

console = Console()


def create_file_progress(filename):
    """Create a progress display for a single upload."""
    return Progress(
        TextColumn(f"[cyan]{truncate_path(filename)}"),
        BarColumn(),
        TaskProgressColumn(),
        "•",
        FileSizeColumn(),
        "/",
        TotalFileSizeColumn(),
        "•",
        TransferSpeedColumn(),
        "•",
        TimeElapsedColumn(),
        "•",
        TimeRemainingColumn(),
        console=console,
    )


def display_upload_result(item, stats_obj):
    """Display the uploaded item and the run's statistics."""
    stats = stats_obj.get_stats()
    duration = stats_obj.get_duration()

    table = Table(show_header=False, box=box.SIMPLE, pad_edge=False)
    table.add_column("Metric", style="bold cyan", width=22, no_wrap=True)
    table.add_column("Value", style="white")

    table.add_row("📄 Name", f"[bold]{item.name}[/bold]")
    table.add_row("🆔 Item ID", item.id)
    table.add_row("💾 Size", format_bytes(item.size))
    if item.web_url:
        table.add_row("🌐 Web URL", item.web_url)
    if item.download_url:
        table.add_row("⬇️  Download URL", f"[green]{item.download_url}[/green]")
    table.add_row("")
    table.add_row("📦 Chunks Sent", str(stats["chunks_sent"]))
    table.add_row("🔁 Chunk Retries", str(stats["chunk_retries"]))
    table.add_row("⏱️  Duration", str(duration).split(".")[0])
    table.add_row("🚀 Speed", f"{stats_obj.get_transfer_speed_mb_per_sec():.2f} MB/s")

    console.print("\n")
    console.print(
        Panel(table, title="[bold]🎉 Upload Complete[/bold]", border_style="green", padding=(1, 2))
    )


def display_quota_table(quotas):
    """Display quota for one or more remotes."""
    if not quotas:
        console.print("[yellow]No quota information available.[/yellow]")
        return

    table = Table(show_header=True, box=box.SIMPLE)
    table.add_column("Remote", style="cyan")
    table.add_column("Total", style="white", justify="right")
    table.add_column("Used", style="yellow", justify="right")
    table.add_column("Remaining", style="green", justify="right")
    table.add_column("Deleted", style="dim", justify="right")

    for name, quota in quotas.items():
        table.add_row(
            name,
            format_bytes(quota.total),
            format_bytes(quota.used),
            format_bytes(quota.remaining),
            format_bytes(quota.deleted),
        )

    console.print(Panel(table, title="[bold]📊 Drive Quota[/bold]", border_style="cyan"))


def display_remotes(config_store):
    """Display every configured remote and its upload settings."""
    credentials = config_store.load_all()
    if not credentials:
        console.print("[yellow]No usable remotes configured.[/yellow]")
        return

    table = Table(show_header=True, box=box.SIMPLE)
    table.add_column("Remote", style="cyan")
    table.add_column("Drive Type", style="white")
    table.add_column("Root Folder", style="yellow")
    table.add_column("Base URL", style="dim")

    for name, credential in credentials.items():
        table.add_row(
            name,
            credential.drive_type or "-",
            credential.root_folder or "/",
            credential.base_url or "-",
        )

    console.print(Panel(table, title="[bold]🗂️  Remotes[/bold]", border_style="blue"))
