"""Console reporter using Rich library for formatted CLI output.

Provides formatted output during a listing including:
- A header when each listing starts
- Per-page progress and retry notices
- A table of keys and their versions, common prefixes, warnings and errors
"""

from typing import Optional

from rich import box
from rich.console import Console
from rich.rule import Rule
from rich.table import Table

from s3versions.models import DeleteMarker, KeyState, ListingResult
from s3versions.reporters.base import Reporter

STATE_STYLES = {
    KeyState.LIVE: "[green]live[/green]",
    KeyState.DELETED: "[red]deleted[/red]",
    KeyState.ABSENT: "[yellow]absent[/yellow]",
}


def format_size(size: int) -> str:
    """Human-readable size, e.g. 1.5K or 12.0M."""
    value = float(size)
    for unit in ("B", "K", "M", "G"):
        if value < 1024:
            return f"{size}B" if unit == "B" else f"{value:.1f}{unit}"
        value /= 1024
    return f"{value:.1f}T"


class ConsoleReporter(Reporter):
    """Rich-based console reporter for CLI output.

    Args:
        quiet: If True, suppress per-page output (only show results)
        show_versions: If False, render a plain object listing
        console: Console to write to (defaults to stdout)
    """

    def __init__(
        self,
        quiet: bool = False,
        show_versions: bool = True,
        console: Optional[Console] = None,
    ):
        # Use legacy_windows=True for ASCII-safe output on Windows consoles
        self.console = console or Console(legacy_windows=True)
        self.quiet = quiet
        self.show_versions = show_versions

    def on_listing_start(self, bucket: str, prefix: str) -> None:
        if self.quiet:
            return
        self.console.print(f"[dim]listing s3://{bucket}/{prefix}[/dim]")

    def on_page_complete(self, bucket: str, prefix: str, page_number: int, record_count: int) -> None:
        if self.quiet:
            return
        self.console.print(
            f"  [dim]s3://{bucket}/{prefix} page {page_number}: {record_count} records[/dim]"
        )

    def on_retry(self, bucket: str, prefix: str, attempt: int, error: Exception, delay: float) -> None:
        self.console.print(
            f"  [yellow]s3://{bucket}/{prefix} attempt {attempt} failed ({error}); "
            f"retrying in {delay:.1f}s[/yellow]"
        )

    def on_listing_complete(self, result: ListingResult) -> None:
        """Display the listing under its location header, then warnings and errors.

        Listings may run concurrently, so everything for one result is
        printed here rather than split across callbacks.
        """
        self.console.print()
        self.console.print(
            Rule(
                f"[bold cyan]s3://{result.bucket}/{result.prefix}[/bold cyan]",
                style="cyan",
                characters="-",
            )
        )
        if result.common_prefixes or result.histories:
            self.console.print(self._build_table(result))
        else:
            self.console.print("[yellow]No objects found.[/yellow]")

        for warning in result.warnings:
            self.console.print(
                f"[yellow]warning:[/yellow] {warning.reason} record for "
                f"{warning.key} (version {warning.version_id})"
            )

        if result.error is not None:
            self.console.print(
                f"[bold red]{type(result.error).__name__}:[/bold red] {result.error}"
            )
            if result.histories:
                self.console.print("[dim]Results above are partial.[/dim]")

        if not self.quiet:
            self.console.print(
                f"[dim]{len(result.histories)} keys, {result.records} records, "
                f"{result.pages} pages[/dim]"
            )

    def _build_table(self, result: ListingResult) -> Table:
        table = Table(
            show_header=True,
            header_style="bold magenta",
            border_style="dim",
            box=box.ASCII,
        )
        table.add_column("Key", style="cyan", no_wrap=True)
        if self.show_versions:
            table.add_column("State", justify="center", no_wrap=True)
            table.add_column("Version ID", no_wrap=True)
            table.add_column("Latest", justify="center", no_wrap=True)
        table.add_column("Size", justify="right", no_wrap=True)
        table.add_column("Last Modified", no_wrap=True)
        if self.show_versions:
            table.add_column("ETag", no_wrap=True)

        for prefix in sorted(result.common_prefixes):
            row = [prefix, "PRE", "", ""] if self.show_versions else [prefix]
            row += ["-", "-"]
            if self.show_versions:
                row.append("")
            table.add_row(*row)

        for key, history in result.histories.items():
            if not history.versions:
                if self.show_versions:
                    table.add_row(key, STATE_STYLES[history.current_state], "-", "", "-", "-", "")
                continue
            for index, version in enumerate(history.versions):
                table.add_row(*self._version_row(key, history.current_state, index, version))

        return table

    def _version_row(self, key: str, state: KeyState, index: int, version) -> list[str]:
        modified = version.last_modified.strftime("%Y-%m-%d %H:%M:%S")
        if isinstance(version, DeleteMarker):
            size = "[dim]delete marker[/dim]"
            etag = ""
        else:
            size = format_size(version.size)
            etag = version.etag_hex

        if not self.show_versions:
            return [key, size, modified]

        return [
            key if index == 0 else "",
            STATE_STYLES[state] if index == 0 else "",
            version.version_id or "null",
            "*" if version.is_latest else "",
            size,
            modified,
            etag,
        ]
