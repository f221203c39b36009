#!/usr/bin/env python3
"""
Scan Report Core - Terminal display of encoding scan results

Renders a ScanSummary as a rich panel of totals followed by a table with
one row per flagged message.
"""

from typing import Optional

from rich import box
from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..scanner import ScanSummary


class SummaryReport:
    """
    Rich rendering of a ScanSummary.

    Usage:
        SummaryReport().render(scanner.scan("INBOX", '["UNSEEN"]'))
    """

    def __init__(self, console: Optional[Console] = None, show_message_ids: bool = True):
        """
        Args:
            console: Console to print to, a new stdout console by default
            show_message_ids: Include a Message-ID column in the table
        """
        self.console = console or Console()
        self.show_message_ids = show_message_ids

    def totals_panel(self, summary: ScanSummary) -> Panel:
        """Panel with matches / scanned / candidate counts"""
        totals = Text()
        totals.append("Matches: ", style="bold cyan")
        totals.append(str(summary.matches), style="bold red" if summary.matches else "green")
        totals.append("\nScanned: ", style="bold cyan")
        totals.append(f"{summary.scanned} of {summary.total_candidates} candidates", style="white")
        if summary.scanned < summary.total_candidates:
            totals.append("  (stopped early)", style="dim")
        return Panel(totals, title="Encoding Scan", title_align="left", border_style="cyan")

    def matches_table(self, summary: ScanSummary) -> Table:
        """Table with one row per flagged message"""
        table = Table(box=box.SIMPLE_HEAVY, show_lines=False)
        table.add_column("UID", style="bold", no_wrap=True)
        table.add_column("From", style="white")
        table.add_column("Subject", style="white")
        table.add_column("Matched", style="yellow")
        if self.show_message_ids:
            table.add_column("Message-ID", style="dim")

        for record in summary.match_details:
            # Text cells, not markup
            row = [
                Text(record.uid),
                Text(", ".join(record.from_ or [])),
                Text(record.subject or ""),
                Text("\n".join(record.match_sources)),
            ]
            if self.show_message_ids:
                row.append(Text(record.message_id or ""))
            table.add_row(*row)

        return table

    def render(self, summary: ScanSummary) -> None:
        """Print the summary to the console"""
        if summary.match_details:
            self.console.print(Group(self.totals_panel(summary), self.matches_table(summary)))
        else:
            self.console.print(self.totals_panel(summary))
            self.console.print("[green]No encoding anomalies found[/green]")


def render_summary(summary: ScanSummary, console: Optional[Console] = None) -> None:
    """Print a ScanSummary with rich"""
    SummaryReport(console).render(summary)
