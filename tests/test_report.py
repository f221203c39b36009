import io

from rich.console import Console

from mailscan import DummyClient, EncodingScanner, ScanOptions, ScanSummary, SummaryReport, render_summary
from mailscan.scanner import MatchRecord


def _console():
    return Console(file=io.StringIO(), width=200, color_system=None)


class TestSummaryReport:
    """Terminal rendering of scan summaries"""

    def test_matches_are_tabulated(self):
        summary = EncodingScanner(DummyClient(verbose=False), verbose=False).scan("INBOX", "[]")
        console = _console()

        render_summary(summary, console)
        out = console.file.getvalue()

        assert "Encoding Scan" in out
        assert "Matches: 1" in out
        assert "Scanned: 2 of 4 candidates" in out
        assert "stopped early" in out
        assert "Your invoice" in out
        assert "billing@shop.example" in out
        assert "8bit + AMAZONSES" in out
        assert "<2@test>" in out

    def test_no_matches(self):
        console = _console()
        SummaryReport(console).render(ScanSummary(total_candidates=3, scanned=3))
        out = console.file.getvalue()

        assert "No encoding anomalies found" in out
        assert "stopped early" not in out

    def test_message_id_column_optional(self):
        record = MatchRecord("7", ["headers: AMAZONSES"])
        record.message_id = "<hidden@example.com>"
        summary = ScanSummary(total_candidates=1, scanned=1, match_details=[record])
        console = _console()

        SummaryReport(console, show_message_ids=False).render(summary)
        out = console.file.getvalue()

        assert "headers: AMAZONSES" in out
        assert "hidden@example.com" not in out

    def test_markup_in_subjects_is_literal(self):
        record = MatchRecord("8", ["text/plain: 8bit +"])
        record.subject = "[bold]Sale[/bold] today"
        summary = ScanSummary(total_candidates=1, scanned=1, match_details=[record])
        console = _console()

        SummaryReport(console).render(summary)
        assert "[bold]Sale[/bold] today" in console.file.getvalue()

    def test_full_scan_lists_every_match(self):
        options = ScanOptions(stop_after_first=False)
        summary = EncodingScanner(DummyClient(verbose=False), options, verbose=False).scan("INBOX", "[]")
        console = _console()

        render_summary(summary, console)
        out = console.file.getvalue()
        assert "Newsletter" in out
        assert "stopped early" not in out
