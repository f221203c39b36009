"""
The encoding scan itself: search a mailbox, inspect each candidate's MIME
structure and collect the messages whose transfer encoding looks wrong.
"""

import base64
from typing import Any, Callable, Dict, List, Optional

from .matcher import DEFAULT_PATTERN, compile_pattern, find_encoding_anomalies
from .parsed_email import ParsedEmail, extract_message_id
from .predicates import compile_criteria


DEFAULT_MAILBOX = "[Gmail]/All Mail"
DEFAULT_CRITERIA = '["UNSEEN"]'
DEFAULT_RAW_MESSAGE_PROPERTY = "rawMessage"


def _non_negative_int(value) -> int:
    if isinstance(value, bool):
        return 0
    try:
        number = int(value)
    except (TypeError, ValueError):
        return 0
    return number if number > 0 else 0


class ScanOptions:
    """Settings for one encoding scan"""

    def __init__(self, pattern: str = DEFAULT_PATTERN, case_insensitive: bool = True,
                 stop_after_first: bool = True, max_results: int = 0, progress_every: int = 200,
                 include_raw_headers: bool = False, include_raw_message: bool = False,
                 raw_message_property: str = DEFAULT_RAW_MESSAGE_PROPERTY):
        """
        Args:
            pattern: Regex tested against Content-Transfer-Encoding values
            case_insensitive: Compile the pattern with re.IGNORECASE
            stop_after_first: Stop scanning as soon as one message matches
            max_results: Stop after this many matches, 0 for no limit
            progress_every: Report progress every N scanned messages, 0 to disable
            include_raw_headers: Attach the raw header block to each match
            include_raw_message: Fetch and attach the full message (base64) to each match
            raw_message_property: Output key for the attached raw message
        """
        self.pattern = (pattern or "").strip()
        self.case_insensitive = case_insensitive is not False
        self.stop_after_first = stop_after_first is not False
        self.max_results = _non_negative_int(max_results)
        self.progress_every = _non_negative_int(progress_every)
        self.include_raw_headers = include_raw_headers is True
        self.include_raw_message = include_raw_message is True
        if isinstance(raw_message_property, str) and raw_message_property.strip():
            self.raw_message_property = raw_message_property.strip()
        else:
            self.raw_message_property = DEFAULT_RAW_MESSAGE_PROPERTY

    @classmethod
    def from_dict(cls, options: Optional[Dict[str, Any]]) -> 'ScanOptions':
        """Build options from a camelCase settings dict (``maxResults``, ``stopAfterFirst`` ...)"""
        options = options or {}
        return cls(
            pattern=options.get("encodingPattern", DEFAULT_PATTERN),
            case_insensitive=options.get("caseInsensitive", True),
            stop_after_first=options.get("stopAfterFirst", True),
            max_results=options.get("maxResults", 0),
            progress_every=options.get("progressEvery", 200),
            include_raw_headers=options.get("includeRawHeaders", False),
            include_raw_message=options.get("includeRawMessage", False),
            raw_message_property=options.get("rawMessageProperty", DEFAULT_RAW_MESSAGE_PROPERTY),
        )

    def __repr__(self):
        return (f"ScanOptions(pattern={self.pattern!r}, stop_after_first={self.stop_after_first}, "
                f"max_results={self.max_results})")


class MatchRecord:
    """One message flagged by the scan"""

    def __init__(self, uid: str, match_sources: List[str]):
        self.uid = uid
        self.match_sources = list(dict.fromkeys(match_sources))
        self.subject: Optional[str] = None
        self.date: Optional[str] = None
        self.from_: Optional[List[str]] = None
        self.message_id: Optional[str] = None
        self.raw_headers: Optional[str] = None
        self.raw_message: Optional[str] = None
        self.raw_message_encoding: Optional[str] = None
        self.raw_message_bytes: Optional[int] = None
        self.raw_message_error: Optional[str] = None

    def to_dict(self, raw_message_property: str = DEFAULT_RAW_MESSAGE_PROPERTY) -> Dict[str, Any]:
        entry: Dict[str, Any] = {
            "imapUid": self.uid,
            "matchSources": list(self.match_sources),
        }
        if self.subject:
            entry["subject"] = self.subject
        if self.date:
            entry["date"] = self.date
        if self.from_:
            entry["from"] = list(self.from_)
        if self.raw_headers is not None:
            entry["rawHeaders"] = self.raw_headers
        if self.raw_message is not None:
            entry[raw_message_property] = self.raw_message
            entry["rawMessageEncoding"] = self.raw_message_encoding
            entry["rawMessageBytes"] = self.raw_message_bytes
        if self.raw_message_error is not None:
            entry["rawMessageError"] = self.raw_message_error
        if self.message_id:
            entry["messageId"] = self.message_id
        return entry

    def __repr__(self):
        return f"<MatchRecord uid={self.uid} sources={self.match_sources!r}>"


class ScanSummary:
    """Result of one scan"""

    def __init__(self, total_candidates: int = 0, scanned: int = 0,
                 match_details: List[MatchRecord] = None,
                 raw_message_property: str = DEFAULT_RAW_MESSAGE_PROPERTY):
        self.total_candidates = total_candidates
        self.scanned = scanned
        self.match_details = match_details if match_details is not None else []
        self.raw_message_property = raw_message_property

    @property
    def matches(self) -> int:
        return len(self.match_details)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matches": self.matches,
            "totalCandidates": self.total_candidates,
            "scanned": self.scanned,
            "matchDetails": [m.to_dict(self.raw_message_property) for m in self.match_details],
        }

    def __repr__(self):
        return (f"<ScanSummary matches={self.matches} scanned={self.scanned} "
                f"total_candidates={self.total_candidates}>")


class EncodingScanner:
    """
    Scan a mailbox for messages with suspicious transfer encodings.

    The client is any object with connect(), select_mailbox(), search(),
    fetch_message() and disconnect() - RealImapClient, MboxClient or
    DummyClient.

    Usage:
        scanner = EncodingScanner(RealImapClient(credentials), ScanOptions(max_results=10))
        summary = scanner.scan("INBOX", '["SINCE", "01-Jan-2024"]')
    """

    def __init__(self, client, options: ScanOptions = None, verbose: bool = True,
                 progress_callback: Callable[[int, int, int], None] = None):
        """
        Args:
            client: Mail client implementing the search/fetch interface
            options: ScanOptions, defaults used when omitted
            verbose: Whether to print progress messages
            progress_callback: Called as (scanned, total_candidates, matches)
                every options.progress_every scanned messages
        """
        self.client = client
        self.options = options or ScanOptions()
        self.verbose = verbose
        self.progress_callback = progress_callback

    def scan(self, mailbox: str = DEFAULT_MAILBOX, criteria=DEFAULT_CRITERIA) -> ScanSummary:
        """
        Run one scan.

        Criteria and pattern are compiled before the client is touched, so
        bad input fails without opening a connection. The client is
        disconnected on every exit path.

        Args:
            mailbox: Mailbox to scan (opened read-only)
            criteria: Criteria JSON text, token list or predicate dict

        Raises:
            MalformedCriteria, MissingArgument, UnsupportedToken, InvalidPattern:
                for bad input
        """
        mailbox = (mailbox or "").strip()
        if not mailbox:
            raise ValueError("Mailbox must be provided.")

        predicate = compile_criteria(criteria)
        regex = compile_pattern(self.options.pattern, self.options.case_insensitive)

        try:
            self.client.connect()
            self.client.select_mailbox(mailbox, readonly=True)
            summary = self._run(predicate, regex)
        except BaseException:
            self._disconnect_after_error()
            raise

        self.client.disconnect()
        return summary

    def _run(self, predicate: dict, regex) -> ScanSummary:
        candidates = self.client.search(predicate) or []
        summary = ScanSummary(
            total_candidates=len(candidates),
            raw_message_property=self.options.raw_message_property,
        )

        if not candidates:
            if self.verbose:
                print("No candidate messages found")
            return summary

        for uid in candidates:
            message = self.client.fetch_message(uid)
            summary.scanned += 1

            # Missing messages count as scanned but never trigger progress
            if message is None:
                continue

            sources = find_encoding_anomalies(message.part_tree, message.raw_headers, regex)
            if sources:
                summary.match_details.append(self._build_record(message, sources))

            self._report_progress(summary)

            if self._should_stop(summary):
                if self.verbose:
                    print(f"Stopping early after {summary.scanned} of "
                          f"{summary.total_candidates} messages")
                break

        return summary

    def _build_record(self, message: ParsedEmail, sources: List[str]) -> MatchRecord:
        record = MatchRecord(str(message.uid), sources)

        envelope = message.envelope
        if envelope:
            record.subject = envelope.get("subject") or None
            record.date = envelope.get("date") or None
            record.from_ = envelope.get("from") or None

        if self.options.include_raw_headers and message.raw_headers:
            record.raw_headers = message.raw_headers

        if self.options.include_raw_message:
            raw = message.get_raw()
            if raw:
                record.raw_message = base64.b64encode(raw).decode("ascii")
                record.raw_message_encoding = "base64"
                record.raw_message_bytes = len(raw)
            else:
                record.raw_message_error = "Raw message was not available for this UID."

        record.message_id = extract_message_id(envelope, message.raw_headers)

        if self.verbose:
            print(f"Match in {record.uid}: {', '.join(record.match_sources)}")
        return record

    def _report_progress(self, summary: ScanSummary) -> None:
        every = self.options.progress_every
        if not every or summary.scanned % every != 0:
            return
        if self.progress_callback is not None:
            self.progress_callback(summary.scanned, summary.total_candidates, summary.matches)
        if self.verbose:
            print(f"Scanned {summary.scanned} of {summary.total_candidates} messages; "
                  f"{summary.matches} matches so far.")

    def _should_stop(self, summary: ScanSummary) -> bool:
        if self.options.stop_after_first and summary.matches > 0:
            return True
        return bool(self.options.max_results) and summary.matches >= self.options.max_results

    def _disconnect_after_error(self) -> None:
        # Caller re-raises the scan error after this
        try:
            self.client.disconnect()
        except Exception as e:
            print(f"Failed to disconnect after error: {e}")


def scan_mailbox(client, mailbox: str = DEFAULT_MAILBOX, criteria=DEFAULT_CRITERIA,
                 options: Optional[Dict[str, Any]] = None, verbose: bool = True) -> Dict[str, Any]:
    """
    Scan a mailbox and return the summary as a plain dict.

    Args:
        client: Mail client implementing the search/fetch interface
        mailbox: Mailbox to scan
        criteria: Criteria JSON text, token list or predicate dict
        options: camelCase settings dict, see ScanOptions.from_dict()
        verbose: Whether to print progress messages
    """
    scanner = EncodingScanner(client, ScanOptions.from_dict(options), verbose=verbose)
    return scanner.scan(mailbox, criteria).to_dict()
