#!/usr/bin/env python3
"""
MailScan - Find messages with suspicious MIME transfer encodings

A Python library that searches a mailbox and flags messages whose
Content-Transfer-Encoding matches a pattern (by default the broken
``8bit + AMAZONSES`` style values some bulk senders emit).

Main Components:
- Predicates: Compile token lists or predicate objects into search predicates
- Matcher: Walk a message's MIME part tree (and raw headers) for anomalies
- Scanner: Search, fetch and match with stop-after-first / max-results limits
- Clients: IMAP, mbox and in-memory sources for candidate messages
- Report: Terminal display of scan summaries

Usage:
    from mailscan import EncodingScanner, RealImapClient, ScanOptions, IMAP_SERVERS, render_summary

    credentials = dict(IMAP_SERVERS["gmail"], username="me@gmail.com", password="app-password")
    scanner = EncodingScanner(RealImapClient(credentials), ScanOptions(max_results=10, stop_after_first=False))

    summary = scanner.scan("[Gmail]/All Mail", '["SINCE", "01-Jan-2024"]')
    render_summary(summary)
"""

from .errors import (
    ScanError,
    CriteriaError,
    MalformedCriteria,
    MissingArgument,
    UnsupportedToken,
    InvalidPattern
)
from .predicates import (
    TokenCriteria,
    ObjectCriteria,
    compile_criteria,
    flatten_search_tokens,
    tokens_to_search,
    parse_criteria_json,
    to_imap_criteria,
    message_matches
)
from .parsed_email import (
    MimePartNode,
    ParsedEmail,
    parse_envelope,
    part_tree_from_message,
    extract_message_id
)
from .matcher import (
    DEFAULT_PATTERN,
    compile_pattern,
    find_encoding_anomalies
)
from .scanner import EncodingScanner, ScanOptions, ScanSummary, MatchRecord, scan_mailbox
from .real_imap_client import RealImapClient
from .imap_client import DummyClient, IMAP_SERVERS
from .mbox_client import MboxClient, Mbox
from .report import SummaryReport, render_summary

__all__ = [
    # Errors
    'ScanError',
    'CriteriaError',
    'MalformedCriteria',
    'MissingArgument',
    'UnsupportedToken',
    'InvalidPattern',

    # Criteria
    'TokenCriteria',
    'ObjectCriteria',
    'compile_criteria',
    'flatten_search_tokens',
    'tokens_to_search',
    'parse_criteria_json',
    'to_imap_criteria',
    'message_matches',

    # Messages
    'MimePartNode',
    'ParsedEmail',
    'parse_envelope',
    'part_tree_from_message',
    'extract_message_id',

    # Matching
    'DEFAULT_PATTERN',
    'compile_pattern',
    'find_encoding_anomalies',

    # Scanning
    'EncodingScanner',
    'ScanOptions',
    'ScanSummary',
    'MatchRecord',
    'scan_mailbox',

    # Email clients
    'RealImapClient',
    'DummyClient',
    'IMAP_SERVERS',
    'MboxClient',
    'Mbox',

    # Display
    'SummaryReport',
    'render_summary'
]
