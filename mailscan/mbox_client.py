#!/usr/bin/env python3
"""
Mbox Client - Scan mbox format email files

This module provides an MboxClient that reads mbox format files (used by
Pine, Thunderbird, and other email clients) and exposes them through the
same search/fetch interface as the IMAP clients, so a local archive can be
scanned for encoding anomalies without a server.
"""

import os
import re
from typing import Dict, List, Optional

from .parsed_email import ParsedEmail, parse_raw_message
from .predicates import message_matches


# "From sender@domain.com Sun Jun  1 10:42:18 2008"
SEPARATOR_RE = re.compile(rb"^From \S+.*$")

# mbox Status / X-Status letters to IMAP system flags
STATUS_FLAGS = {
    "R": "\\Seen",
    "A": "\\Answered",
    "F": "\\Flagged",
    "D": "\\Deleted",
    "T": "\\Draft",
}


class MboxClient:
    """
    Client for reading mbox format email files.

    Mbox files contain multiple emails concatenated together, separated by
    lines starting with "From " (note the space). Messages are numbered
    from 1 in file order and those numbers serve as UIDs.
    """

    def __init__(self, mbox_file_path: str, verbose: bool = True):
        """
        Initialize the mbox client.

        Args:
            mbox_file_path: Path to the mbox file to read
            verbose: Whether to print progress information
        """
        self.mbox_path = mbox_file_path
        self.verbose = verbose
        self.connected = False
        self._messages: Dict[str, bytes] = {}

        # Verify file exists
        if not os.path.exists(mbox_file_path):
            raise FileNotFoundError(f"Mbox file not found: {mbox_file_path}")

    def connect(self) -> None:
        """Read and split the mbox file"""
        try:
            with open(self.mbox_path, 'rb') as f:
                content = f.read()
        except OSError as e:
            raise ConnectionError(f"Failed to read mbox file: {e}") from e

        self._messages = {
            str(index): raw for index, raw in enumerate(split_mbox(content), 1)
        }
        self.connected = True

        if self.verbose:
            print(f"MboxClient: Read {len(self._messages)} messages from {self.mbox_path}")

    def disconnect(self) -> None:
        """Forget the parsed messages"""
        self._messages = {}
        self.connected = False

    def select_mailbox(self, mailbox: str = "INBOX", readonly: bool = True) -> None:
        """Select a mailbox (mbox files hold a single one, kept for interface consistency)"""
        if not self.connected:
            self.connect()

    def search(self, predicate: dict) -> List[str]:
        """UIDs of the messages matching the predicate, in file order"""
        if not self.connected:
            self.connect()
        return [uid for uid in self._messages if message_matches(predicate, self._parse(uid))]

    def fetch_message(self, uid: str) -> Optional[ParsedEmail]:
        """Parsed message for a uid, None if it doesn't exist"""
        if not self.connected:
            self.connect()
        if uid not in self._messages:
            return None
        return self._parse(uid)

    def _parse(self, uid: str) -> ParsedEmail:
        raw = self._messages[uid]
        return parse_raw_message(uid, raw, flags=status_flags(raw))

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()


def split_mbox(content: bytes) -> List[bytes]:
    """
    Split mbox content into raw messages.

    A separator is a "From " line at the start of the file or after a blank
    line. ">From " quoting in bodies is undone.
    """
    messages = []
    current: List[bytes] = []
    previous_blank = True

    for line in content.splitlines(keepends=True):
        if previous_blank and SEPARATOR_RE.match(line.rstrip(b"\r\n")):
            if current:
                messages.append(b"".join(current))
            current = []
            previous_blank = False
            continue

        if current or line.strip():
            if re.match(rb"^>+From ", line):
                line = line[1:]
            current.append(line)
        previous_blank = not line.strip()

    if current:
        messages.append(b"".join(current))

    return messages


def status_flags(raw: bytes) -> set:
    """IMAP style flags from a message's Status and X-Status headers"""
    flags = set()
    header_block = raw.split(b"\n\n", 1)[0].split(b"\r\n\r\n", 1)[0]
    for match in re.finditer(rb"^(?:X-)?Status:[ \t]*(\S*)", header_block, re.IGNORECASE | re.MULTILINE):
        for letter in match.group(1).decode("ascii", errors="ignore"):
            if letter in STATUS_FLAGS:
                flags.add(STATUS_FLAGS[letter])
    if "\\Seen" not in flags and "O" not in _status_letters(header_block):
        flags.add("\\Recent")
    return flags


def _status_letters(header_block: bytes) -> str:
    match = re.search(rb"^Status:[ \t]*(\S*)", header_block, re.IGNORECASE | re.MULTILINE)
    return match.group(1).decode("ascii", errors="ignore") if match else ""


# Convenience alias
Mbox = MboxClient
