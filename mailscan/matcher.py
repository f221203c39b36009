"""
Encoding anomaly matching.

A message is suspicious when the Content-Transfer-Encoding of any of its
MIME parts matches the scan pattern. The part tree is checked first; the
raw Content-Transfer-Encoding headers are only consulted when the tree
produced nothing, since body structure metadata is sometimes missing while
the raw header still shows the problem.
"""

import re
from collections import deque
from typing import List, Optional, Pattern

from .errors import InvalidPattern
from .parsed_email import MimePartNode, unfold_headers


DEFAULT_PATTERN = r'(?:AMAZONSES"?|8bit\s*\+)'

# Only transfer-encoding headers are scanned, other fields match too eagerly
CTE_HEADER_RE = re.compile(r"^Content-Transfer-Encoding:\s*(.+)$", re.IGNORECASE | re.MULTILINE)


def compile_pattern(pattern: str, case_insensitive: bool = True) -> Pattern:
    """
    Compile the encoding pattern.

    Raises:
        InvalidPattern: if the pattern is empty or is not a valid regex
    """
    if not pattern or not pattern.strip():
        raise InvalidPattern("Encoding regex pattern is required.", pattern)
    try:
        return re.compile(pattern, re.IGNORECASE if case_insensitive else 0)
    except re.error as e:
        raise InvalidPattern(f"Invalid regex pattern: {e}", pattern) from e


def clean_encoding(value: Optional[str]) -> str:
    """Collapse whitespace runs to single spaces and trim"""
    if not value:
        return ""
    return re.sub(r"\s+", " ", value).strip()


def describe_structure(node: MimePartNode) -> str:
    """Human readable location of a part, e.g. ``text/plain part 1.2 attachment``"""
    parts = []
    if node.type:
        parts.append(node.type)
    if node.part:
        parts.append(f"part {node.part}")
    if node.disposition:
        parts.append(node.disposition)
    return " ".join(parts) if parts else "message"


def collect_encoding_matches(structure: Optional[MimePartNode], regex: Pattern) -> List[str]:
    """Every part in the tree whose encoding matches, in breadth-first order"""
    if structure is None:
        return []

    matches = []
    queue = deque([structure])

    while queue:
        node = queue.popleft()
        encoding = clean_encoding(node.encoding)
        if encoding and regex.search(encoding):
            matches.append(f"{describe_structure(node)}: {encoding}")
        queue.extend(node.child_nodes)

    return matches


def collect_header_encoding_matches(raw_headers: Optional[str], regex: Pattern) -> List[str]:
    """Every Content-Transfer-Encoding header in the raw block whose value matches"""
    if not raw_headers:
        return []

    matches = []
    for match in CTE_HEADER_RE.finditer(unfold_headers(raw_headers)):
        cleaned = clean_encoding(match.group(1))
        if cleaned and regex.search(cleaned):
            matches.append(f"headers: {cleaned}")
    return matches


def find_encoding_anomalies(structure: Optional[MimePartNode], raw_headers: Optional[str],
                            regex: Pattern) -> List[str]:
    """
    Provenance strings for every encoding anomaly in a message.

    Args:
        structure: Root of the MIME part tree, if the message has one
        raw_headers: Raw header block, if it was fetched
        regex: Compiled pattern from compile_pattern()

    Returns:
        De-duplicated provenance strings in first-seen order; empty when
        the message looks clean
    """
    matches = collect_encoding_matches(structure, regex)
    if not matches:
        matches = collect_header_encoding_matches(raw_headers, regex)
    return list(dict.fromkeys(matches))
