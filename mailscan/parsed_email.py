import email
import email.message
import re
from datetime import timezone
from email.header import decode_header, make_header
from email.policy import default
from email.utils import getaddresses, parsedate_to_datetime
from typing import Callable, List, Optional


class MimePartNode:
    """
    One node of a message's MIME part tree.

    Children are owned by their parent; the tree never has back-references.
    """

    def __init__(self, type: str = None, part: str = None, disposition: str = None,
                 encoding: str = None, child_nodes: List['MimePartNode'] = None):
        self.type = type
        self.part = part
        self.disposition = disposition
        self.encoding = encoding
        self.child_nodes = child_nodes if child_nodes is not None else []

    def __repr__(self):
        return (f"<MimePartNode type={self.type!r} part={self.part!r} "
                f"encoding={self.encoding!r} children={len(self.child_nodes)}>")


class ParsedEmail:
    """
    A fetched candidate message.

    Holds the structural metadata the scanner needs (envelope, part tree and
    raw header block). The full raw message is only fetched when get_raw()
    is called.
    """

    def __init__(self, uid: str, envelope: dict, fetch_raw_func: Callable[[], Optional[bytes]],
                 part_tree: Optional[MimePartNode] = None, raw_headers: Optional[str] = None,
                 flags=None, internal_date=None):
        self.uid = uid
        self.envelope = envelope or {}
        self.part_tree = part_tree
        self.raw_headers = raw_headers
        self.flags = set(flags or ())
        self._internal_date = internal_date
        self._fetch_raw = fetch_raw_func
        self._raw = None
        self._raw_fetched = False
        self._message = None

    def get_raw(self) -> Optional[bytes]:
        """Fetch the full raw message (cached after the first call)"""
        if not self._raw_fetched:
            self._raw = self._fetch_raw()
            self._raw_fetched = True
        return self._raw

    def message(self) -> email.message.Message:
        """The raw message parsed with the standard email package"""
        if self._message is None:
            self._message = email.message_from_bytes(self.get_raw() or b"")
        return self._message

    def header(self, name: str) -> Optional[str]:
        """Decoded value of a header, or None when it is absent"""
        if self.raw_headers is not None:
            source = email.message_from_string(self.raw_headers)
        else:
            source = self.message()
        values = source.get_all(name)
        if not values:
            return None
        return ", ".join(decode_header_value(v) for v in values)

    def get_body_text(self) -> str:
        """Concatenated text/plain parts of the message"""
        parts = []
        for part in self.message().walk():
            if part.get_content_type() != "text/plain":
                continue
            payload = part.get_payload(decode=True)
            if payload:
                charset = part.get_content_charset() or "utf-8"
                try:
                    parts.append(payload.decode(charset, errors="replace"))
                except LookupError:
                    parts.append(payload.decode("utf-8", errors="replace"))
        return "\n\n".join(parts)

    def sent_date(self):
        """Date header as a date object, or None when missing or unreadable"""
        value = self.header("Date")
        if not value:
            return None
        try:
            return parsedate_to_datetime(value).date()
        except (TypeError, ValueError, IndexError):
            return None

    def internal_date(self):
        """Arrival date, falling back to the Date header"""
        if self._internal_date is not None:
            return self._internal_date
        return self.sent_date()

    def __repr__(self):
        return f"<ParsedEmail uid={self.uid} subject={self.envelope.get('subject', '')!r}>"


def decode_header_value(value) -> str:
    """Decode RFC 2047 encoded words into a plain string"""
    if value is None:
        return ""
    try:
        return str(make_header(decode_header(str(value))))
    except (LookupError, UnicodeDecodeError, ValueError):
        return str(value)


def format_envelope_date(value) -> Optional[str]:
    """Render a Date header as an ISO 8601 UTC timestamp when it parses"""
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(str(value))
    except (TypeError, ValueError, IndexError):
        return str(value).strip()
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    parsed = parsed.astimezone(timezone.utc)
    return parsed.strftime("%Y-%m-%dT%H:%M:%S.") + f"{parsed.microsecond // 1000:03d}Z"


def _header_text(value) -> Optional[str]:
    return str(value).strip() if value is not None else None


def parse_envelope(raw: bytes) -> dict:
    """Parse the envelope fields the scanner reports from raw headers"""
    msg = email.message_from_bytes(raw, policy=default)
    senders = []
    for name, address in getaddresses([str(v) for v in msg.get_all("From", [])]):
        if address or name:
            senders.append(address or name)
    return {
        "subject": _header_text(msg.get("Subject")),
        "date": format_envelope_date(msg.get("Date")),
        "from": senders,
        "message_id": _header_text(msg.get("Message-ID")),
    }


def split_raw_headers(raw: bytes) -> str:
    """Return the header block of a raw message, terminating blank line included"""
    text = raw.decode("utf-8", errors="replace")
    match = re.search(r"\r?\n\r?\n", text)
    if match is None:
        return text
    return text[:match.end()]


def part_tree_from_message(message: email.message.Message) -> MimePartNode:
    """
    Build a MimePartNode tree from a parsed message.

    Part labels follow IMAP section numbering: the root is unlabelled and
    the children of a multipart are numbered 1, 2, ... with nested parts
    joined by dots. A multipart body inside a message/rfc822 part shares
    that part's number, a single-part body is numbered ``<part>.1``.
    Built with an explicit work list so deeply nested messages don't
    exhaust the stack.
    """
    root = _node_for(message, ())
    pending = [(message, root, ())]

    while pending:
        current, node, path = pending.pop()
        if not current.is_multipart():
            continue
        is_rfc822 = current.get_content_type() == "message/rfc822"
        for index, child in enumerate(current.get_payload(), 1):
            if not isinstance(child, email.message.Message):
                continue
            if is_rfc822 and child.is_multipart():
                child_path = path
            else:
                child_path = path + (index,)
            child_node = _node_for(child, child_path)
            node.child_nodes.append(child_node)
            pending.append((child, child_node, child_path))

    return root


def _node_for(message: email.message.Message, path: tuple) -> MimePartNode:
    encoding = message.get("Content-Transfer-Encoding")
    return MimePartNode(
        type=message.get_content_type(),
        part=".".join(str(p) for p in path) or None,
        disposition=message.get_content_disposition(),
        encoding=str(encoding) if encoding is not None else None,
    )


def parse_raw_message(uid: str, raw: bytes, flags=None, internal_date=None) -> ParsedEmail:
    """Build a ParsedEmail from a locally held raw message"""
    message = email.message_from_bytes(raw)
    parsed = ParsedEmail(
        uid,
        parse_envelope(raw),
        lambda: raw,
        part_tree=part_tree_from_message(message),
        raw_headers=split_raw_headers(raw),
        flags=flags,
        internal_date=internal_date,
    )
    parsed._message = message
    return parsed


def unfold_headers(raw_headers: str) -> str:
    """Join folded header continuation lines onto their header line"""
    return re.sub(r"\r?\n[ \t]+", " ", raw_headers)


MESSAGE_ID_RE = re.compile(r"^Message-ID:\s*(.+)$", re.IGNORECASE | re.MULTILINE)


def extract_message_id(envelope: Optional[dict], raw_headers: Optional[str]) -> Optional[str]:
    """
    Recover a message's Message-ID.

    The envelope value wins when present; otherwise the raw header block
    is unfolded and searched. Returns None when neither has one.
    """
    if envelope and envelope.get("message_id"):
        return envelope["message_id"]

    if not raw_headers:
        return None

    match = MESSAGE_ID_RE.search(unfold_headers(raw_headers))
    if match is None:
        return None
    return match.group(1).strip() or None
