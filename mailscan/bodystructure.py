"""
Parsing of IMAP FETCH responses as returned by imaplib.

imaplib hands FETCH data back as a list mixing plain bytes and
``(meta, literal)`` tuples. The pieces are stitched back into wire format
and read with a small s-expression reader, then ENVELOPE and BODYSTRUCTURE
are turned into the envelope dict and MimePartNode tree used everywhere
else in mailscan.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from .parsed_email import MimePartNode, decode_header_value, format_envelope_date


class FetchParseError(ValueError):
    """A FETCH response could not be read"""


def join_fetch_data(data) -> bytes:
    """Rebuild the raw response text from imaplib's FETCH data list"""
    chunks = []
    for item in data or []:
        if isinstance(item, tuple):
            meta, literal = item
            chunks.append(meta)
            chunks.append(b"\r\n")
            chunks.append(literal or b"")
        elif isinstance(item, bytes):
            chunks.append(item)
    return b"".join(chunks)


class _Reader:
    """Reads IMAP atoms, strings, literals and parenthesised lists"""

    DELIMITERS = b" ()\r\n"

    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    def skip_space(self):
        while self.pos < len(self.data) and self.data[self.pos:self.pos + 1] in (b" ", b"\r", b"\n"):
            self.pos += 1

    def at_end(self) -> bool:
        self.skip_space()
        return self.pos >= len(self.data)

    def read_value(self):
        self.skip_space()
        if self.pos >= len(self.data):
            raise FetchParseError("Unexpected end of FETCH response")

        char = self.data[self.pos:self.pos + 1]
        if char == b"(":
            return self.read_list()
        if char == b'"':
            return self.read_quoted()
        if char == b"{":
            return self.read_literal()
        if char == b")":
            raise FetchParseError(f"Unexpected ')' at offset {self.pos}")

        atom = self.read_atom()
        return None if atom.upper() == "NIL" else atom

    def read_list(self) -> list:
        self.pos += 1  # (
        items = []
        while True:
            self.skip_space()
            if self.pos >= len(self.data):
                raise FetchParseError("Unterminated list in FETCH response")
            if self.data[self.pos:self.pos + 1] == b")":
                self.pos += 1
                return items
            items.append(self.read_value())

    def read_quoted(self) -> str:
        self.pos += 1  # opening quote
        out = bytearray()
        while self.pos < len(self.data):
            char = self.data[self.pos:self.pos + 1]
            if char == b"\\":
                out += self.data[self.pos + 1:self.pos + 2]
                self.pos += 2
                continue
            self.pos += 1
            if char == b'"':
                return out.decode("utf-8", errors="replace")
            out += char
        raise FetchParseError("Unterminated quoted string in FETCH response")

    def read_literal(self) -> str:
        end = self.data.index(b"}", self.pos)
        try:
            size = int(self.data[self.pos + 1:end])
        except ValueError as e:
            raise FetchParseError(f"Bad literal size at offset {self.pos}") from e
        self.pos = end + 1
        if self.data[self.pos:self.pos + 2] == b"\r\n":
            self.pos += 2
        value = self.data[self.pos:self.pos + size]
        self.pos += size
        return value.decode("utf-8", errors="replace")

    def read_atom(self) -> str:
        start = self.pos
        depth = 0
        while self.pos < len(self.data):
            char = self.data[self.pos:self.pos + 1]
            if char == b"[":
                depth += 1
            elif char == b"]":
                depth -= 1
            elif depth == 0 and char in (b" ", b"(", b")", b"\r", b"\n"):
                break
            self.pos += 1
        return self.data[start:self.pos].decode("utf-8", errors="replace")


def parse_fetch_response(data) -> List[Dict[str, Any]]:
    """
    Parse imaplib FETCH data into one dict per message.

    Keys are the upper-cased attribute names (``UID``, ``ENVELOPE``,
    ``BODYSTRUCTURE``, ``BODY[HEADER]`` ...) plus ``SEQ`` for the sequence
    number.
    """
    reader = _Reader(join_fetch_data(data))
    responses = []

    while not reader.at_end():
        seq = reader.read_atom()
        reader.skip_space()
        if reader.data[reader.pos:reader.pos + 5].upper() == b"FETCH":
            reader.read_atom()
        items = reader.read_value()
        if not isinstance(items, list):
            raise FetchParseError(f"Expected attribute list after {seq!r}")

        attributes = {"SEQ": seq}
        for index in range(0, len(items) - 1, 2):
            attributes[str(items[index]).upper()] = items[index + 1]
        responses.append(attributes)

    return responses


def _disposition(value) -> Optional[str]:
    if isinstance(value, list) and value and value[0]:
        return str(value[0]).lower()
    return None


def _node_from_bodystructure(body: list, path: tuple):
    """Build one node, returning it with the (body, path) pairs of its children"""
    label = ".".join(str(p) for p in path) or None

    if body and isinstance(body[0], list):
        children = []
        index = 0
        while index < len(body) and isinstance(body[index], list):
            children.append((body[index], path + (index + 1,)))
            index += 1
        subtype = body[index] if index < len(body) else "mixed"
        disposition = _disposition(body[index + 2]) if index + 2 < len(body) else None
        node = MimePartNode(
            type=f"multipart/{str(subtype).lower()}",
            part=label,
            disposition=disposition,
        )
        return node, children

    main_type = str(body[0] or "text").lower() if body else "text"
    subtype = str(body[1] or "plain").lower() if len(body) > 1 else "plain"
    encoding = body[5] if len(body) > 5 else None
    children = []

    if main_type == "message" and subtype == "rfc822" and len(body) > 8 and isinstance(body[8], list):
        nested = body[8]
        nested_is_multipart = bool(nested) and isinstance(nested[0], list)
        children.append((nested, path if nested_is_multipart else path + (1,)))
        extension = 10
    elif main_type == "text":
        extension = 8
    else:
        extension = 7

    disposition = _disposition(body[extension + 1]) if extension + 1 < len(body) else None
    node = MimePartNode(
        type=f"{main_type}/{subtype}",
        part=label,
        disposition=disposition,
        encoding=encoding,
    )
    return node, children


def bodystructure_to_tree(bodystructure) -> Optional[MimePartNode]:
    """Turn a parsed BODYSTRUCTURE list into a MimePartNode tree"""
    if not isinstance(bodystructure, list) or not bodystructure:
        return None

    root, children = _node_from_bodystructure(bodystructure, ())
    pending = [(root, children)]

    while pending:
        node, children = pending.pop()
        for body, path in children:
            if not isinstance(body, list) or not body:
                continue
            child, grandchildren = _node_from_bodystructure(body, path)
            node.child_nodes.append(child)
            pending.append((child, grandchildren))

    return root


def _addresses(value) -> List[str]:
    addresses = []
    if not isinstance(value, list):
        return addresses
    for entry in value:
        if not isinstance(entry, list) or len(entry) < 4:
            continue
        name, _, mailbox, host = entry[:4]
        if mailbox and host:
            addresses.append(f"{mailbox}@{host}")
        elif name:
            addresses.append(decode_header_value(name))
    return addresses


def envelope_from_imap(envelope) -> dict:
    """Turn a parsed ENVELOPE list into the envelope dict"""
    if not isinstance(envelope, list) or len(envelope) < 10:
        return {}
    subject = envelope[1]
    return {
        "subject": decode_header_value(subject) if subject else None,
        "date": format_envelope_date(envelope[0]),
        "from": _addresses(envelope[2]),
        "message_id": envelope[9] or None,
    }


def parse_internal_date(value) -> Optional[datetime]:
    """Parse an INTERNALDATE value such as ``17-Jul-1996 02:44:25 -0700``"""
    if not value:
        return None
    try:
        return datetime.strptime(str(value).strip(), "%d-%b-%Y %H:%M:%S %z")
    except ValueError:
        return None
