from typing import Dict, List, Optional, Tuple

from .parsed_email import ParsedEmail, parse_raw_message
from .predicates import message_matches


def _stub(body_headers: str) -> bytes:
    return body_headers.replace("\n", "\r\n").encode()


class DummyClient:
    """
    In-memory client for testing and examples.

    Implements the same search/fetch interface as RealImapClient over a set
    of stub messages. Search predicates are evaluated locally.
    """

    def __init__(self, credentials=None, messages: Dict[str, Tuple[bytes, set]] = None,
                 verbose: bool = True):
        """
        Args:
            credentials: Ignored, accepted for interface compatibility
            messages: Optional mapping of uid -> (raw message bytes, flags).
                Defaults to a small built-in stub mailbox.
            verbose: Whether to print what the client is doing
        """
        self.credentials = credentials
        self.verbose = verbose
        self.connected = False
        self.selected_mailbox: Optional[str] = None
        self.fetch_count = 0
        self.raw_fetch_count = 0
        self._stub_data = dict(messages) if messages is not None else dict(DEFAULT_STUB_DATA)

    def connect(self) -> None:
        self.connected = True

    def disconnect(self) -> None:
        self.connected = False
        self.selected_mailbox = None

    def select_mailbox(self, mailbox: str = "INBOX", readonly: bool = True) -> None:
        if not self.connected:
            self.connect()
        self.selected_mailbox = mailbox

    def search(self, predicate: dict) -> List[str]:
        """UIDs of the stub messages matching the predicate, in mailbox order"""
        if not self.connected:
            self.connect()
        return [
            uid for uid in self._stub_data
            if message_matches(predicate, self._parse(uid))
        ]

    def fetch_message(self, uid: str) -> Optional[ParsedEmail]:
        """Envelope, part tree and headers for a uid; None if it doesn't exist"""
        self.fetch_count += 1
        if uid not in self._stub_data:
            return None
        parsed = self._parse(uid)
        parsed._fetch_raw = lambda: self._fetch_raw(uid)
        parsed._raw_fetched = False
        return parsed

    def _fetch_raw(self, uid: str) -> Optional[bytes]:
        self.raw_fetch_count += 1
        entry = self._stub_data.get(uid)
        return entry[0] if entry else None

    def _parse(self, uid: str) -> ParsedEmail:
        raw, flags = self._stub_data[uid]
        return parse_raw_message(uid, raw, flags=flags)

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()


DEFAULT_STUB_DATA = {
    "1": (_stub(
        "From: john@example.com\n"
        "Subject: Hello\n"
        "Date: Sun, 25 Jun 2023 10:00:00 +0000\n"
        "Message-ID: <1@test>\n"
        "Content-Type: text/plain\n"
        "Content-Transfer-Encoding: 7bit\n"
        "\n"
        "This is the first message\n"
    ), {"\\Seen"}),
    "2": (_stub(
        "From: billing@shop.example\n"
        "Subject: Your invoice\n"
        "Date: Mon, 26 Jun 2023 10:00:00 +0000\n"
        "Message-ID: <2@test>\n"
        "MIME-Version: 1.0\n"
        "Content-Type: multipart/mixed; boundary=\"b1\"\n"
        "\n"
        "--b1\n"
        "Content-Type: text/plain\n"
        "Content-Transfer-Encoding: 8bit + AMAZONSES\n"
        "\n"
        "Invoice attached\n"
        "--b1\n"
        "Content-Type: application/pdf\n"
        "Content-Disposition: attachment; filename=\"invoice.pdf\"\n"
        "Content-Transfer-Encoding: base64\n"
        "\n"
        "JVBERi0xLjQK\n"
        "--b1--\n"
    ), set()),
    "3": (_stub(
        "From: jane@example.com\n"
        "Subject: Meeting\n"
        "Date: Tue, 27 Jun 2023 10:00:00 +0000\n"
        "Message-ID: <3@test>\n"
        "Content-Type: text/plain\n"
        "Content-Transfer-Encoding: quoted-printable\n"
        "\n"
        "Meeting tomorrow at 2pm\n"
    ), set()),
    "4": (_stub(
        "From: news@mailer.example\n"
        "Subject: Newsletter\n"
        "Date: Wed, 28 Jun 2023 10:00:00 +0000\n"
        "Message-ID:\n"
        " <4@test>\n"
        "Content-Type: text/html\n"
        "Content-Transfer-Encoding: AMAZONSES\"\n"
        "\n"
        "<p>Weekly news</p>\n"
    ), {"\\Flagged"}),
}


# Common IMAP server configurations
IMAP_SERVERS = {
    "gmail": {
        "host": "imap.gmail.com",
        "port": 993,
        "use_ssl": True
    },
    "outlook": {
        "host": "outlook.office365.com",
        "port": 993,
        "use_ssl": True
    },
    "yahoo": {
        "host": "imap.mail.yahoo.com",
        "port": 993,
        "use_ssl": True
    },
    "icloud": {
        "host": "imap.mail.me.com",
        "port": 993,
        "use_ssl": True
    }
}
