import imaplib
import ssl
from typing import Dict, List, Optional

from .bodystructure import (
    bodystructure_to_tree,
    envelope_from_imap,
    parse_fetch_response,
    parse_internal_date,
)
from .errors import MalformedCriteria
from .parsed_email import ParsedEmail
from .predicates import IMAP_STRING_KEYS, quote_imap_string, to_imap_criteria


# Structural metadata only; the full message is fetched separately on demand
METADATA_QUERY = "(UID FLAGS INTERNALDATE ENVELOPE BODYSTRUCTURE BODY.PEEK[HEADER])"
SOURCE_QUERY = "(UID BODY.PEEK[])"


def validate_credentials(credentials: Dict) -> Dict:
    """
    Check an IMAP credentials dict and fill in defaults.

    Raises:
        ValueError: if host, username or password are missing or the port
            is not a positive number
    """
    host = (credentials.get('host') or '').strip()
    username = credentials.get('username') or credentials.get('user') or ''
    password = credentials.get('password') or ''

    if not host or not username or not password:
        raise ValueError("IMAP credentials must include host, username, and password.")

    port = credentials.get('port', 993)
    try:
        port = int(port)
    except (TypeError, ValueError):
        port = 0
    if port <= 0:
        raise ValueError("IMAP credential port must be a positive number.")

    return {
        'host': host,
        'port': port,
        'username': username,
        'password': password,
        'use_ssl': credentials.get('use_ssl', True) is not False,
        'allow_unauthorized_certs': credentials.get('allow_unauthorized_certs', False) is True,
    }


class RealImapClient:
    """Real IMAP client that connects to actual email servers"""

    def __init__(self, credentials: Dict[str, str], verbose: bool = True):
        """
        Initialize with credentials

        Args:
            credentials: Dict with keys:
                - 'host': IMAP server hostname (e.g., 'imap.gmail.com')
                - 'port': IMAP port (usually 993 for SSL)
                - 'username': Email username
                - 'password': Email password or app password
                - 'use_ssl': Boolean, default True
                - 'allow_unauthorized_certs': Skip certificate checks, default False
            verbose: Whether to print what the client is doing
        """
        self.credentials = validate_credentials(credentials)
        self.verbose = verbose
        self.connection: Optional[imaplib.IMAP4] = None
        self.connected = False
        self.utf8_enabled = False

    def connect(self) -> None:
        """Establish connection to IMAP server"""
        host = self.credentials['host']
        port = self.credentials['port']
        try:
            if self.credentials['use_ssl']:
                context = ssl.create_default_context()
                if self.credentials['allow_unauthorized_certs']:
                    context.check_hostname = False
                    context.verify_mode = ssl.CERT_NONE
                self.connection = imaplib.IMAP4_SSL(host, port, ssl_context=context)
            else:
                self.connection = imaplib.IMAP4(host, port)

            self.connection.login(self.credentials['username'], self.credentials['password'])
            self.connected = True
            self.utf8_enabled = self._enable_utf8()

        except (imaplib.IMAP4.error, OSError) as e:
            raise ConnectionError(f"Failed to connect to IMAP server: {e}") from e

    def disconnect(self) -> None:
        """Log out and close the IMAP connection"""
        connection = self.connection
        self.connection = None
        if connection is None:
            return
        if self.connected:
            self.connected = False
            connection.logout()
        else:
            connection.shutdown()

    def select_mailbox(self, mailbox: str = "INBOX", readonly: bool = True) -> None:
        """Select a mailbox to work with (read-only by default)"""
        if not self.connected:
            self.connect()

        status, messages = self.connection.select(quote_imap_string(mailbox), readonly=readonly)
        if status != 'OK':
            raise RuntimeError(f"Failed to select mailbox '{mailbox}': {status}")

    def search(self, predicate: dict) -> List[str]:
        """Run UID SEARCH for a predicate dict, returning UIDs in server order"""
        if not self.connected:
            self.connect()

        criteria = self._search_criteria(predicate)
        if self.verbose:
            print(f"UID SEARCH {' '.join(criteria)}")

        status, uid_data = self.connection.uid('search', None, *criteria)
        if status != 'OK':
            raise RuntimeError(f"Failed to search mailbox: {status}")

        if not uid_data or not uid_data[0]:
            return []
        return [uid.decode() for uid in uid_data[0].split()]

    def _search_criteria(self, predicate: dict) -> List[str]:
        """
        UID SEARCH arguments for a predicate.

        Non-ASCII values go out as UTF-8 quoted strings when the server
        accepted UTF8=ACCEPT. Otherwise the search is sent with
        CHARSET UTF-8 and the non-ASCII value as a literal.

        Raises:
            MalformedCriteria: if more than one value is non-ASCII and the
                server lacks UTF8=ACCEPT
        """
        criteria = to_imap_criteria(predicate)
        if self.utf8_enabled or all(arg.isascii() for arg in criteria):
            return criteria

        # imaplib sends at most one literal, after the last argument
        wide = [key for key, value in predicate.items()
                if key in IMAP_STRING_KEYS and not str(value).isascii()]
        rest = to_imap_criteria({k: v for k, v in predicate.items() if k not in wide})
        if len(wide) != 1 or not all(arg.isascii() for arg in rest):
            raise MalformedCriteria(
                "Only one non-ASCII FROM, TO, CC, BCC, SUBJECT, BODY or TEXT value "
                "can be searched on servers without UTF8=ACCEPT.", predicate)

        key = wide[0]
        self.connection.literal = str(predicate[key]).encode('utf-8')
        return ['CHARSET', 'UTF-8'] + rest + [IMAP_STRING_KEYS[key]]

    def _enable_utf8(self) -> bool:
        """Enable UTF8=ACCEPT (RFC 6855) when the server advertises it"""
        try:
            status, data = self.connection.capability()
            if status != 'OK' or not data or not data[0]:
                return False
            capabilities = data[0].decode('ascii', errors='ignore').upper().split()
            if 'ENABLE' not in capabilities or 'UTF8=ACCEPT' not in capabilities:
                return False
            status, _ = self.connection.enable('UTF8=ACCEPT')
        except imaplib.IMAP4.error:
            return False
        return status == 'OK'

    def fetch_message(self, uid: str) -> Optional[ParsedEmail]:
        """
        Fetch structural metadata for one UID.

        Returns None when the server has no such message. The raw message
        is only downloaded if ParsedEmail.get_raw() is called.
        """
        if not self.connected:
            self.connect()

        status, data = self.connection.uid('fetch', str(uid), METADATA_QUERY)
        if status != 'OK':
            raise RuntimeError(f"Failed to fetch message {uid}: {status}")

        attributes = self._find_response(parse_fetch_response(data), uid)
        if attributes is None:
            return None

        raw_headers = attributes.get('BODY[HEADER]') or attributes.get('RFC822.HEADER')
        internal = parse_internal_date(attributes.get('INTERNALDATE'))

        def make_raw_fetcher(uid_copy=str(uid)):
            return lambda: self._fetch_full_message(uid_copy)

        return ParsedEmail(
            str(attributes.get('UID', uid)),
            envelope_from_imap(attributes.get('ENVELOPE')),
            make_raw_fetcher(),
            part_tree=bodystructure_to_tree(attributes.get('BODYSTRUCTURE')),
            raw_headers=raw_headers,
            flags=attributes.get('FLAGS') or (),
            internal_date=internal.date() if internal else None,
        )

    @staticmethod
    def _find_response(responses: List[dict], uid) -> Optional[dict]:
        # Servers may interleave unsolicited FETCH responses (e.g. flag updates)
        for attributes in responses:
            if str(attributes.get('UID')) == str(uid):
                return attributes
        return None

    def _fetch_full_message(self, uid: str) -> Optional[bytes]:
        """Fetch the full raw message for a given UID, None if unavailable"""
        if not self.connected:
            self.connect()

        status, data = self.connection.uid('fetch', uid, SOURCE_QUERY)
        if status != 'OK' or not data:
            return None

        for item in data:
            if isinstance(item, tuple) and len(item) == 2 and item[1]:
                return item[1]
        return None

    def __enter__(self):
        """Context manager entry"""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit"""
        self.disconnect()
