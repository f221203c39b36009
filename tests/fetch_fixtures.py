"""Canned imaplib FETCH responses shared by the IMAP tests"""

RAW_HEADERS = (
    b"From: Billing <billing@shop.example>\r\n"
    b"Subject: Invoice\r\n"
    b"Message-ID: <inv@shop.example>\r\n"
    b"MIME-Version: 1.0\r\n"
    b"Content-Type: multipart/mixed; boundary=b1\r\n"
    b"\r\n"
)

RAW_MESSAGE = RAW_HEADERS + (
    b"--b1\r\n"
    b"Content-Type: text/plain\r\n"
    b"Content-Transfer-Encoding: 8bit + AMAZONSES\r\n"
    b"\r\n"
    b"Invoice attached\r\n"
    b"--b1--\r\n"
)

ENVELOPE = (
    b'ENVELOPE ("Mon, 17 Jul 2023 09:44:25 +0000" "Invoice" '
    b'(("Billing" NIL "billing" "shop.example")) NIL NIL NIL NIL NIL NIL "<inv@shop.example>")'
)

BODYSTRUCTURE = (
    b'BODYSTRUCTURE ('
    b'("text" "plain" ("charset" "utf-8") NIL NIL "8bit + AMAZONSES" 16 1 NIL NIL NIL NIL)'
    b'("application" "pdf" ("name" "invoice.pdf") NIL NIL "base64" 12 NIL '
    b'("attachment" ("filename" "invoice.pdf")) NIL NIL)'
    b' "mixed" ("boundary" "b1") NIL NIL NIL)'
)


def metadata_response(uid: int = 42, seq: int = 1):
    """FETCH data for the metadata query, the header block sent as a literal"""
    meta = (
        str(seq).encode() + b" (UID " + str(uid).encode()
        + b' FLAGS (\\Seen) INTERNALDATE "17-Jul-2023 09:44:25 +0000" '
        + ENVELOPE + b" " + BODYSTRUCTURE
        + b" BODY[HEADER] {" + str(len(RAW_HEADERS)).encode() + b"}"
    )
    return [(meta, RAW_HEADERS), b")"]


def source_response(uid: int = 42, seq: int = 1):
    """FETCH data for the full message source"""
    meta = (str(seq).encode() + b" (UID " + str(uid).encode()
            + b" BODY[] {" + str(len(RAW_MESSAGE)).encode() + b"}")
    return [(meta, RAW_MESSAGE), b")"]
