from datetime import date

import pytest

from fetch_fixtures import RAW_HEADERS, metadata_response
from mailscan import compile_pattern, find_encoding_anomalies
from mailscan.bodystructure import (
    FetchParseError,
    bodystructure_to_tree,
    envelope_from_imap,
    join_fetch_data,
    parse_fetch_response,
    parse_internal_date,
)


class TestFetchResponse:
    """Reading imaplib FETCH data"""

    def test_join_literals(self):
        data = [(b"1 (UID 5 BODY[] {3}", b"abc"), b")"]
        assert join_fetch_data(data) == b"1 (UID 5 BODY[] {3}\r\nabc)"

    def test_attributes(self):
        (response,) = parse_fetch_response(metadata_response())

        assert response["SEQ"] == "1"
        assert response["UID"] == "42"
        assert response["FLAGS"] == ["\\Seen"]
        assert response["INTERNALDATE"] == "17-Jul-2023 09:44:25 +0000"
        assert response["BODY[HEADER]"] == RAW_HEADERS.decode()

    def test_fetch_keyword_is_tolerated(self):
        (response,) = parse_fetch_response([b"3 FETCH (UID 9 FLAGS ())"])
        assert response["SEQ"] == "3"
        assert response["UID"] == "9"
        assert response["FLAGS"] == []

    def test_multiple_responses(self):
        data = [b"7 (FLAGS (\\Seen))"] + metadata_response(uid=42, seq=8)
        responses = parse_fetch_response(data)

        assert [r["SEQ"] for r in responses] == ["7", "8"]
        assert "UID" not in responses[0]
        assert responses[1]["UID"] == "42"

    def test_quoted_escapes(self):
        (response,) = parse_fetch_response([
            b'1 (UID 5 ENVELOPE (NIL "say \\"hi\\" \\\\o/" NIL NIL NIL NIL NIL NIL NIL NIL))'
        ])
        assert response["ENVELOPE"][1] == 'say "hi" \\o/'

    def test_literal_inside_envelope(self):
        data = [(b"1 (UID 5 ENVELOPE (NIL {5}", b"Hello"), b" NIL NIL NIL NIL NIL NIL NIL NIL))"]
        (response,) = parse_fetch_response(data)
        assert envelope_from_imap(response["ENVELOPE"])["subject"] == "Hello"

    def test_unterminated_list(self):
        with pytest.raises(FetchParseError):
            parse_fetch_response([b"1 (UID 5 FLAGS (\\Seen)"])

    def test_empty(self):
        assert parse_fetch_response([None]) == []
        assert parse_fetch_response([]) == []


class TestEnvelope:
    """ENVELOPE lists to envelope dicts"""

    def test_envelope(self):
        (response,) = parse_fetch_response(metadata_response())
        envelope = envelope_from_imap(response["ENVELOPE"])

        assert envelope == {
            "subject": "Invoice",
            "date": "2023-07-17T09:44:25.000Z",
            "from": ["billing@shop.example"],
            "message_id": "<inv@shop.example>",
        }

    def test_encoded_subject_and_group_names(self):
        envelope = envelope_from_imap([
            "Tue, 18 Jul 2023 12:00:00 +0200",
            "=?utf-8?q?Caf=C3=A9?=",
            [["Undisclosed", None, None, None]],
            None, None, None, None, None, None, None,
        ])
        assert envelope["subject"] == "Café"
        assert envelope["date"] == "2023-07-18T10:00:00.000Z"
        assert envelope["from"] == ["Undisclosed"]
        assert envelope["message_id"] is None

    def test_unreadable_date_kept_verbatim(self):
        envelope = envelope_from_imap(["someday", None, None, None, None, None, None, None, None, None])
        assert envelope["date"] == "someday"
        assert envelope["subject"] is None

    def test_short_envelope(self):
        assert envelope_from_imap(["only", "two"]) == {}
        assert envelope_from_imap(None) == {}

    def test_internal_date(self):
        parsed = parse_internal_date("17-Jul-2023 09:44:25 -0700")
        assert parsed.date() == date(2023, 7, 17)
        assert parse_internal_date("yesterday") is None
        assert parse_internal_date(None) is None


class TestBodyStructure:
    """BODYSTRUCTURE lists to MimePartNode trees"""

    def setup_method(self):
        self.regex = compile_pattern(r'(?:AMAZONSES"?|8bit\s*\+)')

    def test_multipart(self):
        (response,) = parse_fetch_response(metadata_response())
        root = bodystructure_to_tree(response["BODYSTRUCTURE"])

        assert (root.type, root.part, root.encoding) == ("multipart/mixed", None, None)
        text, pdf = root.child_nodes
        assert (text.type, text.part, text.encoding, text.disposition) == \
            ("text/plain", "1", "8bit + AMAZONSES", None)
        assert (pdf.type, pdf.part, pdf.encoding, pdf.disposition) == \
            ("application/pdf", "2", "base64", "attachment")
        assert find_encoding_anomalies(root, None, self.regex) == ["text/plain part 1: 8bit + AMAZONSES"]

    def test_single_part(self):
        root = bodystructure_to_tree(["TEXT", "HTML", ["charset", "utf-8"], None, None, 'AMAZONSES"', "120", "4"])

        assert (root.type, root.part, root.encoding) == ("text/html", None, 'AMAZONSES"')
        assert root.child_nodes == []
        assert find_encoding_anomalies(root, None, self.regex) == ['text/html: AMAZONSES"']

    def test_nested_message(self):
        nested = ["text", "plain", ["charset", "us-ascii"], None, None, "8bit +", "10", "1"]
        forwarded = ["message", "rfc822", None, None, None, "7bit", "300",
                     [None] * 10, nested, "12"]
        plain = ["text", "plain", None, None, None, "7bit", "20", "2"]
        root = bodystructure_to_tree([plain, forwarded, "mixed"])

        message = root.child_nodes[1]
        assert (message.type, message.part) == ("message/rfc822", "2")
        assert message.child_nodes[0].part == "2.1"
        assert find_encoding_anomalies(root, None, self.regex) == ["text/plain part 2.1: 8bit +"]

    def test_nested_multipart_message(self):
        inner = [
            ["text", "plain", None, None, None, "7bit", "1", "1"],
            ["text", "html", None, None, None, "8bit +", "1", "1"],
            "alternative",
        ]
        forwarded = ["message", "rfc822", None, None, None, "7bit", "300", [None] * 10, inner, "12"]
        root = bodystructure_to_tree([["text", "plain", None, None, None, "7bit", "1", "1"], forwarded, "mixed"])

        alternative = root.child_nodes[1].child_nodes[0]
        assert alternative.type == "multipart/alternative"
        assert [child.part for child in alternative.child_nodes] == ["2.1", "2.2"]

    def test_missing_structure(self):
        assert bodystructure_to_tree(None) is None
        assert bodystructure_to_tree([]) is None
