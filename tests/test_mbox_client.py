import os
import tempfile
import unittest

from mailscan import EncodingScanner, MboxClient, ScanOptions
from mailscan.mbox_client import split_mbox, status_flags


MBOX_CONTENT = b"""From a@example.com Mon Jun 26 10:00:00 2023
From: a@example.com
Subject: Read already
Date: Mon, 26 Jun 2023 10:00:00 +0000
Message-ID: <old@example.com>
Status: RO
Content-Type: text/plain
Content-Transfer-Encoding: 7bit

Hello
>From the archive

From b@example.com Tue Jun 27 10:00:00 2023
From: b@example.com
Subject: Fresh
Date: Tue, 27 Jun 2023 10:00:00 +0000
Message-ID: <new@example.com>
Content-Type: text/plain
Content-Transfer-Encoding: 8bit +

New mail
"""


class TestMboxClient(unittest.TestCase):
    def setUp(self):
        handle, self.path = tempfile.mkstemp(suffix=".mbox")
        with os.fdopen(handle, "wb") as f:
            f.write(MBOX_CONTENT)
        self.client = MboxClient(self.path, verbose=False)

    def tearDown(self):
        os.unlink(self.path)

    def test_missing_file(self):
        """A path that doesn't exist fails immediately"""
        with self.assertRaises(FileNotFoundError):
            MboxClient(self.path + ".missing")

    def test_messages_are_numbered_in_file_order(self):
        """UIDs are 1-based positions in the file"""
        self.assertEqual(self.client.search({"all": True}), ["1", "2"])
        self.assertEqual(self.client.fetch_message("2").envelope["subject"], "Fresh")
        self.assertIsNone(self.client.fetch_message("3"))

    def test_status_flags(self):
        """Status headers map onto seen/recent searches"""
        self.assertEqual(self.client.search({"seen": False}), ["2"])
        self.assertEqual(self.client.search({"new": True}), ["2"])
        self.assertEqual(self.client.search({"old": True}), ["1"])

    def test_from_quoting_is_undone(self):
        """>From lines in bodies come back as From"""
        raw = self.client.fetch_message("1").get_raw()
        self.assertIn(b"\nFrom the archive", raw)
        self.assertNotIn(b">From", raw)

    def test_scan(self):
        """The encoding scan works over an mbox file"""
        summary = EncodingScanner(self.client, ScanOptions(stop_after_first=False), verbose=False) \
            .scan("INBOX", "[]")

        self.assertEqual(summary.scanned, 2)
        record = summary.to_dict()["matchDetails"][0]
        self.assertEqual(record["imapUid"], "2")
        self.assertEqual(record["matchSources"], ["text/plain: 8bit +"])
        self.assertEqual(record["messageId"], "<new@example.com>")
        self.assertFalse(self.client.connected)


class TestSplitMbox(unittest.TestCase):
    def test_from_inside_body_needs_blank_line(self):
        """Only From lines after a blank line start a new message"""
        content = (
            b"From x Mon Jun 26 10:00:00 2023\n"
            b"Subject: one\n"
            b"\n"
            b"line\n"
            b"From here on it is still the body\n"
        )
        self.assertEqual(len(split_mbox(content)), 1)

    def test_empty(self):
        """An empty file holds no messages"""
        self.assertEqual(split_mbox(b""), [])

    def test_flags(self):
        """Status and X-Status letters become IMAP flags"""
        self.assertEqual(status_flags(b"Status: RO\nX-Status: AF\n\nbody"),
                         {"\\Seen", "\\Answered", "\\Flagged"})
        self.assertEqual(status_flags(b"Subject: new\n\nbody"), {"\\Recent"})
        self.assertEqual(status_flags(b"Status: O\n\nbody"), set())
