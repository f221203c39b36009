#!/usr/bin/env python3
"""
Example: Scanning a mailbox for suspicious transfer encodings
"""

import os

from mailscan import DummyClient, EncodingScanner, IMAP_SERVERS, RealImapClient, ScanOptions
from mailscan.report import render_summary


def main():
    # Use a real server when credentials are in the environment,
    # otherwise scan the built-in stub mailbox
    username = os.environ.get("IMAP_USERNAME")
    password = os.environ.get("IMAP_PASSWORD")
    if username and password:
        credentials = dict(IMAP_SERVERS["gmail"], username=username, password=password)
        client = RealImapClient(credentials)
        mailbox = "[Gmail]/All Mail"
    else:
        client = DummyClient()
        mailbox = "INBOX"

    # --- Example 1: First suspicious unread message ---
    print("🔍 First suspicious unread message:")
    summary = EncodingScanner(client).scan(mailbox, '["UNSEEN"]')
    render_summary(summary)

    # --- Example 2: Every suspicious message, with raw headers ---
    print("\n📋 All suspicious messages:")
    options = ScanOptions(stop_after_first=False, include_raw_headers=True, progress_every=50)
    summary = EncodingScanner(client, options).scan(mailbox, [])
    render_summary(summary)


if __name__ == "__main__":
    main()
