"""
Shared test fixtures and configuration for pytest
"""
import os
import re
import tempfile
from email.message import EmailMessage
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# main.py loads the accounts file at import time; keep it away from the repo
os.environ.setdefault(
    "ACCOUNTS_FILE", str(Path(tempfile.mkdtemp(prefix="webmail-test-")) / "accounts.json")
)

import schemas  # noqa: E402
from account_store import AccountStore  # noqa: E402
from mail_session import MailSession  # noqa: E402


@pytest.fixture
def account():
    """Sample account record"""
    return schemas.MailAccount(
        username="a@x.com",
        password="p",
        imap_server="imap.x.com",
        imap_port=993,
        smtp_server="smtp.x.com",
        smtp_port=587,
    )


@pytest.fixture
def accounts_file(tmp_path):
    return tmp_path / "accounts.json"


@pytest.fixture
def session(accounts_file):
    return MailSession(AccountStore(), accounts_file)


def make_raw_message(seq, subject=None, sender=None, date="Tue, 01 Oct 2024 10:30:00 +0000", body=None):
    msg = EmailMessage()
    msg["Subject"] = subject if subject is not None else f"Message {seq}"
    msg["From"] = sender if sender is not None else f"Sender {seq} <sender{seq}@example.com>"
    msg["To"] = "a@x.com"
    if date:
        msg["Date"] = date
    msg.set_content(body if body is not None else f"Body of message {seq}")
    return msg.as_bytes()


def split_raw_message(raw):
    """Split a raw message into (header block, body text)."""
    for separator in (b"\r\n\r\n", b"\n\n"):
        if separator in raw:
            header, text = raw.split(separator, 1)
            return header + separator, text
    return raw, b""


def fetch_response(seq, raw, text_bytes, text_first=False):
    """imaplib output for one message fetched as header fields + partial text."""
    header, text = split_raw_message(raw)
    text = text[:text_bytes]
    header_item = f"BODY[HEADER.FIELDS (SUBJECT FROM DATE CONTENT-TYPE CONTENT-TRANSFER-ENCODING)] {{{len(header)}}}"
    text_item = f"BODY[TEXT]<0> {{{len(text)}}}"
    items = [(header_item, header), (text_item, text)]
    if text_first:
        items.reverse()
    return [
        (f"{seq} ({items[0][0]}".encode(), items[0][1]),
        (f" {items[1][0]}".encode(), items[1][1]),
        b")",
    ]


def make_imap(message_count, select_status="OK", reverse=False, messages=None):
    """
    Fake IMAP4_SSL connection holding `message_count` messages numbered
    1..message_count. FETCH answers in imaplib's response shape and honours
    the <0.N> partial on BODY.PEEK[TEXT].
    """
    messages = messages or {}
    imap = MagicMock()
    imap.login.return_value = ("OK", [b"Logged in"])
    imap.select.return_value = (select_status, [str(message_count).encode()])

    def fetch(message_set, message_parts):
        first, last = (int(n) for n in message_set.split(":"))
        text_bytes = int(re.search(r"BODY\.PEEK\[TEXT\]<0\.(\d+)>", message_parts).group(1))
        seqs = list(range(first, last + 1))
        if reverse:
            seqs.reverse()
        data = []
        for seq in seqs:
            raw = messages.get(seq) or make_raw_message(seq)
            data.extend(fetch_response(seq, raw, text_bytes))
        return "OK", data

    imap.fetch.side_effect = fetch
    return imap
