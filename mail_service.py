import email
import email.utils
import imaplib
import logging
import re
import smtplib
from contextlib import contextmanager
from email.header import decode_header, make_header
from email.message import EmailMessage
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup

import config as app_config
import schemas
from errors import (
    AccountNotSelected,
    AuthError,
    FetchProtocolError,
    FolderError,
    MailConnectionError,
    SendError,
)

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
IMPLICIT_TLS_PORT = 465
# Content-* fields let the partial body text be decoded
HEADER_FIELDS = "SUBJECT FROM DATE CONTENT-TYPE CONTENT-TRANSFER-ENCODING"
FETCH_PREFIX_PATTERN = re.compile(r"^\s*(\d+)\s+\(")


def decode_mime_words(value) -> str:
    if not value:
        return ""
    try:
        return str(make_header(decode_header(str(value))))
    except (LookupError, UnicodeDecodeError, ValueError):
        return str(value)


def format_date(raw_date) -> str:
    if not raw_date:
        return ""
    try:
        return email.utils.parsedate_to_datetime(str(raw_date)).strftime(DATE_FORMAT)
    except (TypeError, ValueError, IndexError):
        logger.debug(f"[MAIL] Unparseable date header: {raw_date!r}")
        return ""


def sender_display_name(raw_from) -> str:
    """Display name of the first From entry, or "" when there is none."""
    if not raw_from:
        return ""
    # Split addresses before decoding, an encoded name may contain commas
    addresses = [
        (name, addr)
        for name, addr in email.utils.getaddresses([str(raw_from)])
        if name or addr
    ]
    if not addresses:
        return ""
    return decode_mime_words(addresses[0][0])


def _decode_payload(part) -> str:
    payload = part.get_payload(decode=True)
    if not payload:
        return ""
    charset = part.get_content_charset() or "utf-8"
    try:
        return payload.decode(charset, errors="replace")
    except LookupError:
        return payload.decode("utf-8", errors="replace")


def extract_body_text(msg) -> str:
    plain_parts = []
    html_parts = []
    for part in msg.walk():
        if part.is_multipart():
            continue
        if "attachment" in str(part.get("Content-Disposition", "")).lower():
            continue
        content_type = part.get_content_type()
        if content_type == "text/plain":
            plain_parts.append(_decode_payload(part))
        elif content_type == "text/html":
            html_parts.append(_decode_payload(part))

    if plain_parts:
        return "\n".join(plain_parts)
    # Only HTML available, strip the markup
    return "\n".join(BeautifulSoup(html, "html.parser").get_text(" ") for html in html_parts)


def make_excerpt(text: str, length: int) -> str:
    text = " ".join(text.split())
    if len(text) <= length:
        return text
    return text[:length].rstrip() + "..."


def build_summary(seq: int, raw_message: bytes, excerpt_length: int = None) -> schemas.MessageSummary:
    if excerpt_length is None:
        excerpt_length = app_config.BODY_EXCERPT_LENGTH

    msg = email.message_from_bytes(raw_message)
    return schemas.MessageSummary(
        seq=seq,
        subject=decode_mime_words(msg.get("Subject")),
        sender=sender_display_name(msg.get("From")),
        date=format_date(msg.get("Date")),
        body=make_excerpt(extract_body_text(msg), excerpt_length),
    )


def message_window(message_count: int, limit: int) -> Optional[Tuple[int, int]]:
    """
    Sequence range (first, last) of the newest `limit` messages, or None
    for an empty folder.
    """
    if message_count <= 0:
        return None
    first = 1
    if message_count > limit:
        first = message_count - limit + 1
    return first, message_count


def fetch_items(text_bytes: int) -> str:
    """FETCH items: summary headers plus the first `text_bytes` of the body."""
    return f"(BODY.PEEK[HEADER.FIELDS ({HEADER_FIELDS})] BODY.PEEK[TEXT]<0.{text_bytes}>)"


def _join_parts(header: bytes, text: bytes) -> bytes:
    return header.rstrip(b"\r\n") + b"\r\n\r\n" + text


def _parse_fetch_response(msg_data) -> List[Tuple[int, bytes]]:
    """
    Reassemble imaplib FETCH output into (seq, header + partial text).

    Each literal arrives as a (prefix, bytes) tuple. A prefix that starts
    with a sequence number opens a new message; later tuples of the same
    message only carry the item name, e.g. b' BODY[TEXT]<0> {512}'.
    """
    parts = {}
    seq = None
    for response_part in msg_data:
        if not isinstance(response_part, tuple):
            continue
        prefix = response_part[0]
        if isinstance(prefix, bytes):
            prefix = prefix.decode(errors="replace")
        match = FETCH_PREFIX_PATTERN.match(prefix)
        if match:
            seq = int(match.group(1))
            parts.setdefault(seq, {})
        if seq is None:
            raise ValueError(f"literal without a message number: {prefix!r}")
        key = "text" if "BODY[TEXT]" in prefix.upper() else "header"
        parts[seq][key] = response_part[1] or b""

    return [
        (seq, _join_parts(items.get("header", b""), items.get("text", b"")))
        for seq, items in parts.items()
    ]


@contextmanager
def imap_session(account: schemas.MailAccount, timeout: int):
    """Authenticated IMAP session, always logged out on exit."""
    logger.info(f"[MAIL] Connecting to IMAP server: {account.imap_server}:{account.imap_port} (timeout: {timeout}s)")
    try:
        mail = imaplib.IMAP4_SSL(account.imap_server, account.imap_port, timeout=timeout)
    except (OSError, imaplib.IMAP4.error) as e:
        logger.error(f"[MAIL] Connection to {account.imap_server} failed: {e}")
        raise MailConnectionError(f"Failed to connect to {account.imap_server}:{account.imap_port}: {e}") from e

    try:
        try:
            mail.login(account.username, account.password)
        except imaplib.IMAP4.error as e:
            logger.error(f"[MAIL] Login failed for {account.username}: {e}")
            raise AuthError(f"Login failed for {account.username}: {e}") from e
        except OSError as e:
            logger.error(f"[MAIL] Connection lost during login: {e}")
            raise MailConnectionError(f"Connection lost during login: {e}") from e
        logger.info("[MAIL] Login successful")
        yield mail
    finally:
        try:
            mail.logout()
            logger.info("[MAIL] Connection closed successfully")
        except (OSError, imaplib.IMAP4.error) as close_error:
            logger.warning(f"[MAIL] Error while closing connection: {close_error}")


def fetch_recent_emails(
    account: Optional[schemas.MailAccount],
    limit: int = None,
    timeout: int = None,
) -> List[schemas.MessageSummary]:
    if account is None:
        raise AccountNotSelected()
    if limit is None:
        limit = app_config.FETCH_LIMIT
    if timeout is None:
        timeout = app_config.IMAP_TIMEOUT

    logger.info(f"[MAIL] fetch_recent_emails started - account: {account.username}, limit: {limit}, timeout: {timeout}s")

    with imap_session(account, timeout) as mail:
        folder = app_config.INBOX_FOLDER
        try:
            status, data = mail.select(folder, readonly=True)
        except (OSError, imaplib.IMAP4.error) as e:
            logger.error(f"[MAIL] Failed to select {folder}: {e}")
            raise FolderError(f"Failed to open {folder}: {e}") from e
        if status != "OK":
            logger.error(f"[MAIL] Select {folder} returned {status}: {data}")
            raise FolderError(f"Failed to open {folder}: {status}")

        try:
            message_count = int(data[0])
        except (IndexError, TypeError, ValueError) as e:
            raise FolderError(f"Unexpected response selecting {folder}: {data!r}") from e
        logger.info(f"[MAIL] {folder} selected, {message_count} message(s)")

        window = message_window(message_count, limit)
        if window is None:
            return []

        message_set = f"{window[0]}:{window[1]}"
        logger.info(f"[MAIL] Fetching messages {message_set}")
        try:
            status, msg_data = mail.fetch(message_set, fetch_items(app_config.BODY_FETCH_BYTES))
        except (OSError, imaplib.IMAP4.error) as e:
            logger.error(f"[MAIL] Fetch {message_set} failed: {e}")
            raise FetchProtocolError(f"Failed to fetch messages: {e}") from e
        if status != "OK":
            logger.error(f"[MAIL] Fetch {message_set} returned {status}")
            raise FetchProtocolError(f"Failed to fetch messages: {status}")

        try:
            email_list = [build_summary(seq, raw) for seq, raw in _parse_fetch_response(msg_data)]
        except (IndexError, ValueError) as e:
            raise FetchProtocolError(f"Malformed fetch response: {e}") from e

    logger.info(f"[MAIL] Total emails fetched: {len(email_list)}")
    return email_list


@contextmanager
def smtp_connection(account: schemas.MailAccount, timeout: int):
    """Context manager for SMTP connections with automatic cleanup"""
    logger.info(f"[SMTP] Connecting to {account.smtp_server}:{account.smtp_port} (timeout: {timeout}s)")
    if account.smtp_port == IMPLICIT_TLS_PORT:
        server = smtplib.SMTP_SSL(account.smtp_server, account.smtp_port, timeout=timeout)
    else:
        server = smtplib.SMTP(account.smtp_server, account.smtp_port, timeout=timeout)
    try:
        if account.smtp_port != IMPLICIT_TLS_PORT:
            server.ehlo()
            if server.has_extn("starttls"):
                server.starttls()
                server.ehlo()
        server.login(account.username, account.password)
        yield server
    finally:
        try:
            server.quit()
        except (OSError, smtplib.SMTPException) as close_error:
            logger.warning(f"[SMTP] Error while closing connection: {close_error}")


def build_message(from_addr: str, to: str, subject: str, body: str) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = from_addr
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(body)
    return msg


def send_email(
    account: Optional[schemas.MailAccount],
    to: str,
    subject: str,
    body: str,
    timeout: int = None,
) -> None:
    if account is None:
        raise AccountNotSelected()
    if timeout is None:
        timeout = app_config.SMTP_TIMEOUT

    logger.info(f"[SMTP] send_email started - from: {account.username}, to: {to}")
    try:
        msg = build_message(account.username, to, subject, body)
        with smtp_connection(account, timeout) as server:
            server.send_message(msg, from_addr=account.username, to_addrs=[to])
    except smtplib.SMTPAuthenticationError as e:
        logger.error(f"[SMTP] Authentication failed for {account.username}: {e}")
        raise SendError(f"Authentication failed for {account.username}: {e}") from e
    except (OSError, smtplib.SMTPException, ValueError) as e:
        logger.error(f"[SMTP] Failed to send email: {e}")
        raise SendError(f"Failed to send email: {e}") from e
    logger.info(f"[SMTP] Message sent to {to}")
