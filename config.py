"""
Application Configuration
Central place for all configuration values
"""
import os
from pathlib import Path

from dotenv import load_dotenv

# Ensure .env variables are available before reading any settings so that
# deploying without exporting env vars still works.
BASE_DIR = Path(__file__).resolve().parent
load_dotenv(BASE_DIR / ".env")

# Account storage
ACCOUNTS_FILE = Path(os.getenv("ACCOUNTS_FILE", str(BASE_DIR / "accounts.json")))

# Timeout Settings (in seconds)
# Default timeout for all external service requests
DEFAULT_TIMEOUT = int(os.getenv("DEFAULT_TIMEOUT", "30"))

# IMAP connection timeout
IMAP_TIMEOUT = int(os.getenv("IMAP_TIMEOUT", str(DEFAULT_TIMEOUT)))

# SMTP connection timeout
SMTP_TIMEOUT = int(os.getenv("SMTP_TIMEOUT", str(DEFAULT_TIMEOUT)))

# Inbox view
INBOX_FOLDER = os.getenv("INBOX_FOLDER", "INBOX")
FETCH_LIMIT = int(os.getenv("FETCH_LIMIT", "10"))
BODY_EXCERPT_LENGTH = int(os.getenv("BODY_EXCERPT_LENGTH", "200"))
# Bytes of body text fetched per message for the excerpt
BODY_FETCH_BYTES = int(os.getenv("BODY_FETCH_BYTES", "4096"))

# Web server
HOST = os.getenv("HOST", "127.0.0.1")
PORT = int(os.getenv("PORT", "8080"))

# Logging Settings
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")
