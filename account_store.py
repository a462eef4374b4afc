import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import List, Optional

from pydantic import TypeAdapter, ValidationError

import schemas
from errors import IndexOutOfRange, PersistenceError

logger = logging.getLogger(__name__)

_ACCOUNT_LIST = TypeAdapter(List[schemas.MailAccount])


def save_accounts(path: Path, accounts: List[schemas.MailAccount]) -> None:
    """Write the account list as JSON, replacing the file atomically."""
    path = Path(path)
    payload = json.dumps([account.model_dump() for account in accounts], ensure_ascii=False, indent=2)
    tmp_name = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=path.name, suffix=".tmp")
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(payload)
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise PersistenceError(f"Failed to save accounts to {path}: {e}") from e
    logger.info(f"[STORE] Saved {len(accounts)} account(s) to {path}")


def load_accounts(path: Path) -> List[schemas.MailAccount]:
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise PersistenceError(f"Failed to read accounts from {path}: {e}") from e

    try:
        return _ACCOUNT_LIST.validate_python(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as e:
        raise PersistenceError(f"Invalid accounts file {path}: {e}") from e


class AccountStore:
    """
    Ordered list of mail accounts with one optional "current" selection.

    The selection is kept as an index into the list. Accounts are only ever
    appended, so an index stays valid for the lifetime of the store.
    """

    def __init__(self, accounts: Optional[List[schemas.MailAccount]] = None):
        self._lock = threading.Lock()
        self._accounts: List[schemas.MailAccount] = list(accounts or [])
        self._current: Optional[int] = 0 if self._accounts else None

    @classmethod
    def from_file(cls, path: Path) -> "AccountStore":
        path = Path(path)
        if not path.exists():
            logger.info(f"[STORE] No accounts file at {path}, starting empty")
            return cls()
        try:
            accounts = load_accounts(path)
        except PersistenceError as e:
            logger.error(f"[STORE] Failed to load accounts: {e}")
            return cls()
        logger.info(f"[STORE] Loaded {len(accounts)} account(s) from {path}")
        return cls(accounts)

    def __len__(self) -> int:
        with self._lock:
            return len(self._accounts)

    def add(
        self,
        username: str,
        password: str,
        imap_server: str,
        imap_port: int,
        smtp_server: str,
        smtp_port: int,
    ) -> schemas.MailAccount:
        account = schemas.MailAccount(
            username=username,
            password=password,
            imap_server=imap_server,
            imap_port=imap_port,
            smtp_server=smtp_server,
            smtp_port=smtp_port,
        )
        with self._lock:
            self._accounts.append(account)
            if self._current is None:
                self._current = 0
        logger.info(f"[STORE] Added account {username}")
        return account

    def rollback_last(self, previous_current: Optional[int]) -> None:
        """Undo the most recent add and restore the selection it replaced."""
        with self._lock:
            if not self._accounts:
                return
            removed = self._accounts.pop()
            if previous_current is not None and previous_current >= len(self._accounts):
                previous_current = None
            self._current = previous_current
            logger.warning(f"[STORE] Rolled back account {removed.username}")

    def select(self, index: int) -> schemas.MailAccount:
        with self._lock:
            if index < 0 or index >= len(self._accounts):
                raise IndexOutOfRange(f"account index {index} out of range")
            self._current = index
            return self._accounts[index]

    def current(self) -> Optional[schemas.MailAccount]:
        with self._lock:
            if self._current is None:
                return None
            return self._accounts[self._current]

    def current_index(self) -> Optional[int]:
        with self._lock:
            return self._current

    def accounts(self) -> List[schemas.MailAccount]:
        with self._lock:
            return list(self._accounts)
