"""
Account-scoped mail workflow used by the web layer.

Ties the account store to its JSON snapshot and routes fetch/send requests
to the current account.
"""
import logging
import threading
from pathlib import Path
from typing import List, Optional

import mail_service
import schemas
from account_store import AccountStore, save_accounts
from errors import PersistenceError

logger = logging.getLogger(__name__)


class MailSession:
    def __init__(self, store: AccountStore, accounts_file: Path):
        self.store = store
        self.accounts_file = Path(accounts_file)
        # Serialises add + save and select, so a rollback always undoes its
        # own add and restores the selection seen at add time
        self._write_lock = threading.Lock()

    @classmethod
    def from_file(cls, accounts_file: Path) -> "MailSession":
        return cls(AccountStore.from_file(accounts_file), accounts_file)

    def add_account(self, account: schemas.MailAccountCreate) -> schemas.MailAccount:
        with self._write_lock:
            previous_current = self.store.current_index()
            added = self.store.add(**account.model_dump())
            try:
                save_accounts(self.accounts_file, self.store.accounts())
            except PersistenceError as e:
                logger.error(f"[STORE] Account {added.username} not persisted, rolling back: {e}")
                self.store.rollback_last(previous_current)
                raise
        return added

    def select_account(self, index: int) -> schemas.MailAccount:
        with self._write_lock:
            account = self.store.select(index)
        logger.info(f"[STORE] Selected account {index}: {account.username}")
        return account

    def current_account(self) -> Optional[schemas.MailAccount]:
        return self.store.current()

    def current_index(self) -> Optional[int]:
        return self.store.current_index()

    def accounts(self) -> List[schemas.MailAccount]:
        return self.store.accounts()

    def fetch_emails(self) -> List[schemas.MessageSummary]:
        return mail_service.fetch_recent_emails(self.store.current())

    def send_email(self, to: str, subject: str, body: str) -> None:
        mail_service.send_email(self.store.current(), to, subject, body)
