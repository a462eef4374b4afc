"""
Error hierarchy for the webmail relay.

Every failure reaching the web layer is a WebmailError carrying a
human-readable message.
"""


class WebmailError(Exception):
    """Base exception for all webmail errors."""
    pass


class IndexOutOfRange(WebmailError):
    """Raised when selecting an account index that does not exist."""
    pass


class AccountNotSelected(WebmailError):
    """Raised when fetch or send is attempted without a current account."""

    def __init__(self, message: str = "account not selected"):
        super().__init__(message)


class MailConnectionError(WebmailError):
    """Raised when the mail server cannot be reached."""
    pass


class AuthError(WebmailError):
    """Raised when the mail server rejects the credentials."""
    pass


class FolderError(WebmailError):
    """Raised when the inbox folder cannot be opened."""
    pass


class FetchProtocolError(WebmailError):
    """Raised when the bulk message fetch fails."""
    pass


class SendError(WebmailError):
    """Raised when a message cannot be submitted."""
    pass


class PersistenceError(WebmailError):
    """Raised when the accounts file cannot be read or written."""
    pass
