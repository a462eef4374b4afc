from pydantic import BaseModel, ConfigDict


class MailAccountBase(BaseModel):
    username: str
    password: str
    imap_server: str
    imap_port: int
    smtp_server: str
    smtp_port: int


class MailAccountCreate(MailAccountBase):
    pass


class MailAccount(MailAccountBase):
    model_config = ConfigDict(frozen=True)


class MessageSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    seq: int
    subject: str = ""
    sender: str = ""
    date: str = ""
    body: str = ""
