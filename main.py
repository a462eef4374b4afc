from fastapi import FastAPI, Depends, Form, HTTPException, Request
from fastapi.staticfiles import StaticFiles
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
import logging

import schemas, config
from errors import (
    WebmailError,
    IndexOutOfRange,
    AccountNotSelected,
    PersistenceError,
)
from mail_session import MailSession

# Configure logging
logging.basicConfig(
    level=config.LOG_LEVEL,
    format=config.LOG_FORMAT
)
logger = logging.getLogger(__name__)

mail_session = MailSession.from_file(config.ACCOUNTS_FILE)

app = FastAPI()

app.mount("/static", StaticFiles(directory=config.BASE_DIR / "static"), name="static")
templates = Jinja2Templates(directory=config.BASE_DIR / "templates")


# Dependency
def get_mail_session() -> MailSession:
    return mail_session


def to_http_exception(error: WebmailError) -> HTTPException:
    if isinstance(error, AccountNotSelected):
        status_code = 400
    elif isinstance(error, IndexOutOfRange):
        status_code = 404
    elif isinstance(error, PersistenceError):
        status_code = 500
    else:
        status_code = 502
    return HTTPException(status_code=status_code, detail=str(error))


@app.get("/", response_class=HTMLResponse)
def index(request: Request, session: MailSession = Depends(get_mail_session)):
    return templates.TemplateResponse(request, "index.html", {
        "accounts": session.accounts(),
        "current_index": session.current_index(),
        "current_account": session.current_account(),
    })


@app.get("/add_account", response_class=HTMLResponse)
def add_account_form(request: Request, session: MailSession = Depends(get_mail_session)):
    return templates.TemplateResponse(request, "add_account.html", {
        "current_account": session.current_account(),
    })


@app.post("/add_account")
def add_account(
    username: str = Form(""),
    password: str = Form(""),
    imap_server: str = Form(""),
    imap_port: int = Form(...),
    smtp_server: str = Form(""),
    smtp_port: int = Form(...),
    session: MailSession = Depends(get_mail_session),
):
    account = schemas.MailAccountCreate(
        username=username,
        password=password,
        imap_server=imap_server,
        imap_port=imap_port,
        smtp_server=smtp_server,
        smtp_port=smtp_port,
    )
    try:
        session.add_account(account)
    except PersistenceError as e:
        logger.error(f"[API] Add account failed - account: {username}, reason: {e}")
        raise to_http_exception(e)
    return RedirectResponse("/", status_code=303)


@app.get("/select_account/{account_id}")
def select_account(account_id: int, session: MailSession = Depends(get_mail_session)):
    try:
        session.select_account(account_id)
    except IndexOutOfRange as e:
        logger.warning(f"[API] Select account failed: {e}")
        raise to_http_exception(e)
    return RedirectResponse("/", status_code=303)


@app.get("/fetch_emails", response_class=HTMLResponse)
def fetch_emails(request: Request, session: MailSession = Depends(get_mail_session)):
    logger.info("[API] /fetch_emails called")
    try:
        emails = session.fetch_emails()
    except WebmailError as e:
        logger.error(f"[API] Fetch failed - reason: {e}")
        raise to_http_exception(e)

    account = session.current_account()
    logger.info(f"[API] Fetch success - account: {account.username if account else None}, fetched: {len(emails)}")
    return templates.TemplateResponse(request, "emails.html", {
        "emails": emails,
        "current_account": account,
    })


@app.get("/send_email", response_class=HTMLResponse)
def send_email_form(request: Request, session: MailSession = Depends(get_mail_session)):
    return templates.TemplateResponse(request, "send_email.html", {
        "current_account": session.current_account(),
    })


@app.post("/send_email")
def send_email(
    to: str = Form(""),
    subject: str = Form(""),
    body: str = Form(""),
    session: MailSession = Depends(get_mail_session),
):
    logger.info(f"[API] /send_email called - to: {to}")
    try:
        session.send_email(to, subject, body)
    except WebmailError as e:
        logger.error(f"[API] Send failed - to: {to}, reason: {e}")
        raise to_http_exception(e)
    return RedirectResponse("/", status_code=303)


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Listening on http://{config.HOST}:{config.PORT}")
    uvicorn.run(app, host=config.HOST, port=config.PORT)
