import base64
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from googleapiclient.discovery import build
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from ..config import settings

logger = logging.getLogger(__name__)

GMAIL_SCOPES = ["https://www.googleapis.com/auth/gmail.send"]
TOKEN_URI = "https://oauth2.googleapis.com/token"


def is_email_configured() -> bool:
    return bool(
        settings.GOOGLE_CLIENT_ID
        and settings.GOOGLE_CLIENT_SECRET
        and settings.GOOGLE_REFRESH_TOKEN
        and settings.EMAIL_FROM
    )


def _gmail_service():
    """
    Gmail client from an OAuth2 'installed app' refresh token.
    Needs GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, GOOGLE_REFRESH_TOKEN.
    """
    creds = Credentials(
        token=None,
        refresh_token=settings.GOOGLE_REFRESH_TOKEN,
        token_uri=TOKEN_URI,
        client_id=settings.GOOGLE_CLIENT_ID,
        client_secret=settings.GOOGLE_CLIENT_SECRET,
        scopes=GMAIL_SCOPES,
    )
    # refresh right away to get a valid access token
    creds.refresh(Request())

    # cache_discovery=False avoids warnings on servers
    return build("gmail", "v1", credentials=creds, cache_discovery=False)


def _build_message(to: str, subject: str, text: str, html: str) -> str:
    msg = MIMEMultipart("alternative")
    msg["to"] = to
    msg["from"] = settings.EMAIL_FROM
    msg["subject"] = subject
    msg.attach(MIMEText(text, "plain", "utf-8"))
    msg.attach(MIMEText(html, "html", "utf-8"))
    # Gmail wants URL-safe base64
    return base64.urlsafe_b64encode(msg.as_bytes()).decode("utf-8")


def send_mail(to: str, subject: str, text: str, html: str) -> bool:
    """
    Send a plain+HTML mail through the Gmail API.
    Returns False without sending when Gmail is not configured (dev).
    Transport errors propagate; callers decide whether they are fatal.
    """
    if not is_email_configured():
        logger.info("Gmail not configured, skipping mail to %s: %s", to, subject)
        logger.debug("Mail body:\n%s", text)
        return False

    raw = _build_message(to, subject, text, html)
    svc = _gmail_service()
    svc.users().messages().send(userId="me", body={"raw": raw}).execute()
    logger.info("Mail sent to %s: %s", to, subject)
    return True
