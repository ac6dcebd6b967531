"""Best-effort visitor e-mails.

Every ``send_*`` function returns ``True`` only when the mail was handed to the
transport. Failures are logged and swallowed: the booking state they report on
is already committed and must not be rolled back because a mail bounced.
Callers stamp ``*_sent_at`` columns only on ``True``.
"""
import logging
from html import escape

from ..config import settings
from .email_gmail import send_mail

logger = logging.getLogger(__name__)

SUBJECT_PREFIX = "BKSB Elternsprechtag"
SIGNATURE_TEXT = "Mit freundlichen Grüßen\n\nIhr BKSB-Team"
SIGNATURE_HTML = "<p>Mit freundlichen Grüßen</p><p>Ihr BKSB-Team</p>"


def verify_url(token: str) -> str:
    return f"{settings.PUBLIC_BASE_URL.rstrip('/')}/verify?token={token}"


def _wrap(body_html: str) -> str:
    return (
        '<div style="font-family:Inter,Arial,sans-serif;color:#111;font-size:15px">'
        f"<p>Guten Tag,</p>{body_html}{SIGNATURE_HTML}</div>"
    )


def _teacher_lines(teacher) -> tuple[str, str]:
    name = getattr(teacher, "name", None) or "-"
    room = getattr(teacher, "room", None) or "-"
    text = f"Lehrkraft: {name}\nRaum: {room}"
    html = f"<strong>Lehrkraft:</strong> {escape(name)}<br/><strong>Raum:</strong> {escape(room)}"
    return text, html


def _teacher_message(message: str | None) -> tuple[str, str]:
    msg = (message or "").strip()
    if not msg:
        return "", ""
    html = escape(msg).replace("\n", "<br/>")
    return (
        f"\nNachricht der Lehrkraft:\n{msg}\n",
        f"<p><strong>Nachricht der Lehrkraft:</strong><br/>{html}</p>",
    )


def _send(to: str | None, subject: str, text: str, html: str, what: str) -> bool:
    if not to:
        return False
    try:
        return send_mail(to, subject, text, html)
    except Exception as e:
        logger.warning("Sending %s mail to %s failed: %s", what, to, e)
        return False


# -----------------------------------------------------------------------------
# Verification
# -----------------------------------------------------------------------------
def send_reservation_verification(slot, teacher, token: str) -> bool:
    url = verify_url(token)
    t_text, t_html = _teacher_lines(teacher)
    subject = f"{SUBJECT_PREFIX} – E-Mail-Adresse bestätigen (Terminreservierung)"
    text = (
        "Guten Tag,\n\n"
        "bitte bestätigen Sie Ihre E-Mail-Adresse, um Ihre Terminreservierung im "
        "BKSB-Elternsprechtag-System abzuschließen.\n\n"
        f"Termin: {slot.date} {slot.time}\n{t_text}\n\n"
        f"Bestätigungslink: {url}\n\n"
        "Hinweis: Erst nach erfolgreicher Bestätigung kann die Lehrkraft Ihren Termin "
        "verbindlich bestätigen.\n\n"
        f"{SIGNATURE_TEXT}"
    )
    html = _wrap(
        "<p>bitte bestätigen Sie Ihre E-Mail-Adresse, um Ihre Terminreservierung im "
        "BKSB-Elternsprechtag-System abzuschließen.</p>"
        f"<p><strong>Termin:</strong> {escape(slot.date)} {escape(slot.time)}<br/>{t_html}</p>"
        f'<p><a href="{escape(url)}">E-Mail-Adresse jetzt bestätigen</a></p>'
        "<p><strong>Hinweis:</strong> Erst nach erfolgreicher Bestätigung kann die Lehrkraft "
        "Ihren Termin verbindlich bestätigen.</p>"
    )
    return _send(slot.email, subject, text, html, "reservation verification")


def send_request_verification(request, teacher, token: str) -> bool:
    url = verify_url(token)
    t_text, t_html = _teacher_lines(teacher)
    subject = f"{SUBJECT_PREFIX} – E-Mail-Adresse bestätigen (Terminanfrage)"
    text = (
        "Guten Tag,\n\n"
        "bitte bestätigen Sie Ihre E-Mail-Adresse, um Ihre Terminanfrage im "
        "BKSB-Elternsprechtag-System abzuschließen.\n\n"
        f"Gewünschter Zeitraum: {request.date} {request.requested_time}\n{t_text}\n\n"
        f"Bestätigungslink: {url}\n\n"
        "Hinweis: Die Lehrkraft vergibt die Termine. Nach Bestätigung Ihrer E-Mail-Adresse "
        "kann die Lehrkraft die Anfrage annehmen.\n\n"
        f"{SIGNATURE_TEXT}"
    )
    html = _wrap(
        "<p>bitte bestätigen Sie Ihre E-Mail-Adresse, um Ihre Terminanfrage im "
        "BKSB-Elternsprechtag-System abzuschließen.</p>"
        f"<p><strong>Gewünschter Zeitraum:</strong> {escape(request.date)} "
        f"{escape(request.requested_time)}<br/>{t_html}</p>"
        f'<p><a href="{escape(url)}">E-Mail-Adresse jetzt bestätigen</a></p>'
        "<p><strong>Hinweis:</strong> Die Lehrkraft vergibt die Termine. Nach Bestätigung "
        "Ihrer E-Mail-Adresse kann die Lehrkraft die Anfrage annehmen.</p>"
    )
    return _send(request.email, subject, text, html, "request verification")


# -----------------------------------------------------------------------------
# Confirmation
# -----------------------------------------------------------------------------
def send_slot_confirmation(slot, teacher, teacher_message: str | None = None,
                           from_request: bool = False) -> bool:
    """One confirmed slot, either a confirmed reservation or an accepted request."""
    t_text, t_html = _teacher_lines(teacher)
    m_text, m_html = _teacher_message(teacher_message)
    lead = (
        "Ihre Terminanfrage wurde durch die Lehrkraft angenommen."
        if from_request
        else "Ihre Terminbuchung wurde durch die Lehrkraft bestätigt."
    )
    subject = f"{SUBJECT_PREFIX} – Termin bestätigt am {slot.date} ({slot.time})"
    text = (
        f"Guten Tag,\n\n{lead}\n\n"
        f"Termin: {slot.date} {slot.time}\n{t_text}\n{m_text}\n"
        f"{SIGNATURE_TEXT}"
    )
    html = _wrap(
        f"<p>{lead}</p>"
        f"<p><strong>Termin:</strong> {escape(slot.date)} {escape(slot.time)}<br/>{t_html}</p>"
        f"{m_html}"
    )
    return _send(slot.email, subject, text, html, "confirmation")


def send_multi_slot_confirmation(slots, teacher, teacher_message: str | None = None) -> bool:
    """One combined mail listing every slot assigned to a request."""
    if not slots:
        return False
    first = slots[0]
    t_text, t_html = _teacher_lines(teacher)
    m_text, m_html = _teacher_message(teacher_message)
    times = ", ".join(s.time for s in slots)
    listing_text = "\n".join(f"  {i}. {s.time}" for i, s in enumerate(slots, start=1))
    listing_html = "".join(f"<li>{escape(s.time)}</li>" for s in slots)

    subject = f"{SUBJECT_PREFIX} – {len(slots)} Termine bestätigt am {first.date} ({times})"
    text = (
        "Guten Tag,\n\nIhre Terminanfrage wurde durch die Lehrkraft angenommen.\n\n"
        f"Es wurden {len(slots)} Termine für Sie vergeben:\n{listing_text}\n\n"
        f"Datum: {first.date}\n{t_text}\n{m_text}\n"
        f"{SIGNATURE_TEXT}"
    )
    html = _wrap(
        "<p>Ihre Terminanfrage wurde durch die Lehrkraft angenommen.</p>"
        f"<p>Es wurden <strong>{len(slots)} Termine</strong> für Sie vergeben:</p>"
        f"<ul>{listing_html}</ul>"
        f"<p><strong>Datum:</strong> {escape(first.date)}<br/>{t_html}</p>"
        f"{m_html}"
    )
    return _send(first.email, subject, text, html, "multi-slot confirmation")


# -----------------------------------------------------------------------------
# Cancellation
# -----------------------------------------------------------------------------
def send_cancellation(email: str | None, date: str, time: str, teacher) -> bool:
    t_text, t_html = _teacher_lines(teacher)
    subject = f"{SUBJECT_PREFIX} – Termin storniert am {date} ({time})"
    text = (
        "Guten Tag,\n\nwir bestätigen Ihnen die Stornierung Ihres Termins.\n\n"
        f"Termin: {date} {time}\n{t_text}\n\n"
        "Wenn Sie einen neuen Termin vereinbaren möchten, können Sie dies jederzeit über "
        "das Buchungssystem tun.\n\n"
        f"{SIGNATURE_TEXT}"
    )
    html = _wrap(
        "<p>wir bestätigen Ihnen die Stornierung Ihres Termins.</p>"
        f"<p><strong>Termin:</strong> {escape(date)} {escape(time)}<br/>{t_html}</p>"
        "<p>Wenn Sie einen neuen Termin vereinbaren möchten, können Sie dies jederzeit über "
        "das Buchungssystem tun.</p>"
    )
    return _send(email, subject, text, html, "cancellation")
