"""Error hierarchy for the booking core.

Every error carries a stable ``code`` (what the client branches on), the HTTP
status it maps to, a human readable ``message`` (German, shown in the SPA) and
optional ``details``. The FastAPI handler in ``main.py`` renders them as
``{"error": message, "code": code, "details": details}``.

Notification failures have no class here: the mail side channel logs and
swallows its errors, a committed booking is never rolled back because of them.
"""


class BookingError(Exception):
    """Base exception for all booking errors."""

    code = "BOOKING_ERROR"
    status_code = 400
    default_message = "Anfrage konnte nicht verarbeitet werden"

    def __init__(self, message: str | None = None, details: dict | None = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        out = {"error": self.message, "code": self.code}
        if self.details is not None:
            out["details"] = self.details
        return out


class ValidationFailed(BookingError):
    """Missing or invalid input, the user must correct it."""

    code = "VALIDATION"
    status_code = 400
    default_message = "Ungültige Eingabe"


class InvalidTimeSelection(ValidationFailed):
    code = "INVALID_TIME_SELECTION"
    default_message = "Ungültige Zeit-Auswahl"


class NotFound(BookingError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Nicht gefunden"


class LinkExpired(BookingError):
    code = "EXPIRED"
    status_code = 410
    default_message = "Link abgelaufen. Bitte senden Sie Ihre Anfrage erneut."


class Conflict(BookingError):
    """State mismatch on a conditional transition, the caller must re-fetch."""

    code = "CONFLICT"
    status_code = 409
    default_message = "Konflikt mit dem aktuellen Zustand"


class BookingsClosed(Conflict):
    code = "BOOKINGS_CLOSED"
    default_message = "Buchungen sind aktuell nicht freigegeben"


class NotVerified(Conflict):
    code = "NOT_VERIFIED"
    default_message = (
        "Anfrage kann erst angenommen werden, nachdem die E-Mail-Adresse verifiziert wurde"
    )


class SlotAlreadyBooked(Conflict):
    """Lost the claim race to a concurrent booking. Never retried."""

    code = "SLOT_ALREADY_BOOKED"
    default_message = "Slot bereits vergeben"


class RequestNotPendingAnymore(Conflict):
    code = "REQUEST_NOT_PENDING_ANYMORE"
    default_message = "Anfrage ist nicht mehr offen"


class NoSlotAvailable(Conflict):
    """No free slot matches; terminal until more slots are generated."""

    code = "NO_SLOT_AVAILABLE"
    default_message = (
        "Slot nicht verfügbar. Bitte prüfen, ob Slots für das Event generiert wurden "
        "oder ob der Slot bereits vergeben ist."
    )
