"""Error taxonomy shared by the workflows and the HTTP layer.

Each error carries an HTTP status and a short machine-readable ``code``.
Booking failures reuse the codes the trip page understands
(``driver_booking``, ``no_seats``, ...), so the route layer can redirect
with ``?error=<code>`` without a lookup table.
"""


class CarpoolError(Exception):
    status_code = 500
    code = "error"

    def __init__(self, message: str = "", *, detail: str | None = None, code: str | None = None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.detail = detail
        if code:
            self.code = code


class ValidationError(CarpoolError):
    status_code = 400
    code = "invalid_input"

    def __init__(self, message: str = "", *, errors: list[str] | None = None, **kwargs):
        self.errors = errors or ([message] if message else [])
        super().__init__(message or ", ".join(self.errors), **kwargs)


class NotFound(CarpoolError):
    status_code = 404
    code = "not_found"


class EligibilityDenied(CarpoolError):
    status_code = 409
    code = "not_eligible"


class SelfBookingDenied(EligibilityDenied):
    code = "driver_booking"


class NoSeatsAvailable(EligibilityDenied):
    code = "no_seats"


class AlreadyBooked(EligibilityDenied):
    code = "already_booked"


class UpstreamServiceError(CarpoolError):
    status_code = 502
    code = "upstream_error"

    def __init__(self, message: str = "", *, status: int | None = None, retryable: bool = False, **kwargs):
        super().__init__(message, **kwargs)
        self.status = status
        self.retryable = retryable


class StoreError(CarpoolError):
    status_code = 500
    code = "store_error"


class AuthRequired(CarpoolError):
    status_code = 401
    code = "auth_required"


class EmailTaken(CarpoolError):
    status_code = 409
    code = "email_taken"
