"""Booking domain errors.

Each error carries the HTTP status and stable code the API returns for it;
see ``app.main`` for the handler.
"""


class BookingError(Exception):
    status_code = 400
    code = "booking_error"
    message = "Booking request failed."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class SlotTakenError(BookingError):
    status_code = 409
    code = "slot_taken"
    message = "This time slot is already booked."


class InvalidTransitionError(BookingError):
    status_code = 409
    code = "invalid_transition"
    message = "This booking can no longer be modified."


class StaleStateError(InvalidTransitionError):
    """The booking's status moved between read and write."""
    code = "stale_state"


class NotAuthorizedError(BookingError):
    status_code = 403
    code = "not_authorized"
    message = "Booking not found or not accessible."


class NotCancellableError(BookingError):
    status_code = 400
    code = "not_cancellable"
    message = "Booking cannot be cancelled."


class PaymentSetupError(BookingError):
    status_code = 502
    code = "payment_setup_failed"
    message = "Could not start the deposit payment. Please try again."


class BookingPersistenceError(BookingError):
    status_code = 500
    code = "booking_persistence_failed"
    message = "Failed to create booking."


class ServiceNotFoundError(BookingError):
    status_code = 404
    code = "service_not_found"
    message = "Service not found."


class BarberNotFoundError(BookingError):
    status_code = 404
    code = "barber_not_found"
    message = "Barber not found."


class ValidationError(BookingError):
    status_code = 422
    code = "invalid_request"
    message = "Invalid request."


class ReviewNotAllowedError(BookingError):
    status_code = 409
    code = "review_not_allowed"
    message = "This booking cannot be reviewed."
