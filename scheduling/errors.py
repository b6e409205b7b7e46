class BookingError(Exception):
    """Base for every rejection the booking engine can produce.

    Routes render these as ``{"error": message}`` with ``status_code``.
    """

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(BookingError):
    status_code = 404


class InvalidInput(BookingError):
    status_code = 400


class Forbidden(BookingError):
    status_code = 403


class Conflict(BookingError):
    status_code = 409
