"""
Domain exceptions for the booking engine.

These are raised inside the services and converted into structured
failure results at the operation boundary. They never reach callers.

    BookingError
    ├── ValidationFailure        bad input shape (422)
    ├── NotFoundError            unknown instance / booking (404)
    └── BusinessRuleViolation    rule broken by a well-formed request (409)
        ├── DuplicatePendingBooking
        ├── InstanceNotOpen
        ├── CapacityExceeded
        ├── InvalidTransition
        └── PaymentNotAllowed
"""

from fastapi import status


class BookingError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationFailure(BookingError):
    status_code = 422


class NotFoundError(BookingError):
    status_code = status.HTTP_404_NOT_FOUND


class BusinessRuleViolation(BookingError):
    status_code = status.HTTP_409_CONFLICT


class DuplicatePendingBooking(BusinessRuleViolation):
    pass


class InstanceNotOpen(BusinessRuleViolation):
    pass


class CapacityExceeded(BusinessRuleViolation):
    pass


class InvalidTransition(BusinessRuleViolation):
    pass


class PaymentNotAllowed(BusinessRuleViolation):
    pass


GENERIC_FAILURE_MESSAGE = "An unexpected error occurred. Please try again later."
