"""
Domain exceptions for check-in and dock business logic.

Raised by the service layer; routes translate them into HTTP responses.
"""


class CheckInDomainError(Exception):
    """Base exception for all check-in domain errors"""
    pass


class RecordNotFoundError(CheckInDomainError):
    """Raised when a check-in, appointment or dock record does not exist"""
    pass


class InvalidTransitionError(CheckInDomainError):
    """Raised when a status transition is not allowed from the current status"""
    pass


class DuplicateCheckInError(CheckInDomainError):
    """Raised when a reference number has already checked in today"""
    pass


class InvalidDockError(CheckInDomainError):
    """Raised for dock numbers outside the facility's dock range"""
    pass


class DockUnavailableError(CheckInDomainError):
    """Raised when a conditional dock claim finds the dock in another state"""
    pass


class AppointmentValidationError(CheckInDomainError):
    """Raised when an appointment has neither a sales order nor a delivery"""
    pass


class ImportFileError(CheckInDomainError):
    """Raised when an uploaded schedule file cannot be read at all"""
    pass


class StorageError(CheckInDomainError):
    """Raised when the database rejects or cannot complete an operation"""
    pass
