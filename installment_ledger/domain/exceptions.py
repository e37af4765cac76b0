"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class MessagingAPIError(DomainException):
    """WhatsApp API returned an error, timed out or sent back garbage"""

    pass


class InvalidPhoneNumberError(DomainException):
    """Customer phone cannot be turned into a WhatsApp chat id"""

    pass


class InvalidSettingsError(DomainException):
    """Tenant WhatsApp settings are malformed"""

    pass


class PersistenceError(DomainException):
    """Storage is unreachable or rejected the operation"""

    pass


class ItemConflictError(DomainException):
    """Item id is already taken (possibly by another tenant)"""

    pass


class PaymentNotFoundError(DomainException):
    """Sale has no obligation with the given id"""

    pass


class PaymentAlreadyPaidError(DomainException):
    """Obligation is already marked paid"""

    pass
