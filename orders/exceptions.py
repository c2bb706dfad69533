class StorefrontError(Exception):
    """Base class for errors raised by the order and payment services."""


class InvalidRequest(StorefrontError):
    """Missing or malformed caller input."""


class SignatureInvalid(StorefrontError):
    """A gateway payload failed signature verification."""


class NotFound(StorefrontError):
    """A referenced order or product does not exist."""


class InvalidTransition(StorefrontError):
    """An order status change that the lifecycle does not allow."""


class PersistenceError(StorefrontError):
    """A Firestore read or write failed."""


class PaymentGatewayError(StorefrontError):
    """
    The payment gateway rejected or failed a request.

    Keeps the gateway's own error message and code so they can be surfaced
    to the caller unchanged.
    """
    def __init__(self, message, error_code=None, details=None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details
