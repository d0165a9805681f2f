"""
Service-layer errors. Routers translate these into JSON responses.
"""


class ServiceError(Exception):
    """Base class for errors raised by the service layer."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ServiceError):
    status_code = 400


class AuthorizationError(ServiceError):
    status_code = 401


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    status_code = 409


class SignatureVerificationError(ServiceError):
    """Webhook payload could not be authenticated."""
    status_code = 400


class PermanentFulfillmentError(ServiceError):
    """
    Fulfillment cannot succeed no matter how often the event is redelivered.

    The webhook acknowledges it with 200 so the provider stops retrying.
    """
    status_code = 200


class PaymentProviderError(ServiceError):
    status_code = 502


class BillingNotConfiguredError(ServiceError):
    status_code = 503


class DuplicateSubscriptionError(Exception):
    """Raised by the subscription store when a uniqueness constraint rejects an insert."""
