"""
Error taxonomy for the checkout flow.

Components raise these; ``CheckoutSession`` catches ``CheckoutError`` at its
boundary and turns it into rendered state.
"""


class CheckoutError(Exception):
    default_message = "Something went wrong"
    retryable = False

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# Resolution

class TargetNotFound(CheckoutError):
    default_message = "Checkout target not found"


class AlreadyPaid(CheckoutError):
    """The target reached its paid state; callers route to success."""
    default_message = "This payment has already been completed."


class BackendError(CheckoutError):
    default_message = "Payment service error"
    retryable = True

    def __init__(self, message: str = None, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class BackendUnavailable(BackendError):
    default_message = "Payment service is unreachable. Please try again."


class MalformedTarget(BackendError):
    default_message = "Malformed checkout target"
    retryable = False


# Validation

class CheckoutValidationError(CheckoutError):
    retryable = True


class PayerNameRequired(CheckoutValidationError):
    default_message = "Please enter your name"


class InvalidAmount(CheckoutValidationError):
    default_message = "Please enter a valid amount"


class QRExpired(CheckoutValidationError):
    default_message = "QR Code has expired"
    retryable = False


# Dispatch / gateway

class DispatchError(CheckoutError):
    default_message = "Failed to initiate payment"
    retryable = True


class GatewayLoadError(CheckoutError):
    default_message = "Failed to load payment gateway"


class PaymentInFlight(CheckoutError):
    default_message = "A payment is already in progress"
    retryable = True


class InvalidCallback(CheckoutError):
    default_message = "No payment attempt is waiting for this callback"
