"""Error taxonomy for the webhook pipeline and the checkout adapters."""


class PaymentHubError(Exception):
    """Base class for every error raised by payment_hub."""


class AuthenticationError(PaymentHubError):
    """Inbound webhook could not be authenticated. Rejected with a 400."""

    reason = "authentication failed"

    def __init__(self, message=None):
        super().__init__(message or self.reason)


class MalformedSignatureHeader(AuthenticationError):
    reason = "malformed signature header"


class SignatureMismatch(AuthenticationError):
    reason = "no signatures found matching the expected signature for payload"


class StaleTimestamp(AuthenticationError):
    reason = "timestamp outside the tolerance zone"


class MalformedPayload(AuthenticationError):
    reason = "invalid payload"


class RecordNotFound(PaymentHubError):
    """No stored record matched the lookup key of an update-only merge."""

    def __init__(self, key_name: str, key: str):
        self.key_name = key_name
        self.key = key
        super().__init__(f"no payment record with {key_name}={key}")


class PersistenceFailure(PaymentHubError):
    """The store could not complete a merge."""

    def __init__(self, key_name: str, key: str, cause: Exception):
        self.key_name = key_name
        self.key = key
        self.cause = cause
        super().__init__(f"persistence failure for {key_name}={key}: {cause}")


class ProviderError(PaymentHubError):
    """A checkout provider call failed."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider}: {message}")
