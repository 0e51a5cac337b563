"""
Error taxonomy for push notification operations.

Each error carries the HTTP status it maps to and a message that is safe to
return to a client. Transport outcomes (expired / transient) are not
exceptions; they are reported through PushResult.
"""


class PushError(Exception):
    """Base class for push subsystem errors."""

    status_code: int = 500
    default_message: str = "Push notification error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ConfigurationError(PushError):
    """VAPID credentials missing or malformed."""

    status_code = 500
    default_message = "Push notifications not configured on server"

    def __init__(self, message: str | None = None, problems: list[str] | None = None):
        super().__init__(message)
        self.problems = problems or []


class ValidationError(PushError):
    """Malformed subscription request."""

    status_code = 400
    default_message = "Invalid subscription data. Missing endpoint or keys."


class NotFoundError(PushError):
    status_code = 404
    default_message = "Subscription not found"


class DuplicateSubscriptionError(PushError):
    """Endpoint already registered to another subscription row."""

    status_code = 409
    default_message = "Push subscription already exists for this endpoint"
