"""Error taxonomy shared by services, the callable routes and the webhook."""


class TeamHubError(Exception):
    """Base class for domain errors.

    `code` is stable and machine readable; the message is shown to users.
    """

    code = "internal"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthenticationError(TeamHubError):
    """Caller is not authenticated."""
    code = "unauthenticated"


class PermissionDeniedError(TeamHubError):
    """Caller is authenticated but not allowed to do this."""
    code = "permission-denied"


class InvalidArgumentError(TeamHubError):
    """Malformed or missing input."""
    code = "invalid-argument"


class NotFoundError(TeamHubError):
    code = "not-found"


class AlreadyExistsError(TeamHubError):
    code = "already-exists"


class PreconditionError(TeamHubError):
    """Entity state forbids the operation."""
    code = "failed-precondition"


class ConfigurationError(TeamHubError):
    """Deployment or event metadata is missing something required."""
    code = "configuration"


class ProviderError(TeamHubError):
    """The payment provider failed or returned something unusable."""
    code = "provider"


class UnknownProviderStatusError(ProviderError):
    """Provider sent a subscription status with no internal mapping."""


class EventInProgressError(TeamHubError):
    """Another worker holds a live claim on this webhook event."""
    code = "aborted"


class InternalError(TeamHubError):
    code = "internal"
