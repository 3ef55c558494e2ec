"""Auth exceptions.

Only malformed input and infrastructure faults are raised. Ordinary
authentication outcomes travel as values, see :mod:`authcore.outcomes`.
"""

from __future__ import annotations


class AuthException(Exception):
    """Base auth exception with HTTP status."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ValidationFailed(AuthException):
    """Malformed caller input, safe to expose with field-level detail."""

    def __init__(self, errors: dict[str, list[str]], message: str = "Validation failed"):
        super().__init__(message, status_code=400)
        self.errors = errors

    @classmethod
    def for_field(cls, field: str, *messages: str) -> "ValidationFailed":
        return cls({field: list(messages)})


class InvalidAssertion(AuthException):
    """A federated assertion the provider refused to vouch for."""

    def __init__(self, message: str = "Invalid federated assertion"):
        super().__init__(message, status_code=401)


class InfrastructureError(AuthException):
    """A collaborator is unreachable or misbehaving.

    The message is logged server side; callers should only surface
    ``public_message``.
    """

    public_message = "Internal server error"

    def __init__(self, message: str):
        super().__init__(message, status_code=500)


class StorageError(InfrastructureError):
    pass


class DeliveryError(InfrastructureError):
    pass


class TokenIssueError(InfrastructureError):
    pass


class FederatedProviderError(InfrastructureError):
    pass
