"""Domain exceptions surfaced to API callers and job handlers."""


class StorefrontError(Exception):
    """Base class for all domain errors."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(StorefrontError):
    """Input rejected before any write."""

    status_code = 422


class ConflictError(StorefrontError):
    """The display is occupied by another campaign."""

    status_code = 409


class NotFoundError(StorefrontError):
    """Referenced campaign, ad, product or video does not exist."""

    status_code = 404


class ExternalServiceError(StorefrontError):
    """Video generation provider failed or timed out."""

    status_code = 502
